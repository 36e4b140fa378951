from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.dependencies import get_current_user
from newsroom.models import User
from newsroom.ratelimit import api_rate_limit, auth_rate_limit
from newsroom.responses import success
from newsroom.schemas import ChangePasswordRequest, LoginRequest, ProfileUpdate, RefreshRequest, RegisterRequest
from newsroom.services import user_service

router = APIRouter(prefix="/api/auth", tags=["auth"], dependencies=[Depends(api_rate_limit)])


@router.post("/register", status_code=201, dependencies=[Depends(auth_rate_limit)])
async def register(data: RegisterRequest, db: AsyncSession = Depends(get_db)):
    return success(await user_service.register(db, data), "User registered successfully")


@router.post("/login", dependencies=[Depends(auth_rate_limit)])
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    return success(await user_service.login(db, data.email, data.password), "Login successful")


@router.post("/refresh")
async def refresh(data: RefreshRequest, db: AsyncSession = Depends(get_db)):
    return success(await user_service.refresh_tokens(db, data.refresh_token), "Token refreshed successfully")


@router.post("/logout")
async def logout():
    # Tokens are stateless; the client discards them.
    return success(message="Logged out successfully")


@router.get("/me")
async def me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return success(await user_service.get_user(db, user.id))


@router.put("/me")
async def update_me(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success(await user_service.update_user(db, user.id, data), "Profile updated successfully")


@router.put("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await user_service.change_password(db, user.id, data.old_password, data.new_password)
    return success(message="Password changed successfully")
