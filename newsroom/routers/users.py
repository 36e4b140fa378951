from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.dependencies import PaginationParams
from newsroom.models import User
from newsroom.permissions import require_permission
from newsroom.ratelimit import api_rate_limit
from newsroom.responses import paginated, success
from newsroom.schemas import ProfileUpdate, RoleChange, UserCreate, UserQuery
from newsroom.services import user_service
from newsroom.validation import validate_request

require_user_admin = require_permission("user", "manage")

router = APIRouter(
    prefix="/api/users",
    tags=["users"],
    dependencies=[Depends(api_rate_limit), Depends(require_user_admin)],
)


@router.get("/stats")
async def user_stats(db: AsyncSession = Depends(get_db)):
    return success(await user_service.get_user_stats(db))


@router.get("")
async def list_users(
    query: UserQuery = Depends(validate_request(UserQuery, "query")),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    items, total = await user_service.list_users(
        db, pagination.offset, pagination.limit, role=query.role, search=query.search
    )
    return paginated(items, pagination.page, pagination.limit, total)


@router.post("", status_code=201)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    user = await user_service.create_user(db, data, role=data.role)
    return success(await user_service.get_user(db, user.id), "User created successfully")


@router.get("/{user_id}")
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return success(await user_service.get_user(db, user_id))


@router.put("/{user_id}")
async def update_user(user_id: int, data: ProfileUpdate, db: AsyncSession = Depends(get_db)):
    return success(await user_service.update_user(db, user_id, data), "User updated successfully")


@router.patch("/{user_id}/role")
async def change_role(user_id: int, data: RoleChange, db: AsyncSession = Depends(get_db)):
    return success(await user_service.change_role(db, user_id, data.role), "User role updated successfully")


@router.patch("/{user_id}/activate")
async def activate_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return success(await user_service.set_active(db, user_id, True), "User activated successfully")


@router.patch("/{user_id}/deactivate")
async def deactivate_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return success(await user_service.set_active(db, user_id, False), "User deactivated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    admin: User = Depends(require_user_admin),
    db: AsyncSession = Depends(get_db),
):
    await user_service.delete_user(db, user_id, admin)
    return success(message="User deleted successfully")
