"""
User service: registration, login, token refresh and account management.

Login and the per-request authenticator both refuse inactive accounts, so a
user deactivated mid-session is locked out on their next request even while
holding an unexpired token.
"""
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from newsroom.models import Article, Comment, User, UserRole
from newsroom.schemas import ProfileUpdate, RegisterRequest
from newsroom.security import TokenError, hash_password, issue_token_pair, verify, verify_password
from newsroom.services.serializers import user_to_dict

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = {"name": "name", "bio": "bio", "avatar_url": "avatar_url"}


def _session_payload(user: User) -> dict:
    tokens = issue_token_pair(user)
    return {
        "user": user_to_dict(user),
        "accessToken": tokens["access_token"],
        "refreshToken": tokens["refresh_token"],
    }


async def _get_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _count_by(db: AsyncSession, column, ids: list[int]) -> dict[int, int]:
    if not ids:
        return {}
    q = select(column, func.count()).where(column.in_(ids)).group_by(column)
    return {owner: count for owner, count in (await db.execute(q)).all()}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: RegisterRequest, role: UserRole | None = None) -> User:
    existing = await db.execute(select(User.id).where(User.email == data.email))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Email already registered")

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        name=data.name,
        role=role or UserRole.AUTHOR,
    )
    db.add(user)
    await db.flush()
    logger.info("Registered user id=%d role=%s", user.id, user.role.value)
    return user


async def register(db: AsyncSession, data: RegisterRequest) -> dict:
    """Self-service sign-up; always creates an AUTHOR."""
    user = await create_user(db, data)
    return _session_payload(user)


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        raise UnauthorizedError("Invalid email or password")
    if not user.is_active:
        raise ForbiddenError("Your account has been deactivated")
    if not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    return user


async def login(db: AsyncSession, email: str, password: str) -> dict:
    user = await authenticate(db, email, password)
    return _session_payload(user)


async def refresh_tokens(db: AsyncSession, refresh_token: str) -> dict:
    """Trade a refresh token for a fresh token pair."""
    failure = UnauthorizedError("Invalid or expired refresh token")
    try:
        claims = verify(refresh_token, "refresh")
    except TokenError as exc:
        raise failure from exc

    user = await db.get(User, claims["userId"])
    if user is None or not user.is_active:
        raise failure
    tokens = issue_token_pair(user)
    return {"accessToken": tokens["access_token"], "refreshToken": tokens["refresh_token"]}


# ---------------------------------------------------------------------------
# Profiles & administration
# ---------------------------------------------------------------------------

async def get_user(db: AsyncSession, user_id: int) -> dict:
    user = await _get_or_404(db, user_id)
    articles = await _count_by(db, Article.author_id, [user.id])
    comments = await _count_by(db, Comment.user_id, [user.id])
    data = user_to_dict(user)
    data["_count"] = {"articles": articles.get(user.id, 0), "comments": comments.get(user.id, 0)}
    return data


async def list_users(
    db: AsyncSession,
    offset: int,
    limit: int,
    role: UserRole | None = None,
    search: str | None = None,
) -> tuple[list[dict], int]:
    filters = []
    if role is not None:
        filters.append(User.role == role)
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))

    total = (await db.execute(select(func.count()).select_from(User).where(*filters))).scalar_one()
    q = (
        select(User)
        .where(*filters)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset(offset)
        .limit(limit)
    )
    users = (await db.execute(q)).scalars().all()
    counts = await _count_by(db, Article.author_id, [u.id for u in users])

    items = []
    for user in users:
        data = user_to_dict(user)
        data["_count"] = {"articles": counts.get(user.id, 0)}
        items.append(data)
    return items, total


async def update_user(db: AsyncSession, user_id: int, data: ProfileUpdate) -> dict:
    user = await _get_or_404(db, user_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, _PROFILE_FIELDS[field], value)
    await db.flush()
    return user_to_dict(user)


async def change_password(db: AsyncSession, user_id: int, old_password: str, new_password: str) -> None:
    user = await _get_or_404(db, user_id)
    if not verify_password(old_password, user.password_hash):
        raise UnauthorizedError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    await db.flush()


async def change_role(db: AsyncSession, user_id: int, role: UserRole) -> dict:
    user = await _get_or_404(db, user_id)
    user.role = role
    await db.flush()
    logger.info("User id=%d role changed to %s", user.id, role.value)
    return user_to_dict(user)


async def set_active(db: AsyncSession, user_id: int, active: bool) -> dict:
    user = await _get_or_404(db, user_id)
    user.is_active = active
    await db.flush()
    logger.info("User id=%d %s", user.id, "activated" if active else "deactivated")
    return user_to_dict(user)


async def delete_user(db: AsyncSession, user_id: int, actor: User) -> None:
    if user_id == actor.id:
        raise BadRequestError("You cannot delete your own account")
    user = await _get_or_404(db, user_id)
    await db.delete(user)
    await db.flush()
    logger.info("User id=%d deleted by id=%d", user_id, actor.id)


async def get_user_stats(db: AsyncSession) -> dict:
    total = (await db.execute(select(func.count()).select_from(User))).scalar_one()
    active = (
        await db.execute(select(func.count()).select_from(User).where(User.is_active.is_(True)))
    ).scalar_one()
    by_role = (await db.execute(select(User.role, func.count()).group_by(User.role))).all()
    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "byRole": [{"role": role.value, "count": count} for role, count in by_role],
    }
