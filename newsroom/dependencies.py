from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.errors import ApiError, ForbiddenError, UnauthorizedError
from newsroom.models import User
from newsroom.pagination import get_pagination
from newsroom.security import TokenError, verify

# auto_error=False so a missing header reaches our own 401 message.
bearer = HTTPBearer(auto_error=False)


class PaginationParams:
    """
    Reusable dependency for ``?page=&limit=`` query parameters.

    Out-of-range values are clamped rather than rejected: page to >= 1 and
    limit to [1, 100].  ``offset`` is the SQL OFFSET for the current page.
    """

    def __init__(
        self,
        page: int = Query(1, description="Page number (1-based)."),
        limit: int = Query(10, description="Items per page (max 100)."),
    ) -> None:
        window = get_pagination(page, limit)
        self.page = window["page"]
        self.limit = window["limit"]
        self.offset = window["skip"]


async def _resolve_user(
    credentials: HTTPAuthorizationCredentials | None, db: AsyncSession
) -> User:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("No token provided. Please login.")

    try:
        claims = verify(credentials.credentials, "access")
    except TokenError as exc:
        raise UnauthorizedError("Invalid or expired token. Please login again.") from exc

    user = await db.get(User, claims["userId"])
    if user is None:
        raise UnauthorizedError("User not found. Please login again.")
    if not user.is_active:
        raise ForbiddenError("Your account has been deactivated.")
    return user


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticated user for the request, or 401/403."""
    user = await _resolve_user(credentials, db)
    # Plain id for the request log; the ORM object is unusable once get_db closes.
    request.state.user_id = user.id
    return user


async def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Like ``get_current_user`` but any authentication failure means anonymous."""
    try:
        user = await _resolve_user(credentials, db)
    except ApiError:
        return None
    request.state.user_id = user.id
    return user
