"""
Role gate.

Every route-level and ownership check is answered from ``POLICIES``, one
table mapping ``(resource, action)`` to the roles allowed to perform it
regardless of ownership.  Auditing who may do what means reading this table.
"""
from fastapi import Depends

from newsroom.dependencies import get_current_user
from newsroom.errors import ForbiddenError, UnauthorizedError
from newsroom.models import User, UserRole

ADMIN = UserRole.ADMIN
EDITOR = UserRole.EDITOR
AUTHOR = UserRole.AUTHOR

EVERYONE = (ADMIN, EDITOR, AUTHOR)

POLICIES: dict[tuple[str, str], tuple[UserRole, ...]] = {
    ("user", "manage"): (ADMIN,),
    ("article", "create"): EVERYONE,
    ("article", "edit_any"): (ADMIN,),
    ("article", "delete_any"): (ADMIN,),
    ("article", "publish_any"): (ADMIN, EDITOR),
    ("category", "manage"): (ADMIN,),
    ("tag", "create"): EVERYONE,
    ("tag", "manage"): (ADMIN,),
    ("comment", "moderate"): (ADMIN, EDITOR),
    ("comment", "edit_any"): (ADMIN,),
    ("comment", "delete_any"): (ADMIN,),
    ("media", "upload"): EVERYONE,
    ("media", "view_all"): (ADMIN,),
    ("media", "delete_any"): (ADMIN,),
    ("metrics", "read"): (ADMIN,),
}


def allowed_roles(resource: str, action: str) -> tuple[UserRole, ...]:
    try:
        return POLICIES[(resource, action)]
    except KeyError:
        raise KeyError(f"No policy for {resource}:{action}") from None


def is_permitted(user: User | None, resource: str, action: str) -> bool:
    return user is not None and user.role in allowed_roles(resource, action)


def check_role(user: User | None, roles) -> User:
    if user is None:
        raise UnauthorizedError("Authentication required")
    if user.role not in roles:
        names = " or ".join(r.value for r in roles)
        raise ForbiddenError(f"Access denied. Required role: {names}")
    return user


def require_role(*roles: UserRole):
    """Dependency factory: authenticated user holding one of *roles*."""

    async def checker(user: User = Depends(get_current_user)) -> User:
        return check_role(user, roles)

    return checker


def require_permission(resource: str, action: str):
    return require_role(*allowed_roles(resource, action))


require_admin = require_role(ADMIN)
require_editor = require_role(ADMIN, EDITOR)
require_author = require_role(ADMIN, EDITOR, AUTHOR)


def ensure_owner_or_admin(user: User, owner_id: int | None) -> None:
    if user.id != owner_id and user.role != ADMIN:
        raise ForbiddenError("You can only modify your own resources")


def ensure_owner_or_permitted(user: User, owner_id: int | None, resource: str, action: str) -> None:
    """Pass when *user* owns the resource or their role grants *action* on any instance."""
    if user.id != owner_id and not is_permitted(user, resource, action):
        raise ForbiddenError("You can only modify your own resources")
