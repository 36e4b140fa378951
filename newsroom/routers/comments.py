from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.dependencies import PaginationParams, get_current_user, get_optional_user
from newsroom.models import User
from newsroom.permissions import require_permission
from newsroom.ratelimit import api_rate_limit
from newsroom.responses import paginated, success
from newsroom.schemas import CommentCreate, CommentQuery, CommentUpdate
from newsroom.services import comment_service
from newsroom.validation import validate_request

router = APIRouter(prefix="/api/comments", tags=["comments"], dependencies=[Depends(api_rate_limit)])

require_moderator = require_permission("comment", "moderate")


@router.get("/stats", dependencies=[Depends(require_moderator)])
async def comment_stats(db: AsyncSession = Depends(get_db)):
    return success(await comment_service.get_comment_stats(db))


@router.get("", dependencies=[Depends(require_moderator)])
async def list_comments(
    query: CommentQuery = Depends(validate_request(CommentQuery, "query")),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    items, total = await comment_service.list_comments(db, query, pagination.offset, pagination.limit)
    return paginated(items, pagination.page, pagination.limit, total)


@router.post("", status_code=201)
async def create_comment(
    data: CommentCreate,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return success(
        await comment_service.create_comment(db, data, user),
        "Comment submitted successfully. It will be visible after moderation.",
    )


@router.get("/{comment_id}")
async def get_comment(
    comment_id: int,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return success(await comment_service.get_comment(db, comment_id, viewer))


@router.put("/{comment_id}")
async def update_comment(
    comment_id: int,
    data: CommentUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success(
        await comment_service.update_comment(db, comment_id, data, user), "Comment updated successfully"
    )


@router.patch("/{comment_id}/approve")
async def approve_comment(
    comment_id: int,
    moderator: User = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    return success(await comment_service.approve_comment(db, comment_id, moderator), "Comment approved")


@router.patch("/{comment_id}/reject")
async def reject_comment(
    comment_id: int,
    moderator: User = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    return success(await comment_service.reject_comment(db, comment_id, moderator), "Comment rejected")


@router.patch("/{comment_id}/spam")
async def mark_spam(
    comment_id: int,
    moderator: User = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    return success(await comment_service.mark_spam(db, comment_id, moderator), "Comment marked as spam")


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, comment_id, user)
    return success(message="Comment deleted successfully")
