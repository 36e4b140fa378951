"""
Comment service: threaded comments with moderation.

Every comment starts PENDING.  A moderator moves it once to APPROVED,
REJECTED or SPAM; moderated comments are final.  Only APPROVED comments are
shown publicly, and a reply is shown only when its whole parent chain is.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from newsroom.errors import BadRequestError, NotFoundError
from newsroom.models import Article, Comment, CommentStatus, User
from newsroom.permissions import ensure_owner_or_permitted, is_permitted
from newsroom.schemas import CommentCreate, CommentQuery, CommentUpdate
from newsroom.services.serializers import article_summary, iso

logger = logging.getLogger(__name__)


def _commenter(comment: Comment) -> dict | None:
    user = comment.user
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "avatarUrl": user.avatar_url}


def _comment_to_dict(comment: Comment, include_email: bool = False) -> dict:
    data = {
        "id": comment.id,
        "content": comment.content,
        "status": comment.status.value,
        "articleId": comment.article_id,
        "parentId": comment.parent_id,
        "userId": comment.user_id,
        "authorName": comment.author_name or (comment.user.name if comment.user else None),
        "user": _commenter(comment),
        "createdAt": iso(comment.created_at),
        "updatedAt": iso(comment.updated_at),
    }
    if include_email:
        data["authorEmail"] = comment.author_email
    return data


async def _reply_counts(db: AsyncSession, comment_ids: list[int]) -> dict[int, int]:
    if not comment_ids:
        return {}
    q = (
        select(Comment.parent_id, func.count())
        .where(Comment.parent_id.in_(comment_ids))
        .group_by(Comment.parent_id)
    )
    return dict((await db.execute(q)).all())


async def _load(db: AsyncSession, comment_id: int) -> Comment:
    q = (
        select(Comment)
        .where(Comment.id == comment_id)
        .options(joinedload(Comment.user), joinedload(Comment.article))
        .execution_options(populate_existing=True)
    )
    comment = (await db.execute(q)).unique().scalar_one_or_none()
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment


async def _detail(db: AsyncSession, comment_id: int, include_email: bool = True) -> dict:
    comment = await _load(db, comment_id)
    counts = await _reply_counts(db, [comment.id])
    data = _comment_to_dict(comment, include_email)
    data["article"] = article_summary(comment.article) if comment.article else None
    data["_count"] = {"replies": counts.get(comment.id, 0)}
    return data


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_comment(db: AsyncSession, data: CommentCreate, user: User | None) -> dict:
    if await db.get(Article, data.article_id) is None:
        raise NotFoundError("Article not found")

    if data.parent_id is not None:
        parent = await db.get(Comment, data.parent_id)
        if parent is None:
            raise NotFoundError("Parent comment not found")
        if parent.article_id != data.article_id:
            raise BadRequestError("Parent comment belongs to different article")

    if user is None and (not data.author_name or not data.author_email):
        raise BadRequestError("Guest comments require name and email")

    comment = Comment(
        article_id=data.article_id,
        parent_id=data.parent_id,
        user_id=user.id if user else None,
        content=data.content,
        author_name=data.author_name,
        author_email=data.author_email,
        status=CommentStatus.PENDING,
    )
    db.add(comment)
    await db.flush()
    logger.info("Comment id=%d on article id=%d awaiting moderation", comment.id, comment.article_id)
    return await _detail(db, comment.id)


async def list_comments(
    db: AsyncSession, query: CommentQuery, offset: int, limit: int
) -> tuple[list[dict], int]:
    """Moderation queue: every status, newest first, with reply counts."""
    filters = []
    if query.status is not None:
        filters.append(Comment.status == query.status)
    if query.article_id is not None:
        filters.append(Comment.article_id == query.article_id)

    total = (await db.execute(select(func.count()).select_from(Comment).where(*filters))).scalar_one()
    q = (
        select(Comment)
        .where(*filters)
        .options(joinedload(Comment.user), joinedload(Comment.article))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .offset(offset)
        .limit(limit)
    )
    comments = (await db.execute(q)).unique().scalars().all()
    counts = await _reply_counts(db, [c.id for c in comments])

    items = []
    for c in comments:
        data = _comment_to_dict(c, include_email=True)
        data["article"] = article_summary(c.article) if c.article else None
        data["_count"] = {"replies": counts.get(c.id, 0)}
        items.append(data)
    return items, total


async def get_article_comments(db: AsyncSession, article_id: int) -> list[dict]:
    """
    Approved comment tree of an article.

    Top-level comments come newest first, replies oldest first.  The whole
    approved set is fetched in one query and assembled here, so threads of
    any depth cost the same.
    """
    if await db.get(Article, article_id) is None:
        raise NotFoundError("Article not found")

    q = (
        select(Comment)
        .where(Comment.article_id == article_id, Comment.status == CommentStatus.APPROVED)
        .options(joinedload(Comment.user))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    comments = (await db.execute(q)).unique().scalars().all()

    nodes = {c.id: {**_comment_to_dict(c), "replies": []} for c in comments}
    roots = []
    for c in comments:
        node = nodes[c.id]
        if c.parent_id is None:
            roots.append(node)
        elif c.parent_id in nodes:
            nodes[c.parent_id]["replies"].append(node)
        # Replies under an unapproved parent stay hidden.
    roots.reverse()
    return roots


async def get_comment(db: AsyncSession, comment_id: int, viewer: User | None) -> dict:
    moderator = is_permitted(viewer, "comment", "moderate")
    data = await _detail(db, comment_id, include_email=moderator)
    if data["status"] != CommentStatus.APPROVED.value and not moderator:
        if viewer is None or viewer.id != data["userId"]:
            raise NotFoundError("Comment not found")
    return data


async def update_comment(db: AsyncSession, comment_id: int, data: CommentUpdate, actor: User) -> dict:
    comment = await _load(db, comment_id)
    ensure_owner_or_permitted(actor, comment.user_id, "comment", "edit_any")
    comment.content = data.content
    await db.flush()
    return await _detail(db, comment.id)


async def _moderate(db: AsyncSession, comment_id: int, status: CommentStatus, actor: User) -> dict:
    comment = await _load(db, comment_id)
    if comment.status != CommentStatus.PENDING:
        raise BadRequestError(f"Comment has already been moderated ({comment.status.value})")
    comment.status = status
    await db.flush()
    logger.info("Comment id=%d marked %s by user id=%d", comment.id, status.value, actor.id)
    return await _detail(db, comment.id)


async def approve_comment(db: AsyncSession, comment_id: int, actor: User) -> dict:
    return await _moderate(db, comment_id, CommentStatus.APPROVED, actor)


async def reject_comment(db: AsyncSession, comment_id: int, actor: User) -> dict:
    return await _moderate(db, comment_id, CommentStatus.REJECTED, actor)


async def mark_spam(db: AsyncSession, comment_id: int, actor: User) -> dict:
    return await _moderate(db, comment_id, CommentStatus.SPAM, actor)


async def delete_comment(db: AsyncSession, comment_id: int, actor: User) -> None:
    comment = await _load(db, comment_id)
    ensure_owner_or_permitted(actor, comment.user_id, "comment", "delete_any")
    replies = (await _reply_counts(db, [comment.id])).get(comment.id, 0)
    if replies:
        raise BadRequestError(f"Cannot delete comment with {replies} replies. Delete replies first.")
    await db.delete(comment)
    await db.flush()


async def get_comment_stats(db: AsyncSession) -> dict:
    by_status = dict((await db.execute(select(Comment.status, func.count()).group_by(Comment.status))).all())
    return {
        "total": sum(by_status.values()),
        "pending": by_status.get(CommentStatus.PENDING, 0),
        "approved": by_status.get(CommentStatus.APPROVED, 0),
        "rejected": by_status.get(CommentStatus.REJECTED, 0),
        "spam": by_status.get(CommentStatus.SPAM, 0),
    }
