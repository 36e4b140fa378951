"""
Tag service.

Tags are flat labels; slugs follow the name and are regenerated on rename.
A tag still attached to an article cannot be deleted.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.errors import BadRequestError, ConflictError, NotFoundError
from newsroom.models import Tag, article_tags
from newsroom.schemas import TagCreate, TagUpdate
from newsroom.services.serializers import iso
from newsroom.slugs import unique_slug

_usage = (
    select(article_tags.c.tag_id, func.count().label("articles"))
    .group_by(article_tags.c.tag_id)
    .subquery()
)


def _tag_to_dict(tag: Tag, article_count: int = 0) -> dict:
    return {
        "id": tag.id,
        "name": tag.name,
        "slug": tag.slug,
        "createdAt": iso(tag.created_at),
        "_count": {"articles": article_count},
    }


async def _slug_for(db: AsyncSession, name: str, exclude_id: int | None = None) -> str:
    async def taken(candidate: str) -> bool:
        q = select(Tag.id).where(Tag.slug == candidate)
        if exclude_id is not None:
            q = q.where(Tag.id != exclude_id)
        return (await db.execute(q.limit(1))).first() is not None

    return await unique_slug(name, taken)


async def _ensure_name_free(db: AsyncSession, name: str, exclude_id: int | None = None) -> None:
    q = select(Tag.id).where(Tag.name == name)
    if exclude_id is not None:
        q = q.where(Tag.id != exclude_id)
    if (await db.execute(q.limit(1))).first() is not None:
        raise ConflictError("Tag already exists")


async def _with_count(db: AsyncSession, *conditions) -> list[tuple[Tag, int]]:
    q = (
        select(Tag, func.coalesce(_usage.c.articles, 0))
        .outerjoin(_usage, _usage.c.tag_id == Tag.id)
        .where(*conditions)
    )
    return [(tag, count) for tag, count in (await db.execute(q)).all()]


async def _one(db: AsyncSession, *conditions) -> dict:
    rows = await _with_count(db, *conditions)
    if not rows:
        raise NotFoundError("Tag not found")
    tag, count = rows[0]
    return _tag_to_dict(tag, count)


async def create_tag(db: AsyncSession, data: TagCreate) -> dict:
    await _ensure_name_free(db, data.name)
    tag = Tag(name=data.name, slug=await _slug_for(db, data.name))
    db.add(tag)
    await db.flush()
    return _tag_to_dict(tag)


async def list_tags(db: AsyncSession) -> list[dict]:
    q = (
        select(Tag, func.coalesce(_usage.c.articles, 0))
        .outerjoin(_usage, _usage.c.tag_id == Tag.id)
        .order_by(Tag.name.asc())
    )
    return [_tag_to_dict(tag, count) for tag, count in (await db.execute(q)).all()]


async def popular_tags(db: AsyncSession, limit: int = 10) -> list[dict]:
    usage = func.coalesce(_usage.c.articles, 0)
    q = (
        select(Tag, usage)
        .outerjoin(_usage, _usage.c.tag_id == Tag.id)
        .order_by(usage.desc(), Tag.name.asc())
        .limit(limit)
    )
    return [_tag_to_dict(tag, count) for tag, count in (await db.execute(q)).all()]


async def get_tag_by_slug(db: AsyncSession, slug: str) -> dict:
    return await _one(db, Tag.slug == slug)


async def get_tag(db: AsyncSession, tag_id: int) -> dict:
    return await _one(db, Tag.id == tag_id)


async def update_tag(db: AsyncSession, tag_id: int, data: TagUpdate) -> dict:
    tag = await db.get(Tag, tag_id)
    if tag is None:
        raise NotFoundError("Tag not found")
    if data.name != tag.name:
        await _ensure_name_free(db, data.name, exclude_id=tag.id)
        tag.name = data.name
        tag.slug = await _slug_for(db, data.name, exclude_id=tag.id)
        await db.flush()
    return await _one(db, Tag.id == tag.id)


async def delete_tag(db: AsyncSession, tag_id: int) -> None:
    tag = await _one(db, Tag.id == tag_id)
    used = tag["_count"]["articles"]
    if used:
        raise BadRequestError(f"Cannot delete tag used in {used} articles")
    await db.delete(await db.get(Tag, tag_id))
    await db.flush()


async def get_or_create_tags(db: AsyncSession, names: list[str]) -> list[Tag]:
    """
    Resolve tag *names* to Tag rows, creating the missing ones.

    Names are matched exactly after trimming; blanks and repeats are skipped.
    """
    tags: list[Tag] = []
    seen: set[str] = set()
    for raw in names:
        name = raw.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        tag = (await db.execute(select(Tag).where(Tag.name == name))).scalar_one_or_none()
        if tag is None:
            tag = Tag(name=name, slug=await _slug_for(db, name))
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags
