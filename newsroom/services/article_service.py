"""
Article service: business logic for the Article aggregate.

Design notes
------------
- Relationships are declared ``lazy="raise"``; every read states what it needs
  with ``joinedload`` (many-to-one: author, category) or ``selectinload``
  (many-to-many: tags).  Comment counts come from one grouped COUNT per
  page instead of loading the comment collections.
- Anonymous readers only ever see PUBLISHED articles.  Authenticated users
  see every status, which is what the editorial dashboard relies on.
- ``published_at`` records the first publication and is never reset.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import asc, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from newsroom.errors import NotFoundError
from newsroom.models import Article, ArticleStatus, Category, Comment, Tag, User
from newsroom.permissions import ensure_owner_or_permitted
from newsroom.schemas import ArticleCreate, ArticleQuery, ArticleUpdate
from newsroom.services import tag_service
from newsroom.services.serializers import author_summary, category_summary, iso, tag_summary
from newsroom.slugs import unique_slug

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "createdAt": Article.created_at,
    "publishedAt": Article.published_at,
    "viewCount": Article.view_count,
    "title": Article.title,
}

_WITH_RELATIONS = (
    joinedload(Article.author),
    joinedload(Article.category),
    selectinload(Article.tags),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _article_to_dict(article: Article, comment_count: int = 0, with_content: bool = True) -> dict:
    data = {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "excerpt": article.excerpt,
        "featuredImage": article.featured_image,
        "status": article.status.value,
        "viewCount": article.view_count,
        "publishedAt": iso(article.published_at),
        "createdAt": iso(article.created_at),
        "updatedAt": iso(article.updated_at),
        "authorId": article.author_id,
        "categoryId": article.category_id,
        "author": author_summary(article.author),
        "category": category_summary(article.category),
        "tags": [tag_summary(t) for t in article.tags],
        "_count": {"comments": comment_count},
    }
    if with_content:
        data["content"] = article.content
    return data


async def _comment_counts(db: AsyncSession, article_ids: list[int]) -> dict[int, int]:
    if not article_ids:
        return {}
    q = (
        select(Comment.article_id, func.count())
        .where(Comment.article_id.in_(article_ids))
        .group_by(Comment.article_id)
    )
    return {article_id: count for article_id, count in (await db.execute(q)).all()}


async def serialize_page(db: AsyncSession, articles: list[Article]) -> list[dict]:
    """List-view dicts for *articles* with their comment counts."""
    counts = await _comment_counts(db, [a.id for a in articles])
    return [_article_to_dict(a, counts.get(a.id, 0), with_content=False) for a in articles]


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------

async def _load(db: AsyncSession, article_id: int, relations: bool = True) -> Article:
    q = select(Article).where(Article.id == article_id)
    if relations:
        q = q.options(*_WITH_RELATIONS).execution_options(populate_existing=True)
    article = (await db.execute(q)).unique().scalar_one_or_none()
    if article is None:
        raise NotFoundError("Article not found")
    return article


async def _detail(db: AsyncSession, article_id: int) -> dict:
    article = await _load(db, article_id)
    counts = await _comment_counts(db, [article.id])
    return _article_to_dict(article, counts.get(article.id, 0))


async def _slug_for(db: AsyncSession, title: str, exclude_id: int | None = None) -> str:
    async def taken(candidate: str) -> bool:
        q = select(Article.id).where(Article.slug == candidate)
        if exclude_id is not None:
            q = q.where(Article.id != exclude_id)
        return (await db.execute(q.limit(1))).first() is not None

    return await unique_slug(title, taken)


async def _ensure_category(db: AsyncSession, category_id: int | None) -> None:
    if category_id is not None and await db.get(Category, category_id) is None:
        raise NotFoundError("Category not found")


async def _collect_tags(db: AsyncSession, tag_ids: list[int] | None, names: list[str] | None) -> list[Tag]:
    tags: dict[int, Tag] = {}
    if tag_ids:
        wanted = set(tag_ids)
        found = (await db.execute(select(Tag).where(Tag.id.in_(wanted)))).scalars().all()
        if len(found) != len(wanted):
            raise NotFoundError("One or more tags not found")
        tags.update({t.id: t for t in found})
    if names:
        for tag in await tag_service.get_or_create_tags(db, names):
            tags[tag.id] = tag
    return list(tags.values())


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_article(db: AsyncSession, data: ArticleCreate, author: User) -> dict:
    await _ensure_category(db, data.category_id)
    tags = await _collect_tags(db, data.tag_ids, data.tags)
    status = data.status or ArticleStatus.DRAFT

    article = Article(
        title=data.title,
        slug=await _slug_for(db, data.title),
        content=data.content,
        excerpt=data.excerpt,
        featured_image=data.featured_image,
        status=status,
        published_at=_utcnow() if status == ArticleStatus.PUBLISHED else None,
        author_id=author.id,
        category_id=data.category_id,
        tags=tags,
    )
    db.add(article)
    await db.flush()
    logger.info("Article id=%d created by user id=%d slug=%s", article.id, author.id, article.slug)
    return await _detail(db, article.id)


async def get_article_by_slug(db: AsyncSession, slug: str, viewer: User | None) -> dict:
    """
    Detail view by slug.

    Anonymous readers get 404 for anything not PUBLISHED, and each of their
    reads of a published article bumps ``view_count`` atomically.
    """
    q = select(Article).where(Article.slug == slug).options(*_WITH_RELATIONS)
    article = (await db.execute(q)).unique().scalar_one_or_none()
    if article is None or (viewer is None and article.status != ArticleStatus.PUBLISHED):
        raise NotFoundError("Article not found")

    counts = await _comment_counts(db, [article.id])
    data = _article_to_dict(article, counts.get(article.id, 0))

    if viewer is None:
        await db.execute(
            update(Article)
            .where(Article.id == article.id)
            .values(view_count=Article.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        data["viewCount"] += 1
    return data


async def get_article(db: AsyncSession, article_id: int) -> dict:
    return await _detail(db, article_id)


async def list_articles(
    db: AsyncSession,
    query: ArticleQuery,
    offset: int,
    limit: int,
    viewer: User | None,
) -> tuple[list[dict], int]:
    filters = []
    status = ArticleStatus.PUBLISHED if viewer is None else query.status
    if status is not None:
        filters.append(Article.status == status)
    if query.category_id is not None:
        filters.append(Article.category_id == query.category_id)
    if query.author_id is not None:
        filters.append(Article.author_id == query.author_id)
    if query.tag_id is not None:
        filters.append(Article.tags.any(Tag.id == query.tag_id))
    term = query.search or query.q
    if term:
        pattern = f"%{term.lower()}%"
        filters.append(
            or_(
                func.lower(Article.title).like(pattern),
                func.lower(Article.content).like(pattern),
                func.lower(Article.excerpt).like(pattern),
            )
        )

    total = (await db.execute(select(func.count()).select_from(Article).where(*filters))).scalar_one()

    direction = asc if query.order == "asc" else desc
    q = (
        select(Article)
        .where(*filters)
        .options(*_WITH_RELATIONS)
        .order_by(direction(_SORT_COLUMNS[query.sort]), direction(Article.id))
        .offset(offset)
        .limit(limit)
    )
    articles = (await db.execute(q)).unique().scalars().all()
    return await serialize_page(db, list(articles)), total


async def list_published(
    db: AsyncSession,
    offset: int,
    limit: int,
    category_id: int | None = None,
    tag_id: int | None = None,
) -> tuple[list[dict], int]:
    """Published articles of one category or tag, newest publication first."""
    filters = [Article.status == ArticleStatus.PUBLISHED]
    if category_id is not None:
        filters.append(Article.category_id == category_id)
    if tag_id is not None:
        filters.append(Article.tags.any(Tag.id == tag_id))

    total = (await db.execute(select(func.count()).select_from(Article).where(*filters))).scalar_one()
    q = (
        select(Article)
        .where(*filters)
        .options(*_WITH_RELATIONS)
        .order_by(Article.published_at.desc(), Article.id.desc())
        .offset(offset)
        .limit(limit)
    )
    articles = (await db.execute(q)).unique().scalars().all()
    return await serialize_page(db, list(articles)), total


async def update_article(db: AsyncSession, article_id: int, data: ArticleUpdate, actor: User) -> dict:
    article = await _load(db, article_id)
    ensure_owner_or_permitted(actor, article.author_id, "article", "edit_any")

    fields = data.model_dump(exclude_unset=True)
    if "title" in fields and data.title and data.title != article.title:
        article.title = data.title
        article.slug = await _slug_for(db, data.title, exclude_id=article.id)
    for name in ("content", "excerpt", "featured_image"):
        if name in fields:
            setattr(article, name, fields[name])
    if "category_id" in fields:
        await _ensure_category(db, data.category_id)
        article.category_id = data.category_id
    if "tag_ids" in fields or "tags" in fields:
        article.tags = await _collect_tags(db, data.tag_ids, data.tags)
    if data.status is not None:
        _set_status(article, data.status)

    await db.flush()
    return await _detail(db, article.id)


def _set_status(article: Article, status: ArticleStatus) -> None:
    article.status = status
    if status == ArticleStatus.PUBLISHED and article.published_at is None:
        article.published_at = _utcnow()


async def publish_article(db: AsyncSession, article_id: int, actor: User) -> dict:
    article = await _load(db, article_id, relations=False)
    ensure_owner_or_permitted(actor, article.author_id, "article", "publish_any")
    _set_status(article, ArticleStatus.PUBLISHED)
    await db.flush()
    logger.info("Article id=%d published by user id=%d", article.id, actor.id)
    return await _detail(db, article.id)


async def archive_article(db: AsyncSession, article_id: int, actor: User) -> dict:
    article = await _load(db, article_id, relations=False)
    ensure_owner_or_permitted(actor, article.author_id, "article", "publish_any")
    _set_status(article, ArticleStatus.ARCHIVED)
    await db.flush()
    return await _detail(db, article.id)


async def delete_article(db: AsyncSession, article_id: int, actor: User) -> None:
    article = await _load(db, article_id, relations=False)
    ensure_owner_or_permitted(actor, article.author_id, "article", "delete_any")
    await db.delete(article)
    await db.flush()
    logger.info("Article id=%d deleted by user id=%d", article_id, actor.id)


async def get_related_articles(db: AsyncSession, article_id: int, limit: int = 5) -> list[dict]:
    """Published articles sharing the category or at least one tag, newest first."""
    article = (
        await db.execute(select(Article).where(Article.id == article_id).options(selectinload(Article.tags)))
    ).scalar_one_or_none()
    if article is None:
        raise NotFoundError("Article not found")

    tag_ids = [t.id for t in article.tags]
    links = []
    if article.category_id is not None:
        links.append(Article.category_id == article.category_id)
    if tag_ids:
        links.append(Article.tags.any(Tag.id.in_(tag_ids)))
    if not links:
        return []

    q = (
        select(Article)
        .where(Article.id != article_id, Article.status == ArticleStatus.PUBLISHED, or_(*links))
        .options(*_WITH_RELATIONS)
        .order_by(Article.published_at.desc(), Article.id.desc())
        .limit(limit)
    )
    related = (await db.execute(q)).unique().scalars().all()
    return await serialize_page(db, list(related))


async def get_article_stats(db: AsyncSession) -> dict:
    by_status = dict((await db.execute(select(Article.status, func.count()).group_by(Article.status))).all())
    total_views = (await db.execute(select(func.coalesce(func.sum(Article.view_count), 0)))).scalar_one()
    return {
        "total": sum(by_status.values()),
        "published": by_status.get(ArticleStatus.PUBLISHED, 0),
        "draft": by_status.get(ArticleStatus.DRAFT, 0),
        "archived": by_status.get(ArticleStatus.ARCHIVED, 0),
        "totalViews": int(total_views),
    }
