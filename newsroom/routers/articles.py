from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.dependencies import PaginationParams, get_optional_user
from newsroom.errors import BadRequestError
from newsroom.models import User
from newsroom.permissions import require_permission
from newsroom.ratelimit import api_rate_limit
from newsroom.responses import paginated, success
from newsroom.schemas import ArticleCreate, ArticleQuery, ArticleUpdate, RelatedQuery
from newsroom.services import article_service, comment_service
from newsroom.validation import validate_request

router = APIRouter(prefix="/api/articles", tags=["articles"], dependencies=[Depends(api_rate_limit)])

require_writer = require_permission("article", "create")


@router.get("/stats")
async def article_stats(db: AsyncSession = Depends(get_db)):
    return success(await article_service.get_article_stats(db))


@router.get("/search")
async def search_articles(
    query: ArticleQuery = Depends(validate_request(ArticleQuery, "query")),
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    if not query.q:
        raise BadRequestError("Search query is required")
    items, total = await article_service.list_articles(
        db, query, pagination.offset, pagination.limit, viewer
    )
    return paginated(items, pagination.page, pagination.limit, total)


@router.get("")
async def list_articles(
    query: ArticleQuery = Depends(validate_request(ArticleQuery, "query")),
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await article_service.list_articles(
        db, query, pagination.offset, pagination.limit, viewer
    )
    return paginated(items, pagination.page, pagination.limit, total)


@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    author: User = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    return success(await article_service.create_article(db, data, author), "Article created successfully")


@router.get("/{article_id}/related")
async def related_articles(
    article_id: int,
    query: RelatedQuery = Depends(validate_request(RelatedQuery, "query")),
    db: AsyncSession = Depends(get_db),
):
    return success(await article_service.get_related_articles(db, article_id, query.limit))


@router.get("/{article_id}/comments")
async def article_comments(article_id: int, db: AsyncSession = Depends(get_db)):
    return success(await comment_service.get_article_comments(db, article_id))


@router.get("/{slug}")
async def get_article(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return success(await article_service.get_article_by_slug(db, slug, viewer))


@router.put("/{article_id}")
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    actor: User = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    return success(
        await article_service.update_article(db, article_id, data, actor), "Article updated successfully"
    )


@router.patch("/{article_id}/publish")
async def publish_article(
    article_id: int,
    actor: User = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    return success(await article_service.publish_article(db, article_id, actor), "Article published successfully")


@router.patch("/{article_id}/archive")
async def archive_article(
    article_id: int,
    actor: User = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    return success(await article_service.archive_article(db, article_id, actor), "Article archived successfully")


@router.delete("/{article_id}")
async def delete_article(
    article_id: int,
    actor: User = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article_id, actor)
    return success(message="Article deleted successfully")
