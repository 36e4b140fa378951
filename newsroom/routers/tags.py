from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.dependencies import PaginationParams
from newsroom.permissions import require_permission
from newsroom.ratelimit import api_rate_limit
from newsroom.responses import paginated, success
from newsroom.schemas import PopularQuery, TagCreate, TagUpdate
from newsroom.services import article_service, tag_service
from newsroom.validation import validate_request

router = APIRouter(prefix="/api/tags", tags=["tags"], dependencies=[Depends(api_rate_limit)])


@router.get("")
async def list_tags(db: AsyncSession = Depends(get_db)):
    return success(await tag_service.list_tags(db))


@router.get("/popular")
async def popular_tags(
    query: PopularQuery = Depends(validate_request(PopularQuery, "query")),
    db: AsyncSession = Depends(get_db),
):
    return success(await tag_service.popular_tags(db, query.limit))


@router.get("/{slug}")
async def get_tag(slug: str, db: AsyncSession = Depends(get_db)):
    return success(await tag_service.get_tag_by_slug(db, slug))


@router.get("/{slug}/articles")
async def tag_articles(
    slug: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    tag = await tag_service.get_tag_by_slug(db, slug)
    items, total = await article_service.list_published(
        db, pagination.offset, pagination.limit, tag_id=tag["id"]
    )
    return paginated({"tag": tag, "articles": items}, pagination.page, pagination.limit, total)


@router.post("", status_code=201, dependencies=[Depends(require_permission("tag", "create"))])
async def create_tag(data: TagCreate, db: AsyncSession = Depends(get_db)):
    return success(await tag_service.create_tag(db, data), "Tag created successfully")


@router.put("/{tag_id}", dependencies=[Depends(require_permission("tag", "manage"))])
async def update_tag(tag_id: int, data: TagUpdate, db: AsyncSession = Depends(get_db)):
    return success(await tag_service.update_tag(db, tag_id, data), "Tag updated successfully")


@router.delete("/{tag_id}", dependencies=[Depends(require_permission("tag", "manage"))])
async def delete_tag(tag_id: int, db: AsyncSession = Depends(get_db)):
    await tag_service.delete_tag(db, tag_id)
    return success(message="Tag deleted successfully")
