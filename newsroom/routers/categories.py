from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.dependencies import PaginationParams
from newsroom.permissions import require_permission
from newsroom.ratelimit import api_rate_limit
from newsroom.responses import paginated, success
from newsroom.schemas import CategoryCreate, CategoryUpdate
from newsroom.services import article_service, category_service

router = APIRouter(prefix="/api/categories", tags=["categories"], dependencies=[Depends(api_rate_limit)])

require_category_admin = require_permission("category", "manage")


@router.get("")
async def list_categories(db: AsyncSession = Depends(get_db)):
    return success(await category_service.list_categories(db))


@router.get("/tree")
async def category_tree(db: AsyncSession = Depends(get_db)):
    return success(await category_service.get_category_tree(db))


@router.get("/{slug}")
async def get_category(slug: str, db: AsyncSession = Depends(get_db)):
    return success(await category_service.get_category_by_slug(db, slug))


@router.get("/{slug}/articles")
async def category_articles(
    slug: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.get_category_by_slug(db, slug)
    items, total = await article_service.list_published(
        db, pagination.offset, pagination.limit, category_id=category["id"]
    )
    return paginated({"category": category, "articles": items}, pagination.page, pagination.limit, total)


@router.post("", status_code=201, dependencies=[Depends(require_category_admin)])
async def create_category(data: CategoryCreate, db: AsyncSession = Depends(get_db)):
    return success(await category_service.create_category(db, data), "Category created successfully")


@router.put("/{category_id}", dependencies=[Depends(require_category_admin)])
async def update_category(category_id: int, data: CategoryUpdate, db: AsyncSession = Depends(get_db)):
    return success(
        await category_service.update_category(db, category_id, data), "Category updated successfully"
    )


@router.delete("/{category_id}", dependencies=[Depends(require_category_admin)])
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db)):
    await category_service.delete_category(db, category_id)
    return success(message="Category deleted successfully")
