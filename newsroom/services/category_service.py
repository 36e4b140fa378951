"""
Category service.

Categories form a tree through ``parent_id``.  Only the direct
self-reference is rejected; longer cycles are not checked.  A category that
still has articles or subcategories cannot be deleted.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.errors import BadRequestError, NotFoundError
from newsroom.models import Article, Category
from newsroom.schemas import CategoryCreate, CategoryUpdate
from newsroom.services.serializers import category_summary, iso
from newsroom.slugs import unique_slug


def _category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "parentId": category.parent_id,
        "createdAt": iso(category.created_at),
        "updatedAt": iso(category.updated_at),
    }


async def _slug_for(db: AsyncSession, name: str, exclude_id: int | None = None) -> str:
    async def taken(candidate: str) -> bool:
        q = select(Category.id).where(Category.slug == candidate)
        if exclude_id is not None:
            q = q.where(Category.id != exclude_id)
        return (await db.execute(q.limit(1))).first() is not None

    return await unique_slug(name, taken)


async def _ensure_parent(db: AsyncSession, parent_id: int | None) -> None:
    if parent_id is not None and await db.get(Category, parent_id) is None:
        raise NotFoundError("Parent category not found")


async def _article_counts(db: AsyncSession) -> dict[int, int]:
    q = (
        select(Article.category_id, func.count())
        .where(Article.category_id.is_not(None))
        .group_by(Article.category_id)
    )
    return dict((await db.execute(q)).all())


async def _get_or_404(db: AsyncSession, *conditions) -> Category:
    category = (await db.execute(select(Category).where(*conditions))).scalar_one_or_none()
    if category is None:
        raise NotFoundError("Category not found")
    return category


async def _expanded(db: AsyncSession, category: Category) -> dict:
    """Category with its parent, direct children and article count."""
    parent = await db.get(Category, category.parent_id) if category.parent_id else None
    children = (
        await db.execute(
            select(Category).where(Category.parent_id == category.id).order_by(Category.name.asc())
        )
    ).scalars().all()
    articles = (
        await db.execute(select(func.count()).select_from(Article).where(Article.category_id == category.id))
    ).scalar_one()
    data = _category_to_dict(category)
    data["parent"] = category_summary(parent)
    data["children"] = [category_summary(c) for c in children]
    data["_count"] = {"articles": articles, "children": len(children)}
    return data


async def create_category(db: AsyncSession, data: CategoryCreate) -> dict:
    await _ensure_parent(db, data.parent_id)
    category = Category(
        name=data.name,
        slug=await _slug_for(db, data.name),
        description=data.description,
        parent_id=data.parent_id,
    )
    db.add(category)
    await db.flush()
    return await _expanded(db, category)


async def list_categories(db: AsyncSession) -> list[dict]:
    """Every category in name order with parent, children and article counts."""
    categories = (await db.execute(select(Category).order_by(Category.name.asc()))).scalars().all()
    counts = await _article_counts(db)
    by_id = {c.id: c for c in categories}

    children: dict[int, list[Category]] = {}
    for c in categories:
        if c.parent_id is not None:
            children.setdefault(c.parent_id, []).append(c)

    items = []
    for c in categories:
        data = _category_to_dict(c)
        data["parent"] = category_summary(by_id.get(c.parent_id))
        data["children"] = [category_summary(child) for child in children.get(c.id, [])]
        data["_count"] = {"articles": counts.get(c.id, 0), "children": len(children.get(c.id, []))}
        items.append(data)
    return items


async def get_category_tree(db: AsyncSession) -> list[dict]:
    """Root categories with their direct children nested under ``children``."""
    roots = (
        await db.execute(select(Category).where(Category.parent_id.is_(None)).order_by(Category.name.asc()))
    ).scalars().all()
    nested = (
        await db.execute(select(Category).where(Category.parent_id.is_not(None)).order_by(Category.name.asc()))
    ).scalars().all()
    counts = await _article_counts(db)

    tree = []
    for root in roots:
        data = _category_to_dict(root)
        data["_count"] = {"articles": counts.get(root.id, 0)}
        data["children"] = [
            {**_category_to_dict(c), "_count": {"articles": counts.get(c.id, 0)}}
            for c in nested
            if c.parent_id == root.id
        ]
        tree.append(data)
    return tree


async def get_category_by_slug(db: AsyncSession, slug: str) -> dict:
    return await _expanded(db, await _get_or_404(db, Category.slug == slug))


async def get_category(db: AsyncSession, category_id: int) -> dict:
    return await _expanded(db, await _get_or_404(db, Category.id == category_id))


async def update_category(db: AsyncSession, category_id: int, data: CategoryUpdate) -> dict:
    category = await _get_or_404(db, Category.id == category_id)
    fields = data.model_dump(exclude_unset=True)

    if "parent_id" in fields:
        if data.parent_id == category.id:
            raise BadRequestError("Category cannot be its own parent")
        await _ensure_parent(db, data.parent_id)
        category.parent_id = data.parent_id
    if data.name and data.name != category.name:
        category.name = data.name
        category.slug = await _slug_for(db, data.name, exclude_id=category.id)
    if "description" in fields:
        category.description = data.description

    await db.flush()
    return await _expanded(db, category)


async def delete_category(db: AsyncSession, category_id: int) -> None:
    category = await _get_or_404(db, Category.id == category_id)
    expanded = await _expanded(db, category)
    articles = expanded["_count"]["articles"]
    children = expanded["_count"]["children"]
    if articles:
        raise BadRequestError(f"Cannot delete category with {articles} articles")
    if children:
        raise BadRequestError(f"Cannot delete category with {children} subcategories")
    await db.delete(category)
    await db.flush()
