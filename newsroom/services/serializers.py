"""
Plain-dict projections shared by the services.

Keys are camelCase because these dicts are returned to clients as-is.
Nested summaries deliberately stay shallow to avoid circular nesting.
"""
from datetime import datetime


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_to_dict(user) -> dict:
    """Full profile; the password hash never leaves the model."""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "avatarUrl": user.avatar_url,
        "bio": user.bio,
        "isActive": user.is_active,
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }


def author_summary(user) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email, "avatarUrl": user.avatar_url}


def category_summary(category) -> dict | None:
    if category is None:
        return None
    return {"id": category.id, "name": category.name, "slug": category.slug}


def tag_summary(tag) -> dict:
    return {"id": tag.id, "name": tag.name, "slug": tag.slug}


def article_summary(article) -> dict:
    return {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "status": article.status.value,
    }
