from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from newsroom.models import ArticleStatus, CommentStatus, UserRole

URL_PATTERN = r"^https?://\S+$"


class CamelModel(BaseModel):
    """Accepts both ``camelCase`` and ``snake_case`` keys on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _not_null(value):
    # Partial updates may omit a required column but never clear it.
    if value is None:
        raise ValueError("must not be null")
    return value


# --- Auth / User ---

class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    name: str = Field(min_length=1, max_length=150)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class ProfileUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=150)
    bio: str | None = Field(None, max_length=500)
    avatar_url: str | None = Field(None, max_length=500, pattern=URL_PATTERN)

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value):
        return _not_null(value)


class ChangePasswordRequest(CamelModel):
    old_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=72)


class UserCreate(RegisterRequest):
    role: UserRole | None = None


class RoleChange(CamelModel):
    role: UserRole


# --- Category ---

class CategoryCreate(CamelModel):
    name: str = Field(min_length=1, max_length=150)
    description: str | None = None
    parent_id: int | None = None


class CategoryUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=150)
    description: str | None = None
    parent_id: int | None = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value):
        return _not_null(value)


# --- Tag ---

class TagCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)


class TagUpdate(TagCreate):
    pass


# --- Article ---

class ArticleCreate(CamelModel):
    title: str = Field(min_length=1, max_length=300)
    content: str = Field(min_length=1)
    excerpt: str | None = Field(None, max_length=500)
    featured_image: str | None = Field(None, max_length=500, pattern=URL_PATTERN)
    category_id: int | None = None
    tag_ids: list[int] | None = None
    tags: list[str] | None = None  # tag names, created on demand
    status: ArticleStatus | None = None


class ArticleUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    content: str | None = Field(None, min_length=1)
    excerpt: str | None = Field(None, max_length=500)
    featured_image: str | None = Field(None, max_length=500, pattern=URL_PATTERN)
    category_id: int | None = None
    tag_ids: list[int] | None = None
    tags: list[str] | None = None
    status: ArticleStatus | None = None

    @field_validator("title", "content")
    @classmethod
    def required_not_null(cls, value):
        return _not_null(value)


# --- Comment ---

class CommentCreate(CamelModel):
    article_id: int
    content: str = Field(min_length=1, max_length=5000)
    parent_id: int | None = None
    author_name: str | None = Field(None, min_length=1, max_length=150)
    author_email: EmailStr | None = None


class CommentUpdate(CamelModel):
    content: str = Field(min_length=1, max_length=5000)


# --- Query strings ---

class PaginationQuery(CamelModel):
    page: int = 1
    limit: int = 10


class ArticleQuery(PaginationQuery):
    status: ArticleStatus | None = None
    category_id: int | None = None
    author_id: int | None = None
    tag_id: int | None = None
    search: str | None = None
    q: str | None = None
    sort: Literal["createdAt", "publishedAt", "viewCount", "title"] = "createdAt"
    order: Literal["asc", "desc"] = "desc"


class CommentQuery(PaginationQuery):
    status: CommentStatus | None = None
    article_id: int | None = None


class UserQuery(PaginationQuery):
    role: UserRole | None = None
    search: str | None = None


class SearchQuery(PaginationQuery):
    q: str | None = None


class PopularQuery(CamelModel):
    limit: int = Field(10, ge=1, le=100)


class RelatedQuery(CamelModel):
    limit: int = Field(5, ge=1, le=20)
