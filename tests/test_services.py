"""
Direct service-layer tests, exercising business logic with a database
session and no HTTP in between.
"""
import pytest
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from newsroom.models import ArticleStatus, User, UserRole
from newsroom.schemas import (
    ArticleCreate,
    ArticleQuery,
    ArticleUpdate,
    CommentCreate,
    RegisterRequest,
    TagCreate,
)
from newsroom.services import article_service, comment_service, tag_service, user_service


async def _user(db: AsyncSession, role: UserRole = UserRole.AUTHOR, email: str = "svc@example.com") -> User:
    return await user_service.create_user(
        db, RegisterRequest(email=email, password="password123", name="Service User"), role=role
    )


# ---------------------------------------------------------------------------
# user_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_register_then_authenticate(db_session: AsyncSession):
    payload = await user_service.register(
        db_session, RegisterRequest(email="new@example.com", password="password123", name="New")
    )
    assert payload["user"]["role"] == "AUTHOR"

    user = await user_service.authenticate(db_session, "new@example.com", "password123")
    assert user.email == "new@example.com"

    with pytest.raises(UnauthorizedError):
        await user_service.authenticate(db_session, "new@example.com", "nope")


@pytest.mark.asyncio
async def test_create_user_rejects_duplicate_email(db_session: AsyncSession):
    await _user(db_session)
    with pytest.raises(ConflictError):
        await _user(db_session)


@pytest.mark.asyncio
async def test_inactive_user_checked_before_password(db_session: AsyncSession):
    user = await _user(db_session)
    await user_service.set_active(db_session, user.id, False)
    with pytest.raises(ForbiddenError):
        await user_service.authenticate(db_session, user.email, "wrong-password")


@pytest.mark.asyncio
async def test_refresh_for_deactivated_user_fails(db_session: AsyncSession):
    payload = await user_service.register(
        db_session, RegisterRequest(email="r@example.com", password="password123", name="R")
    )
    await user_service.set_active(db_session, payload["user"]["id"], False)
    with pytest.raises(UnauthorizedError):
        await user_service.refresh_tokens(db_session, payload["refreshToken"])


# ---------------------------------------------------------------------------
# tag_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_or_create_tags_reuses_and_dedupes(db_session: AsyncSession):
    existing = await tag_service.create_tag(db_session, TagCreate(name="Data"))
    tags = await tag_service.get_or_create_tags(db_session, ["Data", " Data ", "Graphs", ""])
    assert [t.name for t in tags] == ["Data", "Graphs"]
    assert tags[0].id == existing["id"]


@pytest.mark.asyncio
async def test_relationships_must_be_loaded_explicitly(db_session: AsyncSession):
    author = await _user(db_session)
    created = await article_service.create_article(
        db_session, ArticleCreate(title="Loaded", content="c", tags=["Wire"]), author
    )
    assert created["tags"][0]["name"] == "Wire"

    with pytest.raises(InvalidRequestError):
        author.articles


@pytest.mark.asyncio
async def test_get_missing_tag(db_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await tag_service.get_tag(db_session, 123)


# ---------------------------------------------------------------------------
# article_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_articles_forces_published_for_anonymous(db_session: AsyncSession):
    author = await _user(db_session)
    await article_service.create_article(db_session, ArticleCreate(title="Draft", content="c"), author)
    await article_service.create_article(
        db_session, ArticleCreate(title="Live", content="c", status=ArticleStatus.PUBLISHED), author
    )

    query = ArticleQuery(status=ArticleStatus.DRAFT)
    items, total = await article_service.list_articles(db_session, query, 0, 10, viewer=None)
    assert total == 1
    assert items[0]["title"] == "Live"
    assert "content" not in items[0]

    items, total = await article_service.list_articles(db_session, query, 0, 10, viewer=author)
    assert [a["title"] for a in items] == ["Draft"]


@pytest.mark.asyncio
async def test_list_published_by_tag(db_session: AsyncSession):
    author = await _user(db_session)
    tagged = await article_service.create_article(
        db_session, ArticleCreate(title="Tagged", content="c", tags=["Night"], status=ArticleStatus.PUBLISHED), author
    )
    await article_service.create_article(
        db_session, ArticleCreate(title="Tagged draft", content="c", tags=["Night"]), author
    )
    tag_id = tagged["tags"][0]["id"]

    items, total = await article_service.list_published(db_session, 0, 10, tag_id=tag_id)
    assert total == 1
    assert items[0]["id"] == tagged["id"]


@pytest.mark.asyncio
async def test_update_keeps_slug_when_title_unchanged(db_session: AsyncSession):
    author = await _user(db_session)
    article = await article_service.create_article(db_session, ArticleCreate(title="Same", content="c"), author)
    updated = await article_service.update_article(
        db_session, article["id"], ArticleUpdate(title="Same", excerpt="Short"), author
    )
    assert updated["slug"] == "same"
    assert updated["excerpt"] == "Short"


# ---------------------------------------------------------------------------
# comment_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_reply_under_rejected_parent_stays_hidden(db_session: AsyncSession):
    author = await _user(db_session)
    editor = await _user(db_session, UserRole.EDITOR, email="ed@example.com")
    article = await article_service.create_article(
        db_session, ArticleCreate(title="A", content="c", status=ArticleStatus.PUBLISHED), author
    )
    parent = await comment_service.create_comment(
        db_session, CommentCreate(article_id=article["id"], content="Parent"), author
    )
    reply = await comment_service.create_comment(
        db_session, CommentCreate(article_id=article["id"], content="Reply", parent_id=parent["id"]), author
    )
    await comment_service.reject_comment(db_session, parent["id"], editor)
    await comment_service.approve_comment(db_session, reply["id"], editor)

    assert await comment_service.get_article_comments(db_session, article["id"]) == []


@pytest.mark.asyncio
async def test_moderating_twice_fails(db_session: AsyncSession):
    author = await _user(db_session)
    article = await article_service.create_article(db_session, ArticleCreate(title="A", content="c"), author)
    comment = await comment_service.create_comment(
        db_session, CommentCreate(article_id=article["id"], content="Hi"), author
    )
    await comment_service.mark_spam(db_session, comment["id"], author)
    with pytest.raises(BadRequestError, match="SPAM"):
        await comment_service.approve_comment(db_session, comment["id"], author)
