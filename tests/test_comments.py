"""
Comment tests: guest and member submission, the moderation workflow,
the public approved-only tree, and deletion rules.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient

from newsroom.models import UserRole


@pytest_asyncio.fixture
async def published_article(async_client: AsyncClient, make_user):
    _, headers = await make_user()
    resp = await async_client.post(
        "/api/articles", json={"title": "Commentable", "content": "Body", "status": "PUBLISHED"}, headers=headers
    )
    return resp.json()["data"]


async def _guest_comment(client: AsyncClient, article_id: int, content="Nice piece", parent_id=None):
    payload = {"articleId": article_id, "content": content, "authorName": "Guest", "authorEmail": "guest@example.com"}
    if parent_id is not None:
        payload["parentId"] = parent_id
    resp = await client.post("/api/comments", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_guest_comment_starts_pending(async_client: AsyncClient, published_article):
    body = await _guest_comment(async_client, published_article["id"])
    assert body["message"] == "Comment submitted successfully. It will be visible after moderation."
    assert body["data"]["status"] == "PENDING"
    assert body["data"]["authorName"] == "Guest"
    assert body["data"]["userId"] is None

    public = (await async_client.get(f"/api/articles/{published_article['id']}/comments")).json()
    assert public["data"] == []


@pytest.mark.asyncio
async def test_guest_comment_requires_name_and_email(async_client: AsyncClient, published_article):
    resp = await async_client.post(
        "/api/comments", json={"articleId": published_article["id"], "content": "Anonymous"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Guest comments require name and email"


@pytest.mark.asyncio
async def test_member_comment_is_pending_too(async_client: AsyncClient, published_article, make_user):
    member, headers = await make_user(name="Member")
    resp = await async_client.post(
        "/api/comments", json={"articleId": published_article["id"], "content": "Mine"}, headers=headers
    )
    data = resp.json()["data"]
    assert data["status"] == "PENDING"
    assert data["userId"] == member.id
    assert data["authorName"] == "Member"


@pytest.mark.asyncio
async def test_comment_on_missing_article(async_client: AsyncClient):
    resp = await async_client.post(
        "/api/comments",
        json={"articleId": 404, "content": "x", "authorName": "G", "authorEmail": "g@example.com"},
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "Article not found"


@pytest.mark.asyncio
async def test_parent_must_belong_to_same_article(async_client: AsyncClient, published_article, make_user):
    _, headers = await make_user()
    other = (
        await async_client.post("/api/articles", json={"title": "Other", "content": "B"}, headers=headers)
    ).json()["data"]
    parent = (await _guest_comment(async_client, published_article["id"]))["data"]

    resp = await async_client.post(
        "/api/comments",
        json={
            "articleId": other["id"],
            "parentId": parent["id"],
            "content": "Wrong thread",
            "authorName": "G",
            "authorEmail": "g@example.com",
        },
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Parent comment belongs to different article"

    resp = await async_client.post(
        "/api/comments",
        json={"articleId": other["id"], "parentId": 999, "content": "x", "authorName": "G", "authorEmail": "g@example.com"},
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "Parent comment not found"


@pytest.mark.asyncio
async def test_moderation_flow_builds_public_tree(async_client: AsyncClient, published_article, make_user):
    _, editor = await make_user(UserRole.EDITOR)
    article_id = published_article["id"]

    root = (await _guest_comment(async_client, article_id, "Root"))["data"]
    reply = (await _guest_comment(async_client, article_id, "Reply", parent_id=root["id"]))["data"]
    hidden = (await _guest_comment(async_client, article_id, "Hidden reply", parent_id=root["id"]))["data"]

    for comment_id in (root["id"], reply["id"]):
        resp = await async_client.patch(f"/api/comments/{comment_id}/approve", headers=editor)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "APPROVED"
    await async_client.patch(f"/api/comments/{hidden['id']}/spam", headers=editor)

    tree = (await async_client.get(f"/api/articles/{article_id}/comments")).json()["data"]
    assert len(tree) == 1
    assert tree[0]["content"] == "Root"
    assert [r["content"] for r in tree[0]["replies"]] == ["Reply"]
    assert "authorEmail" not in tree[0]


@pytest.mark.asyncio
async def test_roots_newest_first_replies_oldest_first(async_client: AsyncClient, published_article, make_user):
    _, editor = await make_user(UserRole.EDITOR)
    article_id = published_article["id"]
    first = (await _guest_comment(async_client, article_id, "First root"))["data"]
    second = (await _guest_comment(async_client, article_id, "Second root"))["data"]
    r1 = (await _guest_comment(async_client, article_id, "Reply one", parent_id=first["id"]))["data"]
    r2 = (await _guest_comment(async_client, article_id, "Reply two", parent_id=first["id"]))["data"]
    ids = [first["id"], second["id"], r1["id"], r2["id"]]
    for comment_id in ids:
        await async_client.patch(f"/api/comments/{comment_id}/approve", headers=editor)

    tree = (await async_client.get(f"/api/articles/{article_id}/comments")).json()["data"]
    assert [c["content"] for c in tree] == ["Second root", "First root"]
    assert [r["content"] for r in tree[1]["replies"]] == ["Reply one", "Reply two"]


@pytest.mark.asyncio
async def test_moderation_is_final(async_client: AsyncClient, published_article, make_user):
    _, editor = await make_user(UserRole.EDITOR)
    comment = (await _guest_comment(async_client, published_article["id"]))["data"]

    await async_client.patch(f"/api/comments/{comment['id']}/reject", headers=editor)
    resp = await async_client.patch(f"/api/comments/{comment['id']}/approve", headers=editor)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Comment has already been moderated (REJECTED)"


@pytest.mark.asyncio
async def test_authors_cannot_moderate(async_client: AsyncClient, published_article, make_user):
    _, author = await make_user()
    comment = (await _guest_comment(async_client, published_article["id"]))["data"]
    resp = await async_client.patch(f"/api/comments/{comment['id']}/approve", headers=author)
    assert resp.status_code == 403
    assert resp.json()["error"] == "Access denied. Required role: ADMIN or EDITOR"


@pytest.mark.asyncio
async def test_pending_comment_hidden_from_public_lookup(async_client: AsyncClient, published_article, make_user):
    _, editor = await make_user(UserRole.EDITOR)
    comment = (await _guest_comment(async_client, published_article["id"]))["data"]

    assert (await async_client.get(f"/api/comments/{comment['id']}")).status_code == 404

    resp = await async_client.get(f"/api/comments/{comment['id']}", headers=editor)
    assert resp.status_code == 200
    assert resp.json()["data"]["authorEmail"] == "guest@example.com"


@pytest.mark.asyncio
async def test_moderation_queue_filters_by_status(async_client: AsyncClient, published_article, make_user):
    _, editor = await make_user(UserRole.EDITOR)
    a = (await _guest_comment(async_client, published_article["id"], "a"))["data"]
    await _guest_comment(async_client, published_article["id"], "b")
    await async_client.patch(f"/api/comments/{a['id']}/approve", headers=editor)

    pending = (await async_client.get("/api/comments?status=PENDING", headers=editor)).json()
    assert [c["content"] for c in pending["data"]] == ["b"]
    assert pending["pagination"]["total"] == 1

    stats = (await async_client.get("/api/comments/stats", headers=editor)).json()["data"]
    assert stats == {"total": 2, "pending": 1, "approved": 1, "rejected": 0, "spam": 0}

    bad = await async_client.get("/api/comments?status=MAYBE", headers=editor)
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_delete_comment_with_replies_is_refused(async_client: AsyncClient, published_article, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    parent = (await _guest_comment(async_client, published_article["id"], "Parent"))["data"]
    child = (await _guest_comment(async_client, published_article["id"], "Child", parent_id=parent["id"]))["data"]

    resp = await async_client.delete(f"/api/comments/{parent['id']}", headers=admin)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cannot delete comment with 1 replies. Delete replies first."

    assert (await async_client.delete(f"/api/comments/{child['id']}", headers=admin)).status_code == 200
    assert (await async_client.delete(f"/api/comments/{parent['id']}", headers=admin)).status_code == 200


@pytest.mark.asyncio
async def test_owner_may_edit_and_delete_own_comment(async_client: AsyncClient, published_article, make_user):
    _, owner = await make_user()
    _, stranger = await make_user()
    comment = (
        await async_client.post(
            "/api/comments", json={"articleId": published_article["id"], "content": "Draft thought"}, headers=owner
        )
    ).json()["data"]

    denied = await async_client.put(f"/api/comments/{comment['id']}", json={"content": "Hijack"}, headers=stranger)
    assert denied.status_code == 403

    edited = await async_client.put(f"/api/comments/{comment['id']}", json={"content": "Final"}, headers=owner)
    assert edited.json()["data"]["content"] == "Final"

    own_view = await async_client.get(f"/api/comments/{comment['id']}", headers=owner)
    assert own_view.status_code == 200

    assert (await async_client.delete(f"/api/comments/{comment['id']}", headers=stranger)).status_code == 403
    assert (await async_client.delete(f"/api/comments/{comment['id']}", headers=owner)).status_code == 200
