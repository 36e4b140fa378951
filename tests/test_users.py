"""
User administration endpoints (admin only).
"""
import pytest
from httpx import AsyncClient

from newsroom.models import UserRole


@pytest.mark.asyncio
async def test_user_admin_requires_admin(async_client: AsyncClient, make_user):
    _, author = await make_user()
    _, editor = await make_user(UserRole.EDITOR)
    assert (await async_client.get("/api/users")).status_code == 401

    for headers in (author, editor):
        resp = await async_client.get("/api/users", headers=headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "Access denied. Required role: ADMIN"


@pytest.mark.asyncio
async def test_admin_creates_user_with_role(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    resp = await async_client.post(
        "/api/users",
        json={"email": "desk@example.com", "password": "password123", "name": "Desk", "role": "EDITOR"},
        headers=admin,
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["role"] == "EDITOR"
    assert data["_count"] == {"articles": 0, "comments": 0}

    dup = await async_client.post(
        "/api/users",
        json={"email": "desk@example.com", "password": "password123", "name": "Again"},
        headers=admin,
    )
    assert dup.status_code == 409

    login = await async_client.post("/api/auth/login", json={"email": "desk@example.com", "password": "password123"})
    assert login.json()["data"]["user"]["role"] == "EDITOR"


@pytest.mark.asyncio
async def test_list_users_filters(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN, name="Chief")
    await make_user(UserRole.EDITOR, name="Night Editor")
    await make_user(name="Alice Writer")
    await make_user(name="Bob Writer")

    everyone = (await async_client.get("/api/users", headers=admin)).json()
    assert everyone["pagination"]["total"] == 4

    authors = (await async_client.get("/api/users?role=AUTHOR", headers=admin)).json()
    assert sorted(u["name"] for u in authors["data"]) == ["Alice Writer", "Bob Writer"]

    searched = (await async_client.get("/api/users?search=night", headers=admin)).json()
    assert [u["name"] for u in searched["data"]] == ["Night Editor"]

    paged = (await async_client.get("/api/users?limit=3&page=2", headers=admin)).json()
    assert len(paged["data"]) == 1
    assert paged["pagination"]["totalPages"] == 2


@pytest.mark.asyncio
async def test_change_role_and_activation(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    user, headers = await make_user()

    promoted = await async_client.patch(f"/api/users/{user.id}/role", json={"role": "EDITOR"}, headers=admin)
    assert promoted.json()["data"]["role"] == "EDITOR"

    invalid = await async_client.patch(f"/api/users/{user.id}/role", json={"role": "OWNER"}, headers=admin)
    assert invalid.status_code == 400

    await async_client.patch(f"/api/users/{user.id}/deactivate", headers=admin)
    assert (await async_client.get("/api/auth/me", headers=headers)).status_code == 403

    reactivated = await async_client.patch(f"/api/users/{user.id}/activate", headers=admin)
    assert reactivated.json()["data"]["isActive"] is True
    assert (await async_client.get("/api/auth/me", headers=headers)).status_code == 200


@pytest.mark.asyncio
async def test_admin_cannot_delete_self(async_client: AsyncClient, make_user):
    admin, headers = await make_user(UserRole.ADMIN)
    resp = await async_client.delete(f"/api/users/{admin.id}", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "You cannot delete your own account"


@pytest.mark.asyncio
async def test_deleting_user_removes_their_articles(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    author, author_headers = await make_user()
    await async_client.post(
        "/api/articles", json={"title": "Goodbye", "content": "c", "status": "PUBLISHED"}, headers=author_headers
    )

    assert (await async_client.delete(f"/api/users/{author.id}", headers=admin)).status_code == 200
    assert (await async_client.get(f"/api/users/{author.id}", headers=admin)).status_code == 404
    assert (await async_client.get("/api/articles")).json()["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_update_user_profile_as_admin(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    user, _ = await make_user()
    resp = await async_client.put(f"/api/users/{user.id}", json={"bio": "Edited by admin"}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["data"]["bio"] == "Edited by admin"


@pytest.mark.asyncio
async def test_user_stats(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    await make_user()
    await make_user(active=False)
    stats = (await async_client.get("/api/users/stats", headers=admin)).json()["data"]
    assert stats["total"] == 3
    assert stats["active"] == 2
    assert stats["inactive"] == 1
    assert {r["role"]: r["count"] for r in stats["byRole"]} == {"ADMIN": 1, "AUTHOR": 2}
