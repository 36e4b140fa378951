"""
Category and tag endpoints.
"""
import pytest
from httpx import AsyncClient

from newsroom.models import UserRole


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_category_crud_and_slugs(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    first = await async_client.post("/api/categories", json={"name": "World News"}, headers=admin)
    assert first.status_code == 201
    assert first.json()["data"]["slug"] == "world-news"

    second = (await async_client.post("/api/categories", json={"name": "World News!"}, headers=admin)).json()["data"]
    assert second["slug"] == "world-news-1"

    updated = await async_client.put(
        f"/api/categories/{second['id']}", json={"name": "Europe", "description": "EU desk"}, headers=admin
    )
    assert updated.json()["data"]["slug"] == "europe"
    assert updated.json()["data"]["description"] == "EU desk"

    fetched = (await async_client.get("/api/categories/europe")).json()["data"]
    assert fetched["id"] == second["id"]

    assert (await async_client.delete(f"/api/categories/{second['id']}", headers=admin)).status_code == 200
    assert (await async_client.get("/api/categories/europe")).status_code == 404


@pytest.mark.asyncio
async def test_category_management_is_admin_only(async_client: AsyncClient, make_user):
    _, editor = await make_user(UserRole.EDITOR)
    resp = await async_client.post("/api/categories", json={"name": "Sports"}, headers=editor)
    assert resp.status_code == 403
    assert resp.json()["error"] == "Access denied. Required role: ADMIN"


@pytest.mark.asyncio
async def test_category_tree_and_parent_rules(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    world = (await async_client.post("/api/categories", json={"name": "World"}, headers=admin)).json()["data"]
    asia = (
        await async_client.post("/api/categories", json={"name": "Asia", "parentId": world["id"]}, headers=admin)
    ).json()["data"]
    await async_client.post("/api/categories", json={"name": "Business"}, headers=admin)

    tree = (await async_client.get("/api/categories/tree")).json()["data"]
    assert [c["name"] for c in tree] == ["Business", "World"]
    assert [c["name"] for c in tree[1]["children"]] == ["Asia"]

    detail = (await async_client.get("/api/categories/asia")).json()["data"]
    assert detail["parent"]["slug"] == "world"

    own_parent = await async_client.put(f"/api/categories/{asia['id']}", json={"parentId": asia["id"]}, headers=admin)
    assert own_parent.status_code == 400
    assert own_parent.json()["error"] == "Category cannot be its own parent"

    missing_parent = await async_client.post(
        "/api/categories", json={"name": "Orphan", "parentId": 999}, headers=admin
    )
    assert missing_parent.status_code == 404
    assert missing_parent.json()["error"] == "Parent category not found"

    blocked = await async_client.delete(f"/api/categories/{world['id']}", headers=admin)
    assert blocked.status_code == 400
    assert blocked.json()["error"] == "Cannot delete category with 1 subcategories"


@pytest.mark.asyncio
async def test_category_with_articles_cannot_be_deleted(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    category = (await async_client.post("/api/categories", json={"name": "Tech"}, headers=admin)).json()["data"]
    await async_client.post(
        "/api/articles",
        json={"title": "Chips", "content": "c", "categoryId": category["id"], "status": "PUBLISHED"},
        headers=admin,
    )
    await async_client.post(
        "/api/articles", json={"title": "Draft chips", "content": "c", "categoryId": category["id"]}, headers=admin
    )

    listing = (await async_client.get("/api/categories")).json()["data"]
    assert listing[0]["_count"] == {"articles": 2, "children": 0}

    articles = (await async_client.get("/api/categories/tech/articles")).json()
    assert articles["data"]["category"]["slug"] == "tech"
    assert [a["title"] for a in articles["data"]["articles"]] == ["Chips"]
    assert articles["pagination"]["total"] == 1

    resp = await async_client.delete(f"/api/categories/{category['id']}", headers=admin)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cannot delete category with 2 articles"


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_any_staff_member_may_create_tags(async_client: AsyncClient, make_user):
    _, author = await make_user()
    resp = await async_client.post("/api/tags", json={"name": "Machine Learning"}, headers=author)
    assert resp.status_code == 201
    assert resp.json()["data"]["slug"] == "machine-learning"

    dup = await async_client.post("/api/tags", json={"name": "Machine Learning"}, headers=author)
    assert dup.status_code == 409
    assert dup.json()["error"] == "Tag already exists"


@pytest.mark.asyncio
async def test_tag_rename_and_delete_are_admin_only(async_client: AsyncClient, make_user):
    _, author = await make_user()
    _, admin = await make_user(UserRole.ADMIN)
    tag = (await async_client.post("/api/tags", json={"name": "Old"}, headers=author)).json()["data"]

    assert (await async_client.put(f"/api/tags/{tag['id']}", json={"name": "New"}, headers=author)).status_code == 403
    renamed = await async_client.put(f"/api/tags/{tag['id']}", json={"name": "New"}, headers=admin)
    assert renamed.json()["data"]["slug"] == "new"

    assert (await async_client.delete(f"/api/tags/{tag['id']}", headers=author)).status_code == 403
    assert (await async_client.delete(f"/api/tags/{tag['id']}", headers=admin)).status_code == 200
    assert (await async_client.get("/api/tags/new")).status_code == 404


@pytest.mark.asyncio
async def test_tag_in_use_cannot_be_deleted(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    await async_client.post(
        "/api/articles", json={"title": "A", "content": "c", "tags": ["Energy"], "status": "PUBLISHED"}, headers=admin
    )
    tag = (await async_client.get("/api/tags/energy")).json()["data"]
    assert tag["_count"] == {"articles": 1}

    resp = await async_client.delete(f"/api/tags/{tag['id']}", headers=admin)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cannot delete tag used in 1 articles"

    articles = (await async_client.get("/api/tags/energy/articles")).json()
    assert articles["data"]["tag"]["name"] == "Energy"
    assert [a["title"] for a in articles["data"]["articles"]] == ["A"]


@pytest.mark.asyncio
async def test_popular_tags(async_client: AsyncClient, make_user):
    _, admin = await make_user(UserRole.ADMIN)
    await async_client.post("/api/tags", json={"name": "Unused"}, headers=admin)
    for title, tags in (("One", ["Hot", "Warm"]), ("Two", ["Hot"]), ("Three", ["Hot", "Warm"])):
        await async_client.post("/api/articles", json={"title": title, "content": "c", "tags": tags}, headers=admin)

    popular = (await async_client.get("/api/tags/popular?limit=2")).json()["data"]
    assert [(t["name"], t["_count"]["articles"]) for t in popular] == [("Hot", 3), ("Warm", 2)]

    listing = (await async_client.get("/api/tags")).json()["data"]
    assert [t["name"] for t in listing] == ["Hot", "Unused", "Warm"]

    bad = await async_client.get("/api/tags/popular?limit=0")
    assert bad.status_code == 400
    assert bad.json()["details"][0]["field"] == "limit"
