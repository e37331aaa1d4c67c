"""Login, logout and admin endpoint tests."""

import pytest
from httpx import AsyncClient


async def create_text(client: AsyncClient, token: str, **payload) -> dict:
    payload.setdefault("content", "admin fixture text")
    response = await client.post("/api/texts", json=payload, headers={"X-CSRF-Token": token})
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_login_with_bad_credentials(client: AsyncClient) -> None:
    response = await client.post("/api/login", json={"user": "admin", "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"


@pytest.mark.asyncio
async def test_admin_routes_require_login(client: AsyncClient, csrf_token: str) -> None:
    assert (await client.get("/api/admin/texts")).status_code == 401
    assert (await client.get("/api/admin/stats")).status_code == 401
    response = await client.post("/api/admin/sweep", headers={"X-CSRF-Token": csrf_token})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_and_stats(client: AsyncClient, admin_csrf: str) -> None:
    await create_text(client, admin_csrf, content="first")
    await create_text(client, admin_csrf, content="second" * 50, view_limit=5, is_encrypted=True)

    listing = await client.get("/api/admin/texts")
    assert listing.status_code == 200
    rows = listing.json()
    assert len(rows) == 2
    assert rows[0]["preview"] == ("second" * 50)[:100]
    assert rows[0]["ip_address"] == "127.0.0.1"

    stats = (await client.get("/api/admin/stats")).json()
    assert stats["total_records"] == 2
    assert stats["limited_count"] == 1
    assert stats["encrypted_count"] == 1
    assert stats["recent_count"] == 2


@pytest.mark.asyncio
async def test_delete_text(client: AsyncClient, admin_csrf: str) -> None:
    created = await create_text(client, admin_csrf)

    response = await client.delete(f"/api/admin/texts/{created['id']}", headers={"X-CSRF-Token": admin_csrf})
    assert response.status_code == 200
    assert (await client.get(f"/api/texts/{created['code']}")).status_code == 404

    again = await client.delete(f"/api/admin/texts/{created['id']}", headers={"X-CSRF-Token": admin_csrf})
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_delete_requires_csrf(client: AsyncClient, admin_csrf: str) -> None:
    created = await create_text(client, admin_csrf)
    response = await client.delete(f"/api/admin/texts/{created['id']}")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_sweep(client: AsyncClient, admin_csrf: str, clock) -> None:
    await create_text(client, admin_csrf, expiry_hours=1)
    await create_text(client, admin_csrf)
    clock.advance(7200)

    response = await client.post("/api/admin/sweep", headers={"X-CSRF-Token": admin_csrf})
    assert response.status_code == 200
    assert response.json() == {"status": "success", "deleted_count": 1}


@pytest.mark.asyncio
async def test_admin_bypasses_rate_limit(client: AsyncClient, services, admin_csrf: str) -> None:
    services.settings.RATE_LIMIT_REQUESTS = 1
    for _ in range(3):
        await create_text(client, admin_csrf)


@pytest.mark.asyncio
async def test_logout_drops_admin(client: AsyncClient, admin_csrf: str) -> None:
    assert (await client.post("/api/logout")).status_code == 200
    assert (await client.get("/api/admin/stats")).status_code == 401
