"""Health endpoint tests."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from pastelink.enums import HealthStatus


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == HealthStatus.HEALTHY.value
    assert data["database"] == HealthStatus.HEALTHY.value
    assert data["cache"] == HealthStatus.HEALTHY.value


@pytest.mark.asyncio
async def test_health_check_cache_down(client: AsyncClient, services, monkeypatch) -> None:
    monkeypatch.setattr(services.cache, "ping", AsyncMock(side_effect=ConnectionError("refused")))
    data = (await client.get("/health")).json()
    assert data["status"] == HealthStatus.UNHEALTHY.value
    assert data["database"] == HealthStatus.HEALTHY.value
    assert data["cache"] == HealthStatus.UNHEALTHY.value


@pytest.mark.asyncio
async def test_metrics_exposed(client: AsyncClient) -> None:
    await client.get("/health")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "pastelink_" in response.text
