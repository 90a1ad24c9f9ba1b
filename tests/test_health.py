"""Health endpoint tests."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    """GET /health returns 200 with healthy status."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_readiness_degraded_without_redis(client: AsyncClient) -> None:
    """GET /ready answers 503 while Redis is not connected."""
    response = await client.get("/ready")
    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "degraded"
    assert data["checks"]["database"] == "ok"
    assert data["checks"]["redis"].startswith("error")


@pytest.mark.asyncio
async def test_readiness_ok(client: AsyncClient) -> None:
    """GET /ready returns 200 when both checks pass."""
    redis = AsyncMock()
    redis.ping.return_value = True
    with patch("hikemeet.redis_client.get_redis", return_value=redis):
        response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": "ok", "redis": "ok"}}


@pytest.mark.asyncio
async def test_version(client: AsyncClient) -> None:
    """GET /version returns name, version and environment."""
    response = await client.get("/version")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "hikemeet-api"
    assert data["version"] == "0.1.0"
    assert "environment" in data
