"""Middleware tests: request ID, rate limiting, CORS, error handling."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from hikemeet.config import get_settings
from hikemeet.middleware import setup_middleware
from tests.conftest import auth_headers


def _counting_redis(start: int = 0) -> MagicMock:
    """Redis double whose INCR pipeline counts calls from ``start``."""
    state = {"n": start}

    async def execute():
        state["n"] += 1
        return [state["n"], True]

    pipe = MagicMock()
    pipe.execute = AsyncMock(side_effect=execute)
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    return redis


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_malformed_request_id_replaced(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "bad id with spaces"})
    assert response.headers["x-request-id"] != "bad id with spaces"
    assert len(response.headers["x-request-id"]) == 36


@pytest.mark.asyncio
async def test_rate_limit_passthrough_without_redis(client: AsyncClient, user_factory) -> None:
    """Requests still go through when Redis is not connected."""
    user = await user_factory()
    response = await client.get("/api/v1/users/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_headers(client: AsyncClient, user_factory) -> None:
    user = await user_factory()
    with patch("hikemeet.middleware.rate_limit.get_redis", return_value=_counting_redis()):
        response = await client.get("/api/v1/users/me", headers=auth_headers(user))
    assert response.headers["x-ratelimit-limit"] == "100"
    assert response.headers["x-ratelimit-remaining"] == "99"


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient) -> None:
    """Past the limit the API answers 429 with Retry-After."""
    with patch("hikemeet.middleware.rate_limit.get_redis", return_value=_counting_redis(start=100)):
        response = await client.get("/api/v1/users/me")
    assert response.status_code == 429
    assert response.headers["retry-after"] == "60"
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_rate_limit_redis_error_passes(client: AsyncClient) -> None:
    redis = MagicMock()
    redis.pipeline.return_value.execute = AsyncMock(side_effect=RedisConnectionError("down"))
    with patch("hikemeet.middleware.rate_limit.get_redis", return_value=redis):
        response = await client.get("/api/v1/search?q=x")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(client: AsyncClient) -> None:
    with patch("hikemeet.middleware.rate_limit.get_redis", return_value=_counting_redis(start=1000)):
        response = await client.get("/health")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    """CORS preflight returns access-control-allow-origin for configured origin."""
    response = await client.options(
        "/api/v1/posts",
        headers={
            "Origin": "http://localhost:8081",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:8081"


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_422_shape(client: AsyncClient, user_factory) -> None:
    user = await user_factory()
    response = await client.get("/api/v1/search?limit=500", headers=auth_headers(user))
    assert response.status_code == 422
    data = response.json()
    assert data["detail"] == "Validation error"
    assert all("input" not in error for error in data["errors"])


@pytest.mark.asyncio
async def test_unhandled_error_is_500_json() -> None:
    app = FastAPI()
    setup_middleware(app, get_settings())

    @app.get("/boom")
    async def boom() -> None:
        msg = "kaboom"
        raise RuntimeError(msg)

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/boom")
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


def test_middleware_order_and_disabled_rate_limit() -> None:
    from hikemeet.middleware.rate_limit import RateLimitMiddleware
    from hikemeet.middleware.request_id import RequestIdMiddleware

    settings = get_settings()
    app = FastAPI()
    setup_middleware(app, settings)
    classes = [m.cls.__name__ for m in app.user_middleware]
    assert classes == ["CORSMiddleware", "RequestIdMiddleware", "RateLimitMiddleware"]

    quiet = FastAPI()
    setup_middleware(quiet, settings.model_copy(update={"rate_limit_requests": 0}))
    assert RateLimitMiddleware not in [m.cls for m in quiet.user_middleware]
    assert RequestIdMiddleware in [m.cls for m in quiet.user_middleware]
