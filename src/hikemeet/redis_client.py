"""Shared Redis client.

Holds the per-IP rate-limit windows and the password-reset verification
codes. Nothing here is durable: losing Redis only disables rate limiting
and makes outstanding codes invalid.
"""

from __future__ import annotations

import redis.asyncio as redis
from redis.exceptions import RedisError

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> redis.Redis:
    """Create the process-wide client. Connections are opened lazily."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        decode_responses=True,
        max_connections=max_connections,
        health_check_interval=30,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
    _client = None


def get_redis() -> redis.Redis:
    """The shared client. Raises RuntimeError before ``init_redis``."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


async def redis_status() -> str:
    """``ok`` or ``error: <ExceptionName>`` for the readiness probe."""
    try:
        await get_redis().ping()
    except (RuntimeError, RedisError, OSError) as exc:
        return f"error: {exc.__class__.__name__}"
    return "ok"
