"""Async SQLAlchemy engine and session management.

PostgreSQL in deployment. SQLite (aiosqlite) is accepted for tests and
local runs: a single shared connection with foreign keys switched on, so
``ON DELETE CASCADE`` / ``SET NULL`` behave as they do on PostgreSQL.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:  # noqa: ANN401
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, pool_size: int = 20, max_overflow: int = 10) -> AsyncEngine:
    """Engine for ``url`` with the pool settings that backend needs."""
    if url.startswith("sqlite"):
        engine = create_async_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
        event.listen(engine.sync_engine, "connect", _sqlite_foreign_keys)
        return engine
    return create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        # pgbouncer in transaction mode cannot keep prepared statements
        connect_args={"statement_cache_size": 0},
    )


async def init_db(url: str, pool_size: int = 20, max_overflow: int = 10) -> None:
    """Create the process-wide engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = build_engine(url, pool_size, max_overflow)
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)


async def close_db() -> None:
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for code running outside a request (workers, sweeps)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request (FastAPI dependency). Routes commit explicitly."""
    async with get_session_factory()() as session:
        yield session


async def database_status(session: AsyncSession) -> str:
    """``ok`` or ``error: <ExceptionName>`` for the readiness probe."""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return f"error: {exc.__class__.__name__}"
    return "ok"
