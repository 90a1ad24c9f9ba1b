"""Group status sweep arq worker.

Runs ``run_status_sweep`` every minute:
- planned groups whose start has passed become active
- active groups whose end has passed become completed, with trip history
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from hikemeet.config import get_settings
from hikemeet.database import close_db, get_session_factory, init_db
from hikemeet.groups.sweep import run_status_sweep

logger = logging.getLogger(__name__)


async def sweep_group_status(ctx: dict) -> dict[str, int]:
    """Advance group lifecycles."""
    settings = get_settings()
    async with get_session_factory()() as session:
        return await run_status_sweep(session, batch_size=settings.sweep_batch_size)


async def sweep_startup(ctx: dict) -> None:
    """Initialize the DB connection on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url, pool_size=2, max_overflow=0)
    logger.info("Status sweep worker started")


async def sweep_shutdown(ctx: dict) -> None:
    await close_db()
    logger.info("Status sweep worker shut down")


class WorkerSettings:
    """arq worker settings for the status sweep."""

    functions = [sweep_group_status]
    cron_jobs = [
        cron(sweep_group_status, second=0, run_at_startup=True, unique=True),
    ]
    on_startup = sweep_startup
    on_shutdown = sweep_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 1
    job_timeout = 300
