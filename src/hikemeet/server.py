"""Process entry point: ``hikemeet-api`` / ``python -m hikemeet``.

Checks that the database is configured and reachable before handing the
app to uvicorn. Exits 1 otherwise. SIGINT goes through uvicorn's graceful
shutdown, which runs the lifespan teardown, and exits 0.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import uvicorn
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from hikemeet.config import get_settings

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def check_database(url: str) -> bool:
    """Open one connection and run ``SELECT 1``."""
    engine = create_async_engine(url)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database unreachable: %s", e)
        return False
    finally:
        await engine.dispose()
    return True


def main() -> int:
    settings = get_settings()
    if not settings.database_url:
        logger.error("HIKEMEET_DATABASE_URL is not set")
        return 1
    if not asyncio.run(check_database(settings.database_url)):
        return 1

    uvicorn.run(
        "hikemeet.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        proxy_headers=True,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
