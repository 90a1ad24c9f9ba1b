"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hikemeet.admin.router import router as admin_router
from hikemeet.auth.identity import init_identity_provider
from hikemeet.auth.router import router as auth_router
from hikemeet.chat.router import router as chat_router
from hikemeet.config import get_settings
from hikemeet.database import close_db, init_db
from hikemeet.email.service import reset_email_service
from hikemeet.friends.router import router as friends_router
from hikemeet.groups.router import router as groups_router
from hikemeet.health.router import router as health_router
from hikemeet.media.host import close_media_host, init_media_host
from hikemeet.media.router import router as media_router
from hikemeet.middleware import setup_middleware
from hikemeet.notifications.push import close_push_gateway, init_push_gateway
from hikemeet.notifications.router import router as notifications_router
from hikemeet.posts.router import router as posts_router
from hikemeet.redis_client import close_redis, init_redis
from hikemeet.reports.router import router as reports_router
from hikemeet.search.router import router as search_router
from hikemeet.trips.router import router as trips_router
from hikemeet.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Open shared clients on startup and close them on shutdown."""
    settings = get_settings()
    await init_db(settings.database_url, settings.db_pool_size, settings.db_max_overflow)
    await init_redis(settings.redis_url, settings.redis_max_connections)
    init_identity_provider()
    init_push_gateway(settings)
    init_media_host(settings)
    logger.info("HikeMeet API started (environment=%s)", settings.environment)

    yield

    await close_push_gateway()
    await close_media_host()
    reset_email_service()
    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="HikeMeet API",
        description="Backend API for HikeMeet, a social network for finding hiking companions",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(friends_router)
    app.include_router(chat_router)
    app.include_router(groups_router)
    app.include_router(trips_router)
    app.include_router(posts_router)
    app.include_router(search_router)
    app.include_router(notifications_router)
    app.include_router(reports_router)
    app.include_router(admin_router)
    app.include_router(media_router)

    return app


app = create_app()
