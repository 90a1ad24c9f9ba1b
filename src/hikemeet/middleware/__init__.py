"""HTTP plumbing for the HikeMeet API.

Request path, outermost first: CORS, request id and access log, per-IP
rate limit, then the routers. Domain errors never reach this layer; the
routers map them to ``HTTPException`` themselves.
"""

from fastapi import FastAPI

from hikemeet.config import Settings
from hikemeet.middleware.cors import setup_cors
from hikemeet.middleware.error_handler import setup_error_handlers
from hikemeet.middleware.logging import setup_logging
from hikemeet.middleware.rate_limit import RateLimitMiddleware
from hikemeet.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    setup_logging(settings)
    setup_error_handlers(app)

    # add_middleware wraps the current stack, so registration runs innermost first
    if settings.rate_limit_requests > 0:
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
