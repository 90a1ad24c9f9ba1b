"""Global exception handlers: every error leaves the API as ``{"detail": ...}``."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hikemeet.errors import DomainError
from hikemeet.media.host import MediaHostError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
        """Domain errors that escaped a route's own mapping."""
        logger.warning("unmapped_domain_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(MediaHostError)
    async def media_exception_handler(request: Request, exc: MediaHostError) -> JSONResponse:
        logger.error("media_host_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=502, content={"detail": "Media host unavailable"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all: log with structlog and answer 500."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Pydantic error dicts minus the non-serialisable ``ctx``/``input`` payloads."""
    return [
        {key: value for key, value in error.items() if key not in ("ctx", "input", "url")}
        for error in exc.errors()
    ]
