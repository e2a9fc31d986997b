"""
FastAPI application factory for the AppDeck API server.

Uses lifespan handler for startup/shutdown with async resource management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from appdeck.config import settings
from appdeck.db.session import close_db, init_db
from appdeck.errors import AppDeckError
from appdeck.logging_config import configure_logging, get_logger
from appdeck.services.codec_service import init_codec

from .health import router as health_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup and shutdown."""
    configure_logging(
        json_logs=settings.json_logs, log_level=settings.log_level, app_name=settings.app_name
    )
    logger.info("Starting AppDeck API server", version="0.1.0")

    await init_db()
    init_codec()

    yield

    logger.info("Shutting down AppDeck API server")
    await close_db()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="AppDeck API",
        description="AppDeck control plane - environment variables and usage analytics",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    if settings.cors.allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors.allow_origins,
            allow_credentials=settings.cors.allow_credentials,
            allow_methods=settings.cors.allow_methods,
            allow_headers=settings.cors.allow_headers,
        )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Ensure every request has a request ID for logging correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        structlog.contextvars.unbind_contextvars("request_id")

        return response

    @app.exception_handler(AppDeckError)
    async def domain_exception_handler(request: Request, exc: AppDeckError) -> JSONResponse:
        """Surface service errors verbatim with their status code."""
        logger.info(
            "Request rejected",
            error=type(exc).__name__,
            detail=str(exc),
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled exception", exc_info=exc, path=str(request.url.path))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # Health endpoints (no prefix)
    app.include_router(health_router)

    from appdeck.api.routers.env_vars import router as env_vars_router

    app.include_router(env_vars_router, prefix=settings.api_prefix)

    from appdeck.api.routers.analytics import router as analytics_router

    app.include_router(analytics_router, prefix=settings.api_prefix)

    from appdeck.api.routers.apps import router as apps_router

    app.include_router(apps_router, prefix=settings.api_prefix)

    return app


# Application instance
app = create_application()
