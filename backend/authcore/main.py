"""Authcore Backend - FastAPI Application Factory."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authcore.api import auth_router, health_router, register_exception_handlers
from authcore.core import settings, setup_logging
from authcore.core.logging import get_logger

# Import all models to ensure they're registered with Base for Alembic
from authcore.models import (  # noqa: F401
    BlacklistedToken,
    DeviceLoginRecord,
    FailedAttempt,
    OneTimeCode,
    Principal,
    RefreshSession,
)
from authcore.services.blacklist import blacklist_cleanup_loop

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(settings.log_level, settings.log_format)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if not settings.jwt_secret_key:
        logger.warning("JWT_SECRET_KEY is not set; tokens will not survive a restart")
    if not settings.otp_enabled:
        logger.warning("OTP delivery is disabled; every one-time code is the fixed dev code")

    blacklist_task = asyncio.create_task(blacklist_cleanup_loop(), name="blacklist-cleanup")
    blacklist_task.add_done_callback(task_done_callback)

    yield

    # Shutdown
    logger.info("Shutting down...")
    blacklist_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await blacklist_task


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Credentials, sessions and device trust",
        version=settings.app_version,
        lifespan=lifespan,
        # Keep the API schema private outside local development
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Accept",
            "X-Device-Id",
            "X-Device-Type",
            "X-Platform",
            "X-Browser",
            "X-Country",
            "X-City",
            "X-Latitude",
            "X-Longitude",
        ],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(health_router)  # Health at root level
    app.include_router(auth_router)  # Auth at /auth

    # Root endpoint
    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
