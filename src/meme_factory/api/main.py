"""FastAPI main application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from ..config.config import Settings, get_settings
from ..monitoring.metrics import render_metrics
from ..tasks.maintenance import MaintenanceScheduler
from ..utils.logging import setup_logging
from .dependencies import ServiceContainer, build_services
from .middleware.error_handler import register_exception_handlers
from .middleware.logging import LoggingMiddleware
from .routers import health, memes

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to use, defaults to the environment
        services: Pre-built services, mainly for tests

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    setup_logging(level=settings.log_level, json_format=settings.log_json)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Environment: {settings.app_env}")
        maintenance = MaintenanceScheduler(services.rate_limiter)
        maintenance.start()
        try:
            yield
        finally:
            logger.info(f"Shutting down {settings.app_name}")
            maintenance.stop()
            await services.close()

    app = FastAPI(
        title=settings.app_name,
        description="Topic-driven meme captioning, rendering and collage service",
        version=settings.app_version,
        docs_url=settings.api_docs_url,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )
    register_exception_handlers(app)

    app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
    app.include_router(memes.router, prefix=settings.api_prefix, tags=["memes"])

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)

    return app


app = create_app()
