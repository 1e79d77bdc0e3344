"""FastAPI application factory for techpress.

Creates the application with:
- Blog, comment and saved-blog routers backed by the cache-aside read path
- Health probes and Prometheus metrics
- Lifecycle management for database, Redis and the invalidation consumer
- Result/Message error handling
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from techpress import __version__, runtime
from techpress.api.errors import ApiError, api_exception_handler, generic_exception_handler
from techpress.api.middleware import CorrelationMiddleware
from techpress.api.routers import blogs, health
from techpress.api.routers import metrics as metrics_router
from techpress.config import settings
from techpress.invalidation.queue import QueueError
from techpress.observability import configure_logging
from techpress.observability.metrics import MetricsMiddleware, get_metrics
from techpress.persistence.db import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Initialize Prometheus metrics
    - Initialize database connection pool
    - Connect Redis (an unreachable server only degrades the cache)
    - Start the invalidation consumer (if enabled)

    On shutdown, in reverse order:
    - Stop the consumer, letting its current batch finish
    - Close the queue and Redis connection
    - Close database connections
    """
    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )
    get_metrics()

    logger.info(f"Starting {settings.app_name} ({settings.env})")
    await init_db()
    if not await runtime.connect_cache():
        logger.warning("Starting without cache; reads go to the database")

    try:
        await runtime.get_queue().start()
    except QueueError as e:
        # The consumer retries on its own; publishes fall back to local deletes
        logger.error(f"Invalidation queue unavailable at startup: {e}")
    if settings.consumer_enabled:
        await runtime.start_consumer()

    logger.info(f"{settings.app_name} startup complete")

    yield

    logger.info(f"Shutting down {settings.app_name}")
    await runtime.shutdown()
    await close_db()
    logger.info(f"{settings.app_name} shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="techpress blog service",
        description="Blog API with a shared Redis cache and queue-driven invalidation",
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationMiddleware)
    if settings.enable_metrics:
        app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(ApiError, cast(ExceptionHandler, api_exception_handler))
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)
    app.include_router(blogs.router)

    return app


app = create_app()
