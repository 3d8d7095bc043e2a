"""FastAPI application factory for orderflow.

The application owns one set of process resources (see orderflow.runtime)
for its whole lifetime. Routers reach them through orderflow.api.deps.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.types import ExceptionHandler

from orderflow import __version__
from orderflow.api.errors import (
    ApiError,
    api_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from orderflow.api.middleware import CorrelationMiddleware
from orderflow.api.routers import admin, dashboard, health, orders, search
from orderflow.api.routers import metrics as metrics_router
from orderflow.config import Settings
from orderflow.config import settings as default_settings
from orderflow.observability import configure_logging
from orderflow.observability.metrics import get_metrics
from orderflow.runtime import open_resources

logger = logging.getLogger(__name__)


def _lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage application lifecycle.

        On startup:
        - Configure structured logging
        - Initialize Prometheus metrics
        - Open Redis, database, search and queue clients
        - Start the view refresh scheduler
        - Start an in-process persistence worker (memory queue only)

        On shutdown, after the server has drained in-flight requests:
        - Stop the scheduler, letting a running refresh finish
        - Stop the in-process worker after its current message
        - Close clients in reverse order
        """
        configure_logging(
            json_format=settings.env != "dev",
            level=settings.log_level,
        )
        get_metrics()

        logger.info(f"Starting orderflow ({settings.env})")
        async with open_resources(settings) as resources:
            scheduler = resources.refresh_scheduler()
            app.state.resources = resources
            app.state.order_service = resources.order_service()
            app.state.scheduler = scheduler

            if settings.mv_refresh_enabled:
                await scheduler.start()

            worker = None
            worker_task: asyncio.Task[None] | None = None
            if settings.queue_backend.lower() in {"memory", "inmemory", "in_memory"}:
                # Nothing else can consume an in-process queue
                worker = resources.persistence_worker()
                worker_task = asyncio.create_task(worker.run(), name="persistence-worker")

            logger.info("orderflow startup complete")
            try:
                yield
            finally:
                logger.info("Shutting down orderflow")
                await scheduler.stop()
                if worker is not None and worker_task is not None:
                    await worker.stop()
                    await worker_task
        logger.info("orderflow shutdown complete")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Returns a fully configured application with:
    - Order, search, dashboard and admin routers
    - Health probes and Prometheus metrics
    - Exception handlers for consistent error responses
    - Lifecycle hooks for connection management
    """
    settings = settings or default_settings

    app = FastAPI(
        title="orderflow",
        description="Write-back order intake with asynchronous persistence",
        version=__version__,
        lifespan=_lifespan(settings),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(CorrelationMiddleware)

    # Register exception handlers
    app.add_exception_handler(ApiError, cast(ExceptionHandler, api_exception_handler))
    app.add_exception_handler(
        RequestValidationError, cast(ExceptionHandler, validation_exception_handler)
    )
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    # Include routers
    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)

    app.include_router(orders.router)
    app.include_router(search.router)
    app.include_router(dashboard.router)
    app.include_router(admin.router)

    return app
