from __future__ import annotations

"""Application factory for the FastAPI app.

Builds the document store once, wires every service around that single
handle, and attaches the result to ``app.state.services``. The settings
the app was built with are kept on ``app.state.settings`` and take
precedence over the global settings in request-time code.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from ratekeeper.adapters.store import AbstractDocumentStore, create_document_store
from ratekeeper.api.routes import health_router, maintenance_router, rate_limits_router
from ratekeeper.core.config import Settings, settings
from ratekeeper.core.exception_handlers import setup_exception_handlers
from ratekeeper.core.logging import configure_logging
from ratekeeper.core.middleware import request_id_middleware
from ratekeeper.core.openapi import apply_openapi_customizations
from ratekeeper.jobs import run_periodically, run_scheduled_purges
from ratekeeper.services.registry import build_services

logger = logging.getLogger(__name__)


def create_app(
    *,
    store: AbstractDocumentStore | None = None,
    cfg: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Optional pre-built store (tests inject one); created from
            settings when omitted.
        cfg: Optional settings; defaults to the global settings.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = cfg or settings
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    services = build_services(store or create_document_store(cfg.store), cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        task: asyncio.Task | None = None
        if cfg.retention.schedule_enabled:
            task = asyncio.create_task(
                run_periodically(
                    lambda: run_scheduled_purges(services.sweeper),
                    cfg.retention.schedule_interval_seconds,
                )
            )
            logger.info(
                "scheduler.started",
                extra={"interval_s": cfg.retention.schedule_interval_seconds},
            )
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    app = FastAPI(
        title="Ratekeeper API",
        description=(
            "Sliding-window rate limiting, bucket-based event deduplication and "
            "batched retention sweeps for the spaces platform. Requires X-API-Key."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.services = services

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(maintenance_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
