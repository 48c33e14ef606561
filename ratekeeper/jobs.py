"""Scheduled retention jobs.

``cleanup_rate_limits`` and ``cleanup_chat_messages`` are the entrypoints an
external scheduler triggers daily (counters at 03:00 UTC, messages at 02:00 UTC).
``run_periodically`` drives the same jobs from inside the API process when
RETENTION_SCHEDULE_ENABLED=true.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable

from ratekeeper.core.logging import clear_request_id, set_request_id
from ratekeeper.services.retention import PurgeResult, RetentionSweeper, TenantPurgeSummary

logger = logging.getLogger(__name__)


async def cleanup_rate_limits(sweeper: RetentionSweeper) -> PurgeResult:
    """Purge counter records whose window was not renewed within the horizon."""
    logger.info("jobs.rate_limit_cleanup_started")
    result = await sweeper.purge_counter_records()
    logger.info(
        "jobs.rate_limit_cleanup_completed",
        extra={
            "deleted": result.deleted_count,
            "batches_failed": result.batches_failed,
            "query_failed": result.query_failed,
        },
    )
    return result


async def cleanup_chat_messages(sweeper: RetentionSweeper) -> TenantPurgeSummary:
    """Purge aged chat messages of every tenant."""
    logger.info("jobs.chat_cleanup_started")
    summary = await sweeper.purge_tenant_collections()
    logger.info(
        "jobs.chat_cleanup_completed",
        extra={
            "tenants_processed": summary.tenants_processed,
            "total_deleted": summary.total_deleted,
            "failed_tenants": summary.failed_tenants,
            "listing_failed": summary.listing_failed,
        },
    )
    return summary


async def run_scheduled_purges(sweeper: RetentionSweeper) -> None:
    """Run both daily jobs, messages first."""
    await cleanup_chat_messages(sweeper)
    await cleanup_rate_limits(sweeper)


async def run_periodically(
    job: Callable[[], Awaitable[Any]],
    interval_seconds: float,
    *,
    name: str = "retention",
) -> None:
    """Run ``job`` forever, waiting ``interval_seconds`` after each run.

    A failing run is logged and the loop continues with the next interval.
    Cancel the surrounding task to stop the loop.
    """
    while True:
        set_request_id(f"job-{name}-{uuid.uuid4().hex[:12]}")
        try:
            await job()
        except Exception:
            logger.exception("jobs.run_failed", extra={"job": name})
        finally:
            clear_request_id()
        await asyncio.sleep(interval_seconds)
