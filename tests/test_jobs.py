"""Tests for the scheduled retention jobs."""

import asyncio
import contextlib
import logging

import pytest

from ratekeeper.core.logging import get_request_id
from ratekeeper.jobs import (
    cleanup_chat_messages,
    cleanup_rate_limits,
    run_periodically,
    run_scheduled_purges,
)

HOUR = 60 * 60 * 1000


async def _seed(store, clock) -> None:
    await store.put("rateLimits/stale", {"windowStart": clock.now - 2 * HOUR})
    await store.put("rateLimits/fresh", {"windowStart": clock.now})
    await store.put("spaces/s1", {"name": "one"})
    await store.put("spaces/s1/chatMessages/old", {"timestamp": clock.now - 25 * HOUR})
    await store.put("spaces/s1/chatMessages/new", {"timestamp": clock.now - HOUR})


@pytest.mark.asyncio
async def test_cleanup_rate_limits(sweeper, store, clock) -> None:
    await _seed(store, clock)

    result = await cleanup_rate_limits(sweeper)

    assert result.deleted_count == 1
    assert await store.list_ids("rateLimits") == ["fresh"]


@pytest.mark.asyncio
async def test_cleanup_chat_messages(sweeper, store, clock) -> None:
    await _seed(store, clock)

    summary = await cleanup_chat_messages(sweeper)

    assert summary.total_deleted == 1
    assert await store.list_ids("spaces/s1/chatMessages") == ["new"]


@pytest.mark.asyncio
async def test_run_scheduled_purges_runs_both(sweeper, store, clock) -> None:
    await _seed(store, clock)

    await run_scheduled_purges(sweeper)

    assert await store.list_ids("rateLimits") == ["fresh"]
    assert await store.list_ids("spaces/s1/chatMessages") == ["new"]


@pytest.mark.asyncio
async def test_run_periodically_survives_failures(caplog) -> None:
    seen: list[str | None] = []
    done = asyncio.Event()

    async def job() -> None:
        seen.append(get_request_id())
        if len(seen) == 1:
            raise RuntimeError("store exploded")
        if len(seen) == 3:
            done.set()

    with caplog.at_level(logging.ERROR, logger="ratekeeper.jobs"):
        task = asyncio.create_task(run_periodically(job, 0, name="test"))
        await asyncio.wait_for(done.wait(), timeout=2)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    assert len(seen) >= 3
    assert all(rid and rid.startswith("job-test-") for rid in seen)
    assert len(set(seen)) == len(seen)
    assert "jobs.run_failed" in caplog.messages
