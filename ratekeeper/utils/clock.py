"""Millisecond wall clock shared by the limiter, deduplicator and sweeper."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

MillisClock = Callable[[], int]


def now_ms() -> int:
    """Current UNIX time in whole milliseconds."""
    return time.time_ns() // 1_000_000


def iso_from_ms(timestamp_ms: int) -> str:
    """Format a millisecond timestamp as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()
