"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any ``ratekeeper`` import so the global
settings object is built from test values.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault(
    "APP_API_KEYS",
    "test-admin-key:alice:maintenanceAdmin,test-api-key-123:bob",
)
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Sequence

import pytest

from ratekeeper.adapters.store.in_memory import InMemoryDocumentStore
from ratekeeper.core.config import RateLimitPolicy
from ratekeeper.core.errors import BatchCommitError, StoreError
from ratekeeper.services.deduplicator import Deduplicator
from ratekeeper.services.rate_limiter import RateLimiter
from ratekeeper.services.retention import RetentionSweeper

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually driven millisecond clock."""

    def __init__(self, start_ms: int = START_MS) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def _unavailable(operation: str) -> StoreError:
    return StoreError(
        code="store_unavailable",
        message="Simulated store outage",
        details={"operation": operation},
    )


class FaultyStore(InMemoryDocumentStore):
    """In-memory store with switchable failures for fault-injection tests."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_reads = False
        self.fail_writes = False
        self.fail_listing = False
        self.failing_collections: set[str] = set()
        self.failing_batches: set[int] = set()
        self.batch_calls: list[list[str]] = []

    async def get(self, key: str):
        if self.fail_reads:
            raise _unavailable("get")
        return await super().get(key)

    async def put(self, key: str, data) -> None:
        if self.fail_writes:
            raise _unavailable("put")
        await super().put(key, data)

    async def _read_versioned(self, key: str):
        if self.fail_reads:
            raise _unavailable("transaction_read")
        return await super()._read_versioned(key)

    async def query_older_than(self, collection: str, field: str, cutoff: int) -> list[str]:
        if collection in self.failing_collections:
            raise _unavailable("query")
        return await super().query_older_than(collection, field, cutoff)

    async def delete_batch(self, keys: Sequence[str]) -> None:
        self.batch_calls.append(list(keys))
        if len(self.batch_calls) in self.failing_batches:
            raise BatchCommitError(
                code="batch_commit_failed",
                message="Simulated batch failure",
                details={"batch_size": len(keys)},
            )
        await super().delete_batch(keys)

    async def list_ids(self, collection: str) -> list[str]:
        if self.fail_listing:
            raise _unavailable("list")
        return await super().list_ids(collection)


TEST_POLICIES = {
    "default": RateLimitPolicy(window_ms=60_000, max_requests=60),
    "test": RateLimitPolicy(window_ms=10_000, max_requests=3, max_requests_per_resource=5),
    "burst": RateLimitPolicy(window_ms=10_000, max_requests=2),
    "blocked": RateLimitPolicy(window_ms=30_000, max_requests=0),
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FaultyStore:
    return FaultyStore(max_attempts=50, backoff_base_ms=1, backoff_max_ms=5)


@pytest.fixture
def limiter(store: FaultyStore, clock: FakeClock) -> RateLimiter:
    return RateLimiter(store, policies=TEST_POLICIES, resource_multiplier=10, clock=clock)


@pytest.fixture
def deduplicator(store: FaultyStore, clock: FakeClock) -> Deduplicator:
    return Deduplicator(
        store,
        bucket_ms=300_000,
        event_types=["react_space_enter", "react_space_exit"],
        clock=clock,
    )


@pytest.fixture
def sweeper(store: FaultyStore, clock: FakeClock) -> RetentionSweeper:
    return RetentionSweeper(store, clock=clock)
