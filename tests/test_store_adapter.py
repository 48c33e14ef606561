"""Unit tests for the in-memory document store adapter."""

import asyncio

import pytest

from ratekeeper.adapters.store import InMemoryDocumentStore, create_document_store
from ratekeeper.core.config import StoreSettings
from ratekeeper.core.errors import BatchCommitError, StoreError, ValidationAppError


def _increment(calls: list[int]):
    def apply(current):
        calls.append(1)
        count = (current or {}).get("count", 0) + 1
        return {"count": count}, count

    return apply


@pytest.mark.asyncio
async def test_get_missing_returns_none() -> None:
    store = InMemoryDocumentStore()

    assert await store.get("rateLimits/absent") is None


@pytest.mark.asyncio
async def test_get_returns_private_copy() -> None:
    store = InMemoryDocumentStore()
    await store.put("rateLimits/k", {"requests": [1, 2]})

    doc = await store.get("rateLimits/k")
    doc["requests"].append(3)

    assert await store.get("rateLimits/k") == {"requests": [1, 2]}


@pytest.mark.asyncio
async def test_run_atomic_creates_and_updates() -> None:
    store = InMemoryDocumentStore()
    calls: list[int] = []

    assert await store.run_atomic("rateLimits/k", _increment(calls)) == 1
    assert await store.run_atomic("rateLimits/k", _increment(calls)) == 2
    assert await store.get("rateLimits/k") == {"count": 2}


@pytest.mark.asyncio
async def test_run_atomic_none_leaves_document_untouched() -> None:
    store = InMemoryDocumentStore()
    await store.put("rateLimits/k", {"count": 7})

    result = await store.run_atomic("rateLimits/k", lambda current: (None, current["count"]))

    assert result == 7
    assert await store.get("rateLimits/k") == {"count": 7}


@pytest.mark.asyncio
async def test_run_atomic_retries_on_conflict() -> None:
    store = InMemoryDocumentStore(backoff_base_ms=1)
    calls: list[int] = []

    results = await asyncio.gather(
        store.run_atomic("rateLimits/k", _increment(calls)),
        store.run_atomic("rateLimits/k", _increment(calls)),
    )

    assert sorted(results) == [1, 2]
    assert await store.get("rateLimits/k") == {"count": 2}
    # The losing transaction re-ran its update function once.
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_run_atomic_gives_up_after_max_attempts() -> None:
    store = InMemoryDocumentStore(max_attempts=1)
    calls: list[int] = []

    results = await asyncio.gather(
        store.run_atomic("rateLimits/k", _increment(calls)),
        store.run_atomic("rateLimits/k", _increment(calls)),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, StoreError)]
    assert len(errors) == 1
    assert errors[0].code == "transaction_conflict"
    assert await store.get("rateLimits/k") == {"count": 1}


@pytest.mark.asyncio
async def test_many_concurrent_transactions_never_lose_updates() -> None:
    store = InMemoryDocumentStore(max_attempts=50, backoff_base_ms=1, backoff_max_ms=5)
    calls: list[int] = []

    await asyncio.gather(*(store.run_atomic("rateLimits/k", _increment(calls)) for _ in range(15)))

    assert await store.get("rateLimits/k") == {"count": 15}


@pytest.mark.asyncio
async def test_transaction_detects_delete_between_read_and_commit() -> None:
    store = InMemoryDocumentStore(max_attempts=2, backoff_base_ms=1)
    await store.put("rateLimits/k", {"count": 5})
    seen: list[object] = []

    def apply(current):
        seen.append(current)
        return {"count": (current or {}).get("count", 0) + 1}, None

    async def delete_soon() -> None:
        await store.delete_batch(["rateLimits/k"])

    await asyncio.gather(store.run_atomic("rateLimits/k", apply), delete_soon())

    # First attempt saw the old document, the retry saw it deleted.
    assert seen == [{"count": 5}, None]
    assert await store.get("rateLimits/k") == {"count": 1}


@pytest.mark.asyncio
async def test_delete_batch_rejects_oversized_batches() -> None:
    store = InMemoryDocumentStore(max_batch_size=2)
    for i in range(3):
        await store.put(f"rateLimits/k{i}", {"windowStart": i})

    with pytest.raises(BatchCommitError) as exc_info:
        await store.delete_batch(["rateLimits/k0", "rateLimits/k1", "rateLimits/k2"])

    assert isinstance(exc_info.value, StoreError)
    assert exc_info.value.code == "batch_too_large"
    assert len(await store.list_ids("rateLimits")) == 3


@pytest.mark.asyncio
async def test_query_older_than_only_matches_direct_numeric_children() -> None:
    store = InMemoryDocumentStore()
    await store.put("rateLimits/old", {"windowStart": 10})
    await store.put("rateLimits/new", {"windowStart": 100})
    await store.put("rateLimits/no_field", {"other": 1})
    await store.put("rateLimits/flag", {"windowStart": True})
    await store.put("rateLimits/old/nested/doc", {"windowStart": 1})

    keys = await store.query_older_than("rateLimits", "windowStart", 50)

    assert keys == ["rateLimits/old"]


@pytest.mark.asyncio
async def test_list_ids_returns_direct_children() -> None:
    store = InMemoryDocumentStore()
    await store.put("spaces/s1", {"name": "one"})
    await store.put("spaces/s2", {"name": "two"})
    await store.put("spaces/s1/chatMessages/m1", {"timestamp": 0})

    assert sorted(await store.list_ids("spaces")) == ["s1", "s2"]
    assert await store.list_ids("spaces/s1/chatMessages") == ["m1"]


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["", "rateLimits//k", "rateLimits/"])
async def test_invalid_keys_are_rejected(key: str) -> None:
    store = InMemoryDocumentStore()

    with pytest.raises(ValueError):
        await store.get(key)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_batch_size": 0},
        {"max_attempts": 0},
        {"latency_seconds": -1},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryDocumentStore(**kwargs)


def test_factory_builds_memory_store() -> None:
    store = create_document_store(StoreSettings(provider="memory", max_batch_size=100))

    assert isinstance(store, InMemoryDocumentStore)
    assert store.max_batch_size == 100


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        create_document_store(StoreSettings(provider="cassandra"))

    assert exc_info.value.code == "store_unknown_provider"
