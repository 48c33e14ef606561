"""Document store interfaces.

Services depend on this abstraction (not a concrete backend) so the in-memory
store used for development and tests can be replaced by a managed document
database without touching the limiter, deduplicator or sweeper.

The transaction loop lives here rather than in the backends: a backend only
has to provide a versioned read and a compare-and-set commit, and every
backend gets the same bounded retry with exponential backoff.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from ratekeeper.core.errors import StoreError, TransactionConflictError

logger = logging.getLogger(__name__)

Document = dict[str, Any]
T = TypeVar("T")

# fn(current) -> (new document or None to leave it untouched, result)
AtomicUpdate = Callable[[Document | None], tuple[Document | None, T]]


@dataclass(frozen=True)
class VersionedDocument:
    """Snapshot of a document together with its commit version.

    Attributes:
        data: Document contents, or None when the key is absent.
        version: Monotonic version; 0 means the document does not exist.
    """

    data: Document | None
    version: int


class AbstractDocumentStore(ABC):
    """Async key-value document store with an atomic read-modify-write primitive.

    Keys are ``/``-separated paths. Every public method is a single round-trip
    and may raise StoreError; "not found" is reported as None, never as an
    error.
    """

    def __init__(
        self,
        *,
        max_batch_size: int = 500,
        max_attempts: int = 5,
        backoff_base_ms: int = 20,
        backoff_max_ms: int = 1000,
    ) -> None:
        """Initialize shared store options.

        Args:
            max_batch_size: Largest number of deletes accepted by delete_batch.
            max_attempts: Transaction attempts before giving up on conflicts.
            backoff_base_ms: Base delay of the exponential backoff.
            backoff_max_ms: Cap for a single backoff delay.

        Raises:
            ValueError: If max_batch_size or max_attempts are invalid.
        """
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.max_batch_size = max_batch_size
        self._max_attempts = max_attempts
        self._backoff_base_ms = backoff_base_ms
        self._backoff_max_ms = backoff_max_ms

    @abstractmethod
    async def get(self, key: str) -> Document | None:
        """Fetch a document by key, or None if it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, data: Document) -> None:
        """Create or overwrite a document unconditionally."""
        raise NotImplementedError

    @abstractmethod
    async def query_older_than(self, collection: str, field: str, cutoff: int) -> list[str]:
        """List keys of documents in ``collection`` whose ``field`` < ``cutoff``.

        Only documents directly inside the collection are considered;
        documents lacking a numeric ``field`` never match.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete_batch(self, keys: Sequence[str]) -> None:
        """Delete all ``keys`` in one atomic commit.

        Raises:
            BatchCommitError: If the batch exceeds max_batch_size or the commit fails.
        """
        raise NotImplementedError

    @abstractmethod
    async def list_ids(self, collection: str) -> list[str]:
        """List document ids directly inside ``collection``."""
        raise NotImplementedError

    @abstractmethod
    async def _read_versioned(self, key: str) -> VersionedDocument:
        """Read a document and the version it was committed at."""
        raise NotImplementedError

    @abstractmethod
    async def _commit_if_unchanged(
        self, key: str, expected_version: int, data: Document
    ) -> None:
        """Write ``data`` only if the stored version still equals ``expected_version``.

        Raises:
            TransactionConflictError: If another writer committed in between.
        """
        raise NotImplementedError

    def _backoff_seconds(self, attempt: int) -> float:
        base = min(self._backoff_max_ms, self._backoff_base_ms * (2 ** (attempt - 1)))
        return (base + random.uniform(0, 0.333 * base)) / 1000

    async def run_atomic(self, key: str, fn: AtomicUpdate[T]) -> T:
        """Run an optimistic read-modify-write transaction on one key.

        ``fn`` receives a private copy of the current document (or None) and
        returns the document to store (None leaves it untouched) together with
        the value handed back to the caller. ``fn`` may run more than once and
        must therefore be free of side effects.

        Args:
            key: Document key.
            fn: Pure update function.

        Returns:
            The result produced by the attempt that committed.

        Raises:
            StoreError: On I/O failure, or when every attempt lost a conflict.
        """
        for attempt in range(1, self._max_attempts + 1):
            snapshot = await self._read_versioned(key)
            new_data, result = fn(copy.deepcopy(snapshot.data))
            if new_data is None:
                return result

            try:
                await self._commit_if_unchanged(key, snapshot.version, new_data)
                return result
            except TransactionConflictError:
                if attempt == self._max_attempts:
                    break
                delay = self._backoff_seconds(attempt)
                logger.debug(
                    "store.transaction_conflict",
                    extra={
                        "key": key,
                        "attempt": attempt,
                        "retry_in_ms": round(delay * 1000, 2),
                    },
                )
                await asyncio.sleep(delay)

        logger.warning(
            "store.transaction_aborted",
            extra={"key": key, "attempts": self._max_attempts},
        )
        raise StoreError(
            code="transaction_conflict",
            message="Transaction aborted after repeated concurrent modifications",
            details={"key": key, "attempts": self._max_attempts},
        )
