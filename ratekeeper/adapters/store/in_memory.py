"""In-memory document store (development and tests).

Notes:
- Per-process only: every worker owns an independent copy of the data.
- Each operation awaits a simulated round-trip before touching state, so
  concurrent coroutines interleave exactly where a remote store would let
  them, and optimistic transactions can genuinely conflict.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from typing import Sequence

from ratekeeper.adapters.store.base import AbstractDocumentStore, Document, VersionedDocument
from ratekeeper.core.errors import BatchCommitError, TransactionConflictError
from ratekeeper.utils.keys import document_id, parent_collection, validate_segment


@dataclass
class _StoredDocument:
    data: Document
    version: int


class InMemoryDocumentStore(AbstractDocumentStore):
    """Dict-backed document store with per-key versions.

    Deleted keys keep advancing their version counter so that a transaction
    which read a document before it was deleted still detects the change.
    """

    def __init__(
        self,
        *,
        latency_seconds: float = 0.0,
        max_batch_size: int = 500,
        max_attempts: int = 5,
        backoff_base_ms: int = 20,
        backoff_max_ms: int = 1000,
    ) -> None:
        super().__init__(
            max_batch_size=max_batch_size,
            max_attempts=max_attempts,
            backoff_base_ms=backoff_base_ms,
            backoff_max_ms=backoff_max_ms,
        )
        if latency_seconds < 0:
            raise ValueError("latency_seconds must be >= 0")
        self._latency = latency_seconds
        self._documents: dict[str, _StoredDocument] = {}
        self._tombstones: dict[str, int] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryDocumentStore(documents={len(self._documents)}, "
            f"max_batch_size={self.max_batch_size})"
        )

    async def _round_trip(self) -> None:
        await asyncio.sleep(self._latency)

    @staticmethod
    def _validate_key(key: str) -> None:
        for segment in key.split("/"):
            validate_segment(segment, name="key segment")

    def _current_version(self, key: str) -> int:
        stored = self._documents.get(key)
        if stored is not None:
            return stored.version
        return self._tombstones.get(key, 0)

    def _write(self, key: str, data: Document) -> None:
        version = self._current_version(key) + 1
        self._documents[key] = _StoredDocument(data=copy.deepcopy(data), version=version)
        self._tombstones.pop(key, None)

    async def get(self, key: str) -> Document | None:
        self._validate_key(key)
        await self._round_trip()
        stored = self._documents.get(key)
        return copy.deepcopy(stored.data) if stored else None

    async def put(self, key: str, data: Document) -> None:
        self._validate_key(key)
        await self._round_trip()
        self._write(key, data)

    async def query_older_than(self, collection: str, field: str, cutoff: int) -> list[str]:
        await self._round_trip()
        matches: list[str] = []
        for key, stored in self._documents.items():
            if parent_collection(key) != collection:
                continue
            value = stored.data.get(field)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value < cutoff:
                matches.append(key)
        return matches

    async def delete_batch(self, keys: Sequence[str]) -> None:
        if len(keys) > self.max_batch_size:
            raise BatchCommitError(
                code="batch_too_large",
                message="Batch exceeds the maximum number of writes per commit",
                details={"batch_size": len(keys), "max_batch_size": self.max_batch_size},
            )
        await self._round_trip()
        for key in keys:
            stored = self._documents.pop(key, None)
            if stored is not None:
                self._tombstones[key] = stored.version + 1

    async def list_ids(self, collection: str) -> list[str]:
        await self._round_trip()
        return [
            document_id(key)
            for key in self._documents
            if parent_collection(key) == collection
        ]

    async def _read_versioned(self, key: str) -> VersionedDocument:
        self._validate_key(key)
        await self._round_trip()
        stored = self._documents.get(key)
        if stored is None:
            return VersionedDocument(data=None, version=self._current_version(key))
        return VersionedDocument(data=copy.deepcopy(stored.data), version=stored.version)

    async def _commit_if_unchanged(
        self, key: str, expected_version: int, data: Document
    ) -> None:
        await self._round_trip()
        if self._current_version(key) != expected_version:
            raise TransactionConflictError(
                code="transaction_conflict",
                message="Document changed since it was read",
                details={"key": key},
            )
        self._write(key, data)
