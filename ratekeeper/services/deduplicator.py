"""Bucket-based duplicate suppression for bursty identical events.

Time is cut into fixed buckets (5 minutes by default). The first event of a
given (actor, event type) inside a bucket leaves a DedupRecord under the
resource; later events in the same bucket find it and are reported as
duplicates.

The check is a plain get followed by a put, without a transaction. Two
callers racing inside the same bucket can both see "absent" and both be
accepted. That is acceptable for the coarse, high-volume signals this is
used for (space enter/exit analytics) and must not be used where
exactly-once semantics matter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from ratekeeper.adapters.store.base import AbstractDocumentStore
from ratekeeper.core.errors import StoreError
from ratekeeper.schemas.records import DedupRecord
from ratekeeper.utils.clock import MillisClock, now_ms
from ratekeeper.utils.keys import document_path, validate_segment

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class DedupResult:
    """Outcome of a dedup check.

    Attributes:
        accepted: True when the caller should process the event.
        key: Document key of the bucket marker.
        bucket_start: Start of the bucket (ms) the event fell into.
        fail_open: True when the store failed and the event was let through.
    """

    accepted: bool
    key: str
    bucket_start: int
    fail_open: bool = False

    @property
    def duplicate(self) -> bool:
        return not self.accepted


def bucket_start_for(now: int, bucket_ms: int) -> int:
    """Floor ``now`` to the start of its bucket."""
    return (now // bucket_ms) * bucket_ms


class Deduplicator:
    """Coarse duplicate detector scoped per tenant resource."""

    def __init__(
        self,
        store: AbstractDocumentStore,
        *,
        bucket_ms: int = DEFAULT_BUCKET_MS,
        event_types: Iterable[str] = (),
        tenants_collection: str = "spaces",
        subcollection: str = "dedup",
        clock: MillisClock = now_ms,
    ) -> None:
        if bucket_ms < 1:
            raise ValueError("bucket_ms must be >= 1")

        self._store = store
        self._bucket_ms = bucket_ms
        self._event_types = frozenset(event_types)
        self._tenants_collection = tenants_collection
        self._subcollection = subcollection
        self._clock = clock

    def applies_to(self, event_type: str) -> bool:
        """Whether ``event_type`` is one of the configured dedup event classes."""
        return event_type in self._event_types

    async def should_process(
        self,
        actor_id: str,
        event_type: str,
        resource_id: str,
        bucket_ms: int | None = None,
    ) -> DedupResult:
        """Decide whether an event is the first of its bucket.

        Args:
            actor_id: Identity that produced the event.
            event_type: Event class.
            resource_id: Tenant resource the marker is stored under.
            bucket_ms: Bucket width override; defaults to the configured width.

        Returns:
            DedupResult; ``duplicate`` is True when a marker already existed.

        Raises:
            ValueError: If an identifier is invalid or bucket_ms < 1.
        """
        width = bucket_ms if bucket_ms is not None else self._bucket_ms
        if width < 1:
            raise ValueError("bucket_ms must be >= 1")
        validate_segment(actor_id, name="actor_id")
        validate_segment(event_type, name="event_type")

        now = self._clock()
        bucket_start = bucket_start_for(now, width)
        key = document_path(
            self._tenants_collection,
            resource_id,
            self._subcollection,
            f"{actor_id}_{event_type}_{bucket_start}",
        )

        try:
            existing = await self._store.get(key)
            if existing is not None:
                logger.info(
                    "dedup.duplicate",
                    extra={
                        "actor_id": actor_id,
                        "event_type": event_type,
                        "resource_id": resource_id,
                        "bucket_start": bucket_start,
                    },
                )
                return DedupResult(accepted=False, key=key, bucket_start=bucket_start)

            record = DedupRecord(user_id=actor_id, event_type=event_type, timestamp=now)
            await self._store.put(key, record.to_document())
        except StoreError as exc:
            logger.warning(
                "dedup.store_unavailable",
                extra={
                    "key": key,
                    "error_code": exc.code,
                    "error_message": exc.message,
                    "fail_open": True,
                },
            )
            return DedupResult(accepted=True, key=key, bucket_start=bucket_start, fail_open=True)

        return DedupResult(accepted=True, key=key, bucket_start=bucket_start)
