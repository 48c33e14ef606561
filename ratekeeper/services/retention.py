"""Retention sweeper: batched deletion of aged records.

A single generic operation, ``purge``, removes every document of a collection
whose age field is older than a threshold, committing deletes in chunks no
larger than the store's atomic batch limit. Two concrete sweeps are built on
top of it:

- stale rate-limit counters (``rateLimits`` by ``windowStart``, 1 hour),
- aged per-tenant messages (``spaces/{tenant}/chatMessages`` by
  ``timestamp``, 24 hours), iterating every tenant.

The sweeper is best-effort. A failed chunk is logged and skipped while later
chunks still run; a failed tenant is logged while other tenants still run.
Counts only include deletes that were actually committed.

Deletes are not coordinated with concurrent writers. A counter deleted while
a check is in flight may be recreated immediately; it then simply starts a
fresh window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ratekeeper.adapters.store.base import AbstractDocumentStore
from ratekeeper.core.errors import StoreError
from ratekeeper.utils.clock import MillisClock, iso_from_ms, now_ms
from ratekeeper.utils.keys import document_path

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class PurgeResult:
    """Outcome of purging one collection.

    Attributes:
        collection: Collection path that was swept.
        deleted_count: Documents deleted by committed batches.
        batches_committed: Number of batches that committed.
        batches_failed: Number of batches that failed and were skipped.
        query_failed: True when the eligible documents could not be listed.
    """

    collection: str
    deleted_count: int = 0
    batches_committed: int = 0
    batches_failed: int = 0
    query_failed: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.query_failed and self.batches_failed == 0


@dataclass(frozen=True)
class TenantPurgeSummary:
    """Aggregate outcome of a sweep across all tenants.

    ``listing_failed`` is set when the tenants could not be enumerated; no
    tenant was swept in that case.
    """

    tenants_processed: int
    total_deleted: int
    timestamp: str
    failed_tenants: list[str] = field(default_factory=list)
    listing_failed: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.failed_tenants and not self.listing_failed


def chunked(items: list[str], size: int) -> list[list[str]]:
    """Split ``items`` into consecutive chunks of at most ``size`` elements."""
    return [items[i : i + size] for i in range(0, len(items), size)]


class RetentionSweeper:
    """Deletes aged documents in bounded atomic batches."""

    def __init__(
        self,
        store: AbstractDocumentStore,
        *,
        counters_collection: str = "rateLimits",
        counter_max_age_ms: int = HOUR_MS,
        tenants_collection: str = "spaces",
        messages_subcollection: str = "chatMessages",
        messages_age_field: str = "timestamp",
        message_max_age_ms: int = 24 * HOUR_MS,
        clock: MillisClock = now_ms,
    ) -> None:
        self._store = store
        self._counters_collection = counters_collection
        self._counter_max_age_ms = counter_max_age_ms
        self._tenants_collection = tenants_collection
        self._messages_subcollection = messages_subcollection
        self._messages_age_field = messages_age_field
        self._message_max_age_ms = message_max_age_ms
        self._clock = clock

    async def purge(
        self,
        collection: str,
        age_field: str,
        max_age_ms: int,
        batch_size: int | None = None,
    ) -> PurgeResult:
        """Delete documents of ``collection`` whose ``age_field`` is too old.

        Documents with ``age_field < now - max_age_ms`` are deleted; documents
        at or after the threshold are kept.

        Args:
            collection: Collection path to sweep.
            age_field: Numeric millisecond field holding the record age.
            max_age_ms: Age threshold in milliseconds.
            batch_size: Deletes per atomic commit; defaults to (and is capped
                at) the store's maximum batch size.

        Returns:
            PurgeResult with the number of documents actually deleted.

        Raises:
            ValueError: If max_age_ms or batch_size are invalid.
        """
        if max_age_ms < 0:
            raise ValueError("max_age_ms must be >= 0")
        if batch_size is not None and batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        size = min(batch_size or self._store.max_batch_size, self._store.max_batch_size)
        cutoff = self._clock() - max_age_ms

        try:
            keys = await self._store.query_older_than(collection, age_field, cutoff)
        except StoreError as exc:
            logger.error(
                "retention.query_failed",
                extra={
                    "collection": collection,
                    "error_code": exc.code,
                    "error_message": exc.message,
                },
            )
            return PurgeResult(collection=collection, query_failed=True)

        deleted = committed = failed = 0
        for index, chunk in enumerate(chunked(keys, size)):
            try:
                await self._store.delete_batch(chunk)
            except StoreError as exc:
                failed += 1
                logger.error(
                    "retention.batch_failed",
                    extra={
                        "collection": collection,
                        "batch_index": index,
                        "batch_size": len(chunk),
                        "error_code": exc.code,
                        "error_message": exc.message,
                    },
                )
                continue
            committed += 1
            deleted += len(chunk)

        if keys:
            logger.info(
                "retention.purged",
                extra={
                    "collection": collection,
                    "age_field": age_field,
                    "cutoff_ms": cutoff,
                    "eligible": len(keys),
                    "deleted": deleted,
                    "batches_committed": committed,
                    "batches_failed": failed,
                },
            )

        return PurgeResult(
            collection=collection,
            deleted_count=deleted,
            batches_committed=committed,
            batches_failed=failed,
        )

    async def purge_counter_records(self, max_age_ms: int | None = None) -> PurgeResult:
        """Delete counter records not renewed within the retention horizon."""
        return await self.purge(
            self._counters_collection,
            "windowStart",
            max_age_ms if max_age_ms is not None else self._counter_max_age_ms,
        )

    async def purge_tenant_collections(
        self,
        max_age_ms: int | None = None,
        batch_size: int | None = None,
    ) -> TenantPurgeSummary:
        """Purge aged messages of every tenant.

        A tenant whose purge fails is logged and listed in ``failed_tenants``;
        the remaining tenants are still processed.
        """
        horizon = max_age_ms if max_age_ms is not None else self._message_max_age_ms
        total_deleted = 0
        processed = 0
        failed: list[str] = []
        listing_failed = False

        try:
            tenant_ids = await self._store.list_ids(self._tenants_collection)
        except StoreError as exc:
            logger.error(
                "retention.tenant_listing_failed",
                extra={
                    "collection": self._tenants_collection,
                    "error_code": exc.code,
                    "error_message": exc.message,
                },
            )
            tenant_ids = []
            listing_failed = True

        for tenant_id in tenant_ids:
            collection = document_path(
                self._tenants_collection, tenant_id, self._messages_subcollection
            )
            result = await self.purge(collection, self._messages_age_field, horizon, batch_size)
            total_deleted += result.deleted_count
            if result.succeeded:
                processed += 1
            else:
                failed.append(tenant_id)
                logger.warning(
                    "retention.tenant_failed",
                    extra={"tenant_id": tenant_id, "deleted": result.deleted_count},
                )

        summary = TenantPurgeSummary(
            tenants_processed=processed,
            total_deleted=total_deleted,
            timestamp=iso_from_ms(self._clock()),
            failed_tenants=failed,
            listing_failed=listing_failed,
        )
        logger.info(
            "retention.tenants_purged",
            extra={
                "tenants_processed": processed,
                "tenants_failed": len(failed),
                "total_deleted": total_deleted,
                "listing_failed": listing_failed,
            },
        )
        return summary
