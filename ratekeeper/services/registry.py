"""Construction of the service graph around a single store handle."""

from __future__ import annotations

from dataclasses import dataclass

from ratekeeper.adapters.store.base import AbstractDocumentStore
from ratekeeper.core.config import Settings
from ratekeeper.services.admission import AdmissionGuard
from ratekeeper.services.deduplicator import Deduplicator
from ratekeeper.services.maintenance import MaintenanceService
from ratekeeper.services.rate_limiter import RateLimiter
from ratekeeper.services.retention import RetentionSweeper
from ratekeeper.utils.clock import MillisClock, now_ms


@dataclass(frozen=True)
class ServiceRegistry:
    store: AbstractDocumentStore
    limiter: RateLimiter
    deduplicator: Deduplicator
    sweeper: RetentionSweeper
    admission: AdmissionGuard
    maintenance: MaintenanceService


def build_services(
    store: AbstractDocumentStore,
    cfg: Settings,
    *,
    clock: MillisClock = now_ms,
) -> ServiceRegistry:
    """Wire every service to the same store handle and clock.

    Args:
        store: Store client created once by the application factory.
        cfg: Resolved settings.
        clock: Millisecond time source.

    Returns:
        ServiceRegistry holding the wired services.
    """
    limiter = RateLimiter(
        store,
        policies=cfg.rate_limit.policies,
        resource_multiplier=cfg.rate_limit.resource_multiplier,
        collection=cfg.rate_limit.counters_collection,
        clock=clock,
    )
    deduplicator = Deduplicator(
        store,
        bucket_ms=cfg.dedup.bucket_ms,
        event_types=[e.strip() for e in cfg.dedup.event_types.split(",") if e.strip()],
        tenants_collection=cfg.retention.tenants_collection,
        subcollection=cfg.dedup.subcollection,
        clock=clock,
    )
    sweeper = RetentionSweeper(
        store,
        counters_collection=cfg.rate_limit.counters_collection,
        counter_max_age_ms=cfg.retention.counter_max_age_ms,
        tenants_collection=cfg.retention.tenants_collection,
        messages_subcollection=cfg.retention.messages_subcollection,
        messages_age_field=cfg.retention.messages_age_field,
        message_max_age_ms=cfg.retention.message_max_age_ms,
        clock=clock,
    )
    return ServiceRegistry(
        store=store,
        limiter=limiter,
        deduplicator=deduplicator,
        sweeper=sweeper,
        admission=AdmissionGuard(limiter, deduplicator),
        maintenance=MaintenanceService(limiter, sweeper, admin_group=cfg.app.admin_group),
    )
