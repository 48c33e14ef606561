"""Admission sequence run by request handlers before their business logic.

Order: deduplicator (configured event classes only), per-actor limit,
per-resource limit. Each step is an independent store operation and the
sequence is not atomic: a request may consume its dedup bucket and still be
rejected by a limiter afterwards, and the bucket is not released.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from ratekeeper.services.deduplicator import Deduplicator
from ratekeeper.services.rate_limiter import RateLimiter, RateLimitResult

Outcome = Literal["accepted", "duplicate", "rejected"]


@dataclass(frozen=True)
class AdmissionResult:
    outcome: Outcome
    retry_after_seconds: int | None = None
    scope: Literal["actor", "resource"] | None = None
    limit: int | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome == "accepted"

    @property
    def duplicate(self) -> bool:
        return self.outcome == "duplicate"


def _rejected(result: RateLimitResult) -> AdmissionResult:
    return AdmissionResult(
        outcome="rejected",
        retry_after_seconds=result.retry_after_seconds,
        scope=result.scope,
        limit=result.limit,
    )


class AdmissionGuard:
    """Runs dedup and both limiter checks for one incoming request."""

    def __init__(self, limiter: RateLimiter, deduplicator: Deduplicator) -> None:
        self._limiter = limiter
        self._deduplicator = deduplicator

    async def admit(
        self,
        actor_id: str,
        action_type: str,
        resource_id: str | None = None,
        event_type: str | None = None,
    ) -> AdmissionResult:
        """Decide whether a request may proceed.

        Args:
            actor_id: Identity issuing the request.
            action_type: Action type used to select the rate limit policy.
            resource_id: Tenant resource acted upon, enabling the resource
                limit and dedup.
            event_type: Event class; only configured classes are deduplicated.

        Returns:
            AdmissionResult with outcome accepted, duplicate or rejected.
        """
        if (
            event_type is not None
            and resource_id is not None
            and self._deduplicator.applies_to(event_type)
        ):
            dedup = await self._deduplicator.should_process(actor_id, event_type, resource_id)
            if dedup.duplicate:
                return AdmissionResult(outcome="duplicate")

        actor = await self._limiter.check_and_increment(actor_id, action_type)
        if not actor.allowed:
            return _rejected(actor)

        if resource_id is not None:
            resource = await self._limiter.check_resource(resource_id, action_type)
            if not resource.allowed:
                return _rejected(resource)

        return AdmissionResult(outcome="accepted")
