"""Sliding-window log rate limiter backed by the document store.

Each limiter key owns a CounterRecord holding the timestamps of recent
requests. A check runs as one store transaction: timestamps that fell out of
the window are dropped (lazy compaction), the remaining count is compared to
the policy, and the current request is appended when it is accepted.

Two independent checks exist per action type:
- per actor:    ``{actorId}_{actionType}[_{resourceId}]``
- per resource: ``resource_{resourceId}_{actionType}``

A caller doing both performs two separate transactions; they are not composed
atomically.

Store failures never reach the caller: the limiter logs them and accepts the
request (fail-open), trading strictness for availability.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal, Mapping

from pydantic import ValidationError

from ratekeeper.adapters.store.base import AbstractDocumentStore, Document
from ratekeeper.core.config import RateLimitPolicy
from ratekeeper.core.errors import RateLimitExceededError, StoreError
from ratekeeper.schemas.records import CounterRecord, RequestStamp
from ratekeeper.utils.clock import MillisClock, now_ms
from ratekeeper.utils.keys import document_path, validate_segment

logger = logging.getLogger(__name__)

DEFAULT_POLICY = "default"
DEFAULT_RESOURCE_MULTIPLIER = 10

Scope = Literal["actor", "resource"]


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed (Accept) or not (Reject).
        limit: Max requests per window for the checked key.
        remaining: Requests still available in the window (0 when blocked).
        retry_after_seconds: Seconds until a slot frees up when blocked.
        key: Document key of the counter that was checked.
        scope: Whether the actor or the resource counter was checked.
        fail_open: True when the store failed and the request was let through.
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int | None
    key: str
    scope: Scope = "actor"
    fail_open: bool = False


def actor_counter_id(actor_id: str, action_type: str, resource_id: str | None = None) -> str:
    """Build the per-actor counter id, optionally scoped to a resource."""
    validate_segment(actor_id, name="actor_id")
    validate_segment(action_type, name="action_type")
    if resource_id is not None:
        validate_segment(resource_id, name="resource_id")
        return f"{actor_id}_{action_type}_{resource_id}"
    return f"{actor_id}_{action_type}"


def resource_counter_id(resource_id: str, action_type: str) -> str:
    """Build the per-resource counter id."""
    validate_segment(resource_id, name="resource_id")
    validate_segment(action_type, name="action_type")
    return f"resource_{resource_id}_{action_type}"


def compute_retry_after(now: int, oldest: int, window_ms: int) -> int:
    """Seconds until the oldest in-window request leaves the window."""
    return max(0, math.ceil((window_ms - (now - oldest)) / 1000))


class RateLimiter:
    """Accept/reject decisions for (actor, action[, resource]) tuples."""

    def __init__(
        self,
        store: AbstractDocumentStore,
        *,
        policies: Mapping[str, RateLimitPolicy],
        resource_multiplier: int = DEFAULT_RESOURCE_MULTIPLIER,
        collection: str = "rateLimits",
        clock: MillisClock = now_ms,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Document store handle shared with the other services.
            policies: Policy table keyed by action type; must contain "default".
            resource_multiplier: Factor applied to max_requests to derive the
                per-resource limit when a policy does not set one.
            collection: Collection holding counter records.
            clock: Time source returning UNIX time in milliseconds.

        Raises:
            ValueError: If the policy table or multiplier are invalid.
        """
        if DEFAULT_POLICY not in policies:
            raise ValueError("policies must contain a 'default' entry")
        if resource_multiplier < 1:
            raise ValueError("resource_multiplier must be >= 1")

        self._store = store
        self._policies = dict(policies)
        self._resource_multiplier = resource_multiplier
        self._collection = collection
        self._clock = clock

    def resolve_policy(self, action_type: str) -> RateLimitPolicy:
        """Return the policy for ``action_type``, falling back to "default"."""
        return self._policies.get(action_type, self._policies[DEFAULT_POLICY])

    def resource_limit(self, policy: RateLimitPolicy) -> int:
        if policy.max_requests_per_resource is not None:
            return policy.max_requests_per_resource
        return policy.max_requests * self._resource_multiplier

    async def check_and_increment(
        self,
        actor_id: str,
        action_type: str,
        resource_id: str | None = None,
    ) -> RateLimitResult:
        """Check (and consume) the per-actor budget for an action.

        Args:
            actor_id: Identity issuing the request.
            action_type: Action being performed; selects the policy.
            resource_id: Optional resource that scopes the actor counter.

        Returns:
            RateLimitResult describing the decision.

        Raises:
            ValueError: If an identifier is empty or contains '/'.
        """
        policy = self.resolve_policy(action_type)
        counter_id = actor_counter_id(actor_id, action_type, resource_id)
        return await self._check(
            counter_id=counter_id,
            limit=policy.max_requests,
            window_ms=policy.window_ms,
            scope="actor",
            seed={"actor_id": actor_id, "resource_id": resource_id, "action_type": action_type},
        )

    async def check_resource(self, resource_id: str, action_type: str) -> RateLimitResult:
        """Check (and consume) the aggregate budget of a resource, across actors."""
        policy = self.resolve_policy(action_type)
        counter_id = resource_counter_id(resource_id, action_type)
        return await self._check(
            counter_id=counter_id,
            limit=self.resource_limit(policy),
            window_ms=policy.window_ms,
            scope="resource",
            seed={"resource_id": resource_id, "action_type": action_type},
        )

    async def enforce(
        self,
        actor_id: str,
        action_type: str,
        resource_id: str | None = None,
    ) -> RateLimitResult:
        """Like check_and_increment, but raise RateLimitExceededError on Reject."""
        result = await self.check_and_increment(actor_id, action_type, resource_id)
        self._raise_if_rejected(result, action_type)
        return result

    async def enforce_resource(self, resource_id: str, action_type: str) -> RateLimitResult:
        """Like check_resource, but raise RateLimitExceededError on Reject."""
        result = await self.check_resource(resource_id, action_type)
        self._raise_if_rejected(result, action_type)
        return result

    def _raise_if_rejected(self, result: RateLimitResult, action_type: str) -> None:
        if result.allowed:
            return
        policy = self.resolve_policy(action_type)
        retry_after = result.retry_after_seconds or 0
        subject = "This resource is receiving too many requests. " if result.scope == "resource" else ""
        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message=(
                f"Rate limit exceeded. {subject}Please wait {retry_after} seconds "
                f"before trying again. (Limit: {result.limit} requests per "
                f"{policy.window_ms // 1000} seconds)"
            ),
            details={
                "retry_after_seconds": retry_after,
                "limit": result.limit,
                "window_ms": policy.window_ms,
                "action_type": action_type,
                "scope": result.scope,
            },
        )

    async def _check(
        self,
        *,
        counter_id: str,
        limit: int,
        window_ms: int,
        scope: Scope,
        seed: dict[str, str | None],
    ) -> RateLimitResult:
        key = document_path(self._collection, counter_id)

        def apply(current: Document | None) -> tuple[Document | None, RateLimitResult]:
            # Stamped by the attempt that commits, not the first attempt.
            now = self._clock()
            record = self._load_record(key, current)
            cutoff = now - window_ms
            # Half-open window: a request exactly at the cutoff is out.
            recent = [ts for ts in record.timestamps() if ts > cutoff] if record else []

            if len(recent) >= limit:
                oldest = min(recent) if recent else now
                blocked = RateLimitResult(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    retry_after_seconds=compute_retry_after(now, oldest, window_ms),
                    key=key,
                    scope=scope,
                )
                if record is None:
                    record = CounterRecord(
                        **seed, window_start=now, created_at=now, last_updated=now
                    )
                elif len(recent) == len(record.timestamps()):
                    # Nothing aged out: leave the stored record untouched.
                    return None, blocked
                else:
                    record = record.model_copy(
                        update={
                            "requests": [RequestStamp(timestamp_ms=ts) for ts in recent],
                            "last_updated": now,
                        }
                    )
                return record.to_document(), blocked

            recent.append(now)
            updated = CounterRecord(
                **seed,
                requests=[RequestStamp(timestamp_ms=ts) for ts in recent],
                window_start=now,
                created_at=record.created_at if record else now,
                last_updated=now,
            )
            allowed = RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - len(recent)),
                retry_after_seconds=None,
                key=key,
                scope=scope,
            )
            return updated.to_document(), allowed

        try:
            result = await self._store.run_atomic(key, apply)
        except StoreError as exc:
            logger.warning(
                "rate_limit.store_unavailable",
                extra={
                    "key": key,
                    "scope": scope,
                    "error_code": exc.code,
                    "error_message": exc.message,
                    "fail_open": True,
                },
            )
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=limit,
                retry_after_seconds=None,
                key=key,
                scope=scope,
                fail_open=True,
            )

        if result.allowed:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "key": key,
                    "scope": scope,
                    "limit": limit,
                    "remaining": result.remaining,
                    "window_ms": window_ms,
                },
            )
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "key": key,
                    "scope": scope,
                    "limit": limit,
                    "window_ms": window_ms,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
        return result

    @staticmethod
    def _load_record(key: str, current: Document | None) -> CounterRecord | None:
        if current is None:
            return None
        try:
            return CounterRecord.model_validate(current)
        except ValidationError:
            logger.warning("rate_limit.record_invalid", extra={"key": key})
            return None
