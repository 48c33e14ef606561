"""Rate limiting dependencies for FastAPI routes.

This module wires the services built by the application factory into the
HTTP layer. Services live on ``app.state.services``; routes depend on the
accessor functions here only, which keeps them easy to override in tests.

Rejections are raised as RateLimitExceededError and rendered as HTTP 429 by
the global exception handlers.
"""

from __future__ import annotations

import logging

from fastapi import Request

from ratekeeper.core.errors import RateLimitExceededError
from ratekeeper.services.admission import AdmissionGuard, AdmissionResult
from ratekeeper.services.maintenance import MaintenanceService
from ratekeeper.services.registry import ServiceRegistry

logger = logging.getLogger(__name__)


def get_services(request: Request) -> ServiceRegistry:
    """Return the service registry attached to the running application."""
    return request.app.state.services


def get_admission_guard(request: Request) -> AdmissionGuard:
    return get_services(request).admission


def get_maintenance_service(request: Request) -> MaintenanceService:
    return get_services(request).maintenance


def raise_for_rejection(
    result: AdmissionResult, *, action_type: str, enabled: bool = True
) -> None:
    """Translate a rejected admission into RateLimitExceededError.

    Does nothing for accepted or duplicate outcomes, and nothing at all when
    ``enabled`` is false (RATE_LIMIT_ENABLED=false).

    Raises:
        RateLimitExceededError: When the admission was rejected.
    """
    if result.outcome != "rejected" or not enabled:
        return

    retry_after = result.retry_after_seconds or 0
    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message=f"Rate limit exceeded. Please wait {retry_after} seconds before trying again.",
        details={
            "retry_after_seconds": retry_after,
            "limit": result.limit or 0,
            "action_type": action_type,
            "scope": result.scope or "actor",
        },
    )
