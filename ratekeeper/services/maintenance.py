"""Operator-triggered maintenance.

Manual purges reuse the scheduled sweep but are gated twice: the caller must
be in the admin group, and even admins are bounded by the ``chatCleanup``
rate limit policy (5 triggers per hour by default).
"""

from __future__ import annotations

import logging

from ratekeeper.core.auth import Principal, require_group
from ratekeeper.schemas.maintenance import ManualPurgeResponse
from ratekeeper.services.rate_limiter import RateLimiter
from ratekeeper.services.retention import RetentionSweeper

logger = logging.getLogger(__name__)

MANUAL_PURGE_ACTION = "chatCleanup"


class MaintenanceService:
    def __init__(
        self,
        limiter: RateLimiter,
        sweeper: RetentionSweeper,
        *,
        admin_group: str = "maintenanceAdmin",
    ) -> None:
        self._limiter = limiter
        self._sweeper = sweeper
        self._admin_group = admin_group

    async def manual_purge(self, principal: Principal) -> ManualPurgeResponse:
        """Purge aged per-tenant records on behalf of an operator.

        Raises:
            PermissionDeniedAppError: If the principal is not an admin.
            RateLimitExceededError: If the operator triggered too many purges.
        """
        require_group(principal, self._admin_group)
        await self._limiter.enforce(principal.uid, MANUAL_PURGE_ACTION)

        logger.info("maintenance.manual_purge_started", extra={"uid": principal.uid})
        summary = await self._sweeper.purge_tenant_collections()

        return ManualPurgeResponse(
            success=summary.succeeded,
            tenants_processed=summary.tenants_processed,
            total_deleted=summary.total_deleted,
            failed_tenants=summary.failed_tenants,
            listing_failed=summary.listing_failed,
            timestamp=summary.timestamp,
            triggered_by=principal.uid,
        )
