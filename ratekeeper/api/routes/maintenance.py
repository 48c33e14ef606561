from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ratekeeper.core.auth import Principal, verify_api_key
from ratekeeper.core.rate_limit import get_maintenance_service
from ratekeeper.schemas.maintenance import ManualPurgeResponse
from ratekeeper.services.maintenance import MaintenanceService

router = APIRouter(tags=["Maintenance"])


@router.post(
    "/maintenance/purge",
    response_model=ManualPurgeResponse,
    responses={
        403: {"description": "Caller is not a maintenance admin."},
        429: {"description": "Too many manual purges; see Retry-After."},
    },
)
async def trigger_purge(
    principal: Annotated[Principal, Depends(verify_api_key)],
    service: Annotated[MaintenanceService, Depends(get_maintenance_service)],
) -> ManualPurgeResponse:
    """Manually purge aged per-tenant records (emergency or testing use).

    Raises:
        PermissionDeniedAppError: 403 when the caller is not an admin.
        RateLimitExceededError: 429 when the caller exceeded the manual
            trigger policy.
    """
    return await service.manual_purge(principal)
