from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ratekeeper.core.auth import Principal, get_app_settings, verify_api_key
from ratekeeper.core.config import Settings
from ratekeeper.core.rate_limit import get_admission_guard, raise_for_rejection
from ratekeeper.schemas.rate_limit import RateLimitCheckRequest, RateLimitCheckResponse
from ratekeeper.services.admission import AdmissionGuard

router = APIRouter(tags=["Rate limits"])


@router.post(
    "/rate-limits/check",
    response_model=RateLimitCheckResponse,
    responses={429: {"description": "Rate limit exceeded; see Retry-After."}},
)
async def check_rate_limit(
    body: RateLimitCheckRequest,
    _principal: Annotated[Principal, Depends(verify_api_key)],
    guard: Annotated[AdmissionGuard, Depends(get_admission_guard)],
    cfg: Annotated[Settings, Depends(get_app_settings)],
) -> RateLimitCheckResponse:
    """Run the admission sequence for a request about to be processed.

    Deduplicates configured event classes, then applies the per-actor and
    per-resource limits. Callers proceed only when ``allowed`` is true.

    Raises:
        RateLimitExceededError: Rendered as 429 with a Retry-After header.
    """
    result = await guard.admit(
        body.actor_id,
        body.action_type,
        resource_id=body.resource_id,
        event_type=body.event_type,
    )
    raise_for_rejection(
        result, action_type=body.action_type, enabled=cfg.rate_limit.enabled
    )

    if result.duplicate:
        return RateLimitCheckResponse(outcome="duplicate", allowed=False, duplicate=True)
    # Rejections only reach this point when enforcement is disabled.
    return RateLimitCheckResponse(outcome="accepted", allowed=True, duplicate=False)
