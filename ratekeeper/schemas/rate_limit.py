"""Pydantic schemas for rate limit check requests and responses."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

_ID_PATTERN = r"^[^/]+$"


class RateLimitCheckRequest(BaseModel):
    """Admission check requested by a calling handler."""

    actor_id: str = Field(
        ..., min_length=1, pattern=_ID_PATTERN, description="Identity issuing the request."
    )
    action_type: str = Field(
        ...,
        min_length=1,
        pattern=_ID_PATTERN,
        description="Action type; unknown types fall back to the default policy.",
    )
    resource_id: str | None = Field(
        default=None,
        min_length=1,
        pattern=_ID_PATTERN,
        description="Tenant resource acted upon; enables the per-resource limit.",
    )
    event_type: str | None = Field(
        default=None,
        min_length=1,
        pattern=_ID_PATTERN,
        description="Event class; configured classes are deduplicated per bucket.",
    )


class RateLimitCheckResponse(BaseModel):
    """Admission decision for a request that was not rejected."""

    outcome: Literal["accepted", "duplicate"] = Field(
        ..., description="'duplicate' means the event was already processed in this bucket."
    )
    allowed: bool = Field(
        ..., description="True when the caller should proceed with its business logic."
    )
    duplicate: bool = Field(
        ..., description="True when the event was suppressed as a duplicate."
    )
