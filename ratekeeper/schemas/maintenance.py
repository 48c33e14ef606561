"""Pydantic schemas for maintenance responses."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class ManualPurgeResponse(BaseModel):
    """Result of an operator-triggered purge across all tenants."""

    success: bool = Field(
        ...,
        description=(
            "False when the tenants could not be listed or at least one "
            "tenant could not be purged."
        ),
    )
    tenants_processed: int = Field(
        ..., description="Number of tenants whose aged records were purged."
    )
    total_deleted: int = Field(
        ..., description="Documents actually deleted across all tenants."
    )
    failed_tenants: List[str] = Field(
        default_factory=list,
        description="Tenants skipped because of store failures.",
    )
    listing_failed: bool = Field(
        False, description="True when the tenant list could not be read; nothing was swept."
    )
    timestamp: str = Field(
        ..., description="ISO-8601 UTC completion time."
    )
    triggered_by: str = Field(
        ..., description="Uid of the operator who triggered the purge."
    )
