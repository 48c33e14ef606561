"""Stored record models.

Documents are persisted as camelCase dicts produced by these models. Each
record carries a ``kind`` tag and a ``schemaVersion`` so that readers can
recognise (and migrate) documents written by older releases.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RECORD_SCHEMA_VERSION = 1


class _StoredModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored (camelCase) document shape."""
        return self.model_dump(by_alias=True)


class RequestStamp(_StoredModel):
    """One request logged inside a counter record."""

    timestamp_ms: int


class CounterRecord(_StoredModel):
    """Sliding-window log for one rate-limit key.

    ``window_start`` is the time of the last accepted request. It only drives
    retention sweeps; the window itself is computed from ``requests``.
    """

    kind: Literal["counter"] = "counter"
    schema_version: int = RECORD_SCHEMA_VERSION
    actor_id: str | None = None
    resource_id: str | None = None
    action_type: str
    requests: list[RequestStamp] = Field(default_factory=list)
    window_start: int
    created_at: int
    last_updated: int

    def timestamps(self) -> list[int]:
        return [stamp.timestamp_ms for stamp in self.requests]


class DedupRecord(_StoredModel):
    """Marker proving that one bucket of an event class was accepted."""

    kind: Literal["dedup"] = "dedup"
    schema_version: int = RECORD_SCHEMA_VERSION
    user_id: str
    event_type: str
    timestamp: int
    processed: bool = True
