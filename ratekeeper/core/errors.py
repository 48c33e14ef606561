"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after_seconds: int
    limit: int
    window_ms: int
    action_type: str
    scope: str
    key: str
    operation: str
    attempts: int
    batch_size: int
    max_batch_size: int
    provider: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when the caller cannot be authenticated."""


class PermissionDeniedAppError(AppError):
    """Raised when an authenticated caller lacks the required privileges."""


class RateLimitExceededError(AppError):
    """Raised when a caller exceeded its limit; retryable after a delay."""

    @property
    def retry_after_seconds(self) -> int:
        return int((self.details or {}).get("retry_after_seconds", 0))


class StoreError(AppError):
    """Raised when the document store fails or is unreachable."""


class TransactionConflictError(StoreError):
    """Raised when a transactional commit lost against a concurrent writer."""


class BatchCommitError(StoreError):
    """Raised when an atomic batch write could not be committed."""
