"""Global exception handlers.

Every error leaving the API has the same envelope::

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": ...}}

Status mapping:
- ValidationAppError (and any other AppError) → 400
- AuthenticationAppError → 401
- PermissionDeniedAppError → 403
- RateLimitExceededError → 429 with ``Retry-After``
- StoreError → 503 (only reached when a store failure is not absorbed by a
  fail-open service)
- anything else → 500 with a generic message
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ratekeeper.core.config import Settings, settings
from ratekeeper.core.errors import (
    AppError,
    AuthenticationAppError,
    PermissionDeniedAppError,
    RateLimitExceededError,
    StoreError,
)
from ratekeeper.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_TYPE: tuple[tuple[type[AppError], int], ...] = (
    (AuthenticationAppError, 401),
    (PermissionDeniedAppError, 403),
    (RateLimitExceededError, 429),
    (StoreError, 503),
)


def _status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_TYPE:
        if isinstance(exc, error_type):
            return status_code
    return 400


def _envelope(code: str, message: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": get_request_id(),
    }
    if details:
        body["details"] = details
    return {"error": body}


def _rate_limit_headers(exc: RateLimitExceededError, cfg: Settings) -> dict[str, str]:
    if not cfg.rate_limit.include_headers:
        return {}
    headers = {"Retry-After": str(exc.retry_after_seconds)}
    limit = (exc.details or {}).get("limit")
    if limit is not None:
        headers["X-RateLimit-Limit"] = str(limit)
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with its mapped status code.

    Args:
        request: Incoming request.
        exc: Raised AppError (or subclass).

    Returns:
        JSONResponse carrying the error envelope, plus rate limit headers for
        429 responses.
    """
    status_code = _status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "path": request.url.path,
            "has_details": bool(exc.details),
        },
    )

    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitExceededError):
        cfg = getattr(request.app.state, "settings", None) or settings
        headers = _rate_limit_headers(exc, cfg)
    return JSONResponse(
        status_code=status_code,
        content=_envelope(exc.code, exc.message, exc.details),
        headers=headers or None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log the failure, answer 500 without internals."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return JSONResponse(
        status_code=500,
        content=_envelope(
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the AppError and fallback handlers on ``app``."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
