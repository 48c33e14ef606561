"""API key authentication and operator principals.

Keys are configured as a comma-separated list of ``key:uid[:group+group]``
entries. A valid key resolves to a Principal, whose groups gate the
maintenance operations.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from ratekeeper.core.config import Settings, settings
from ratekeeper.core.errors import AuthenticationAppError, PermissionDeniedAppError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller.

    Attributes:
        uid: Stable identifier, used as the rate limit actor id.
        groups: Group memberships granting privileges.
    """

    uid: str
    groups: frozenset[str] = field(default_factory=frozenset)

    def is_member(self, group: str) -> bool:
        return group in self.groups


ANONYMOUS = Principal(uid="anonymous")


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def parse_api_keys(keys_string: str | None) -> dict[str, Principal]:
    """Parse configured API key entries into principals.

    Args:
        keys_string: Comma-separated ``key:uid[:group+group]`` entries, or None.

    Returns:
        Mapping of API key to Principal. A bare key gets a uid derived from
        its hash and no groups.

    Examples:
        >>> parse_api_keys("k1:alice:maintenanceAdmin")["k1"].uid
        'alice'
        >>> parse_api_keys(None)
        {}
    """
    if not keys_string:
        return {}

    principals: dict[str, Principal] = {}
    for entry in keys_string.split(","):
        parts = [part.strip() for part in entry.strip().split(":")]
        key = parts[0]
        if not key:
            continue
        uid = parts[1] if len(parts) > 1 and parts[1] else f"key_{_hash_key(key)[:12]}"
        groups = frozenset(
            g.strip() for g in parts[2].split("+") if g.strip()
        ) if len(parts) > 2 else frozenset()
        principals[key] = Principal(uid=uid, groups=groups)
    return principals


def get_app_settings(request: Request) -> Settings:
    """Return the settings the running app was built with."""
    return getattr(request.app.state, "settings", None) or settings


def validate_api_key(provided_key: str, cfg: Settings | None = None) -> Principal:
    """Resolve the principal owning ``provided_key``.

    Pure validation logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: API key to validate.
        cfg: Settings to validate against; defaults to the global settings.

    Returns:
        The matching Principal (ANONYMOUS when authentication is disabled).

    Raises:
        AuthenticationAppError: If the key is unknown or no keys are configured.
    """
    cfg = cfg or settings
    if not cfg.app.api_key_required:
        return ANONYMOUS

    principals = parse_api_keys(cfg.app.api_keys)

    if not principals:
        logger.error(
            "api_key_validation_failed",
            extra={
                "reason": "api_keys_not_configured",
                "auth_required": cfg.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    principal = principals.get(provided_key)
    if principal is None:
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": _hash_key(provided_key),
                "auth_required": cfg.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )
    return principal


def require_group(principal: Principal, group: str) -> None:
    """Ensure ``principal`` belongs to ``group``.

    Raises:
        PermissionDeniedAppError: If the principal is not a member.
    """
    if principal.is_member(group):
        return
    logger.warning(
        "auth.permission_denied",
        extra={"uid": principal.uid, "required_group": group},
    )
    raise PermissionDeniedAppError(
        code="permission_denied",
        message="Only administrators can perform this operation. This incident has been logged.",
        details={"hint": f"Requires membership in '{group}'"},
    )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
    cfg: Annotated[Settings | None, Depends(get_app_settings)] = None,
) -> Principal:
    """FastAPI dependency for API key authentication.

    Validates the X-API-Key header against configured API keys.
    Can be disabled by setting APP_API_KEY_REQUIRED=false in configuration.

    Args:
        x_api_key: API key from X-API-Key header (injected by FastAPI).
        cfg: Settings of the running app (injected by FastAPI).

    Returns:
        Principal: The authenticated caller.

    Raises:
        HTTPException: 401 Unauthorized if authentication fails.
    """
    cfg = cfg or settings
    if not cfg.app.api_key_required:
        logger.debug(
            "auth.skipped",
            extra={"reason": "auth_required_false"},
        )
        return ANONYMOUS

    if not x_api_key:
        logger.warning(
            "auth.missing_key",
            extra={
                "auth_required": True,
                "api_key_present": False,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        principal = validate_api_key(x_api_key, cfg)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
        ) from exc

    logger.info(
        "auth.success",
        extra={
            "uid": principal.uid,
            "api_key_hash": _hash_key(x_api_key),
        },
    )
    return principal
