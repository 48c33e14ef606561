"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


class RateLimitPolicy(BaseModel):
    """Static limit for one action type.

    Attributes:
        window_ms: Sliding window length in milliseconds.
        max_requests: Requests allowed per actor within the window. Zero
            rejects every request.
        max_requests_per_resource: Aggregate requests allowed per resource
            within the window. When unset the limiter derives it from
            ``max_requests`` and the configured resource multiplier.
    """

    window_ms: int = Field(..., ge=1)
    max_requests: int = Field(..., ge=0)
    max_requests_per_resource: int | None = Field(None, ge=0)

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _default_policies() -> dict[str, RateLimitPolicy]:
    return {
        "analytics": RateLimitPolicy(
            window_ms=MINUTE_MS, max_requests=100, max_requests_per_resource=500
        ),
        "chatCleanup": RateLimitPolicy(window_ms=HOUR_MS, max_requests=5),
        "sessionCreate": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=10),
        "default": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=60),
    }


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Run FastAPI in debug mode (unhandled errors return tracebacks)",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description=(
            "Comma-separated API key entries in the form key:uid[:group+group]. "
            "A bare key authenticates as a principal named after its hash."
        ),
    )
    admin_group: str = Field(
        "maintenanceAdmin",
        description="Group a principal must belong to for maintenance operations",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Document store backend and transaction retry configuration."""

    provider: str = Field(
        "memory",
        description="Document store backend (supported: memory)",
    )
    max_batch_size: int = Field(
        500,
        description="Maximum number of deletes committed in one atomic batch",
        ge=1,
    )
    latency_ms: float = Field(
        0.0,
        description="Simulated round-trip latency for the in-memory backend",
        ge=0,
    )
    transaction_max_attempts: int = Field(
        5,
        description="Attempts before a conflicting transaction is abandoned",
        ge=1,
    )
    transaction_backoff_base_ms: int = Field(
        20,
        description="Base delay for exponential backoff between transaction attempts",
        ge=0,
    )
    transaction_backoff_max_ms: int = Field(
        1000,
        description="Upper bound for a single backoff delay",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Sliding-window rate limiter configuration."""

    enabled: bool = Field(
        True,
        description="Enable rate limit enforcement on the HTTP surface",
    )
    policies: dict[str, RateLimitPolicy] = Field(
        default_factory=_default_policies,
        description="Policy table keyed by action type (JSON); must contain 'default'",
    )
    resource_multiplier: int = Field(
        10,
        description=(
            "Per-resource limit = max_requests * resource_multiplier when a "
            "policy has no explicit max_requests_per_resource"
        ),
        ge=1,
    )
    counters_collection: str = Field(
        "rateLimits",
        description="Collection holding counter records",
    )
    include_headers: bool = Field(
        True,
        description="Include Retry-After header when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @field_validator("policies")
    @classmethod
    def _require_default_policy(
        cls, value: dict[str, RateLimitPolicy]
    ) -> dict[str, RateLimitPolicy]:
        if "default" not in value:
            raise ValueError("policies must define a 'default' entry")
        return value


class DedupSettings(BaseSettings):
    """Bucket-based duplicate suppression configuration."""

    bucket_ms: int = Field(
        5 * MINUTE_MS,
        description="Width of a dedup bucket in milliseconds",
        ge=1,
    )
    event_types: str = Field(
        "react_space_enter,react_space_exit",
        description="Comma-separated event types subject to deduplication",
    )
    subcollection: str = Field(
        "dedup",
        description="Per-tenant subcollection holding dedup records",
    )

    model_config = SettingsConfigDict(
        env_prefix="DEDUP_",
        case_sensitive=False,
    )


class RetentionSettings(BaseSettings):
    """Retention sweeper configuration."""

    counter_max_age_ms: int = Field(
        HOUR_MS,
        description="Counter records whose windowStart is older than this are purged",
        ge=1,
    )
    message_max_age_ms: int = Field(
        24 * HOUR_MS,
        description="Per-tenant messages older than this are purged",
        ge=1,
    )
    tenants_collection: str = Field(
        "spaces",
        description="Top-level collection listing tenants",
    )
    messages_subcollection: str = Field(
        "chatMessages",
        description="Per-tenant subcollection of aged message records",
    )
    messages_age_field: str = Field(
        "timestamp",
        description="Millisecond timestamp field used to age messages",
    )
    schedule_enabled: bool = Field(
        False,
        description="Run the purges periodically inside the API process",
    )
    schedule_interval_seconds: int = Field(
        24 * 60 * 60,
        description="Interval between scheduled purges",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RETENTION_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level",
    )
    format: str = Field(
        "json",
        description="Log format: json or plain",
    )
    output: str = Field(
        "stdout",
        description="Log destination: stdout or file",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    dedup: DedupSettings = Field(default_factory=DedupSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
