"""Factory pattern for creating document store instances."""

from ratekeeper.adapters.store.base import AbstractDocumentStore
from ratekeeper.adapters.store.in_memory import InMemoryDocumentStore
from ratekeeper.core.config import StoreSettings, settings
from ratekeeper.core.errors import ValidationAppError


def create_document_store(store_settings: StoreSettings | None = None) -> AbstractDocumentStore:
    """Factory function to instantiate the configured document store.

    Called once by the application factory; the resulting handle is injected
    into every service that needs it.

    Args:
        store_settings: Optional store settings; defaults to global settings.

    Returns:
        AbstractDocumentStore: Configured store instance.

    Raises:
        ValidationAppError: If the provider is unknown.
    """
    cfg = store_settings or settings.store
    provider = cfg.provider.lower()

    if provider == "memory":
        return InMemoryDocumentStore(
            latency_seconds=cfg.latency_ms / 1000,
            max_batch_size=cfg.max_batch_size,
            max_attempts=cfg.transaction_max_attempts,
            backoff_base_ms=cfg.transaction_backoff_base_ms,
            backoff_max_ms=cfg.transaction_backoff_max_ms,
        )

    raise ValidationAppError(
        code="store_unknown_provider",
        message=f"Unknown document store provider: '{provider}'. Supported providers: memory",
        details={"provider": provider},
    )
