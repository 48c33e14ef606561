"""Document store adapter layer - abstracts over storage backends."""

from ratekeeper.adapters.store.base import AbstractDocumentStore, VersionedDocument
from ratekeeper.adapters.store.factory import create_document_store
from ratekeeper.adapters.store.in_memory import InMemoryDocumentStore

__all__ = [
    "AbstractDocumentStore",
    "InMemoryDocumentStore",
    "VersionedDocument",
    "create_document_store",
]
