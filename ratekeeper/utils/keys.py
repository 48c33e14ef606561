"""Helpers for building and splitting `/`-separated document paths.

Keys follow the document-store convention of alternating collection and
document segments, e.g. ``spaces/{tenant}/dedup/{id}``. Segments are
validated so that an identifier can never alias a different path.
"""

from __future__ import annotations


def validate_segment(segment: str, *, name: str = "segment") -> str:
    """Ensure a single path segment is non-empty and slash-free.

    Args:
        segment: Identifier used as part of a key.
        name: Field name used in the error message.

    Returns:
        The unchanged segment.

    Raises:
        ValueError: If the segment is empty or contains a slash.
    """
    if not segment:
        raise ValueError(f"{name} must be a non-empty string")
    if "/" in segment:
        raise ValueError(f"{name} must not contain '/'")
    return segment


def document_path(*segments: str) -> str:
    """Join validated segments into a document or collection path."""
    return "/".join(validate_segment(s) for s in segments)


def parent_collection(key: str) -> str:
    """Return the collection path containing ``key``."""
    collection, _, _ = key.rpartition("/")
    return collection


def document_id(key: str) -> str:
    """Return the last segment (document id) of ``key``."""
    return key.rpartition("/")[2]
