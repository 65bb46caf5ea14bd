"""Identifier generation for stored documents."""

from ulid import ULID


def generate_document_id(prefix: str = "doc") -> str:
    """Generate a sortable, unique document ID using ULID."""
    return f"{prefix}_{ULID()}"
