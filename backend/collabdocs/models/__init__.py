"""
Database Models
===============

SQLAlchemy models for documents and their version history.
"""

from collabdocs.models.base import (
    Base,
    CreatedAtMixin,
    TimestampMixin,
)
from collabdocs.models.document import Document
from collabdocs.models.document_version import DocumentVersion

__all__ = [
    "Base",
    "CreatedAtMixin",
    "TimestampMixin",
    "Document",
    "DocumentVersion",
]
