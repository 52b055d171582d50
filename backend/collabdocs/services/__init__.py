"""
Services module initialization.
"""

from collabdocs.services.document_locks import DocumentLockRegistry
from collabdocs.services.retention_service import RetentionService
from collabdocs.services.version_repository import SqlAlchemyVersionStore, VersionRepository
from collabdocs.services.version_service import (
    Bootstrap,
    IngestResult,
    VersionDiff,
    VersionIngest,
    VersionService,
)

__all__ = [
    "DocumentLockRegistry",
    "RetentionService",
    "SqlAlchemyVersionStore",
    "VersionRepository",
    "Bootstrap",
    "IngestResult",
    "VersionDiff",
    "VersionIngest",
    "VersionService",
]
