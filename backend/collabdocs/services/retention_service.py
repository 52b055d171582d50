"""
Retention cleanup for automatically generated versions.

Only ``auto`` versions count against a document's retention limit and only
they are ever deleted. ``manual`` and ``restore`` versions are kept forever.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from collabdocs.core.exceptions import (
    IngestStage,
    RetentionCleanupFailed,
    StorageError,
    storage_stage,
)
from collabdocs.middleware.prometheus import record_versions_pruned

if TYPE_CHECKING:
    from collabdocs.services.version_service import VersionStore

logger = logging.getLogger(__name__)


class RetentionService:
    def __init__(self, store: "VersionStore"):
        self.store = store

    async def prune_auto_versions(self, doc_id: int, retention_limit: int) -> int:
        """
        Delete the ``auto`` versions of ``doc_id`` beyond the newest ``retention_limit``.

        Candidates are filtered to ``auto`` first and then ranked by
        version_number, so interleaved manual/restore versions never shift
        the window.

        Returns:
            Number of versions deleted (0 when the limit is not positive)

        Raises:
            RetentionCleanupFailed: If any storage call fails
        """
        if retention_limit <= 0:
            return 0

        try:
            async with storage_stage(IngestStage.CLEANUP):
                async with self.store.transaction() as repo:
                    stale_ids = await repo.auto_version_ids_beyond(doc_id, retention_limit)
                    deleted = await repo.delete_versions(stale_ids)
        except StorageError as exc:
            raise RetentionCleanupFailed(
                f"Retention cleanup failed for document {doc_id}: {exc}",
                IngestStage.CLEANUP,
            ) from exc

        if deleted:
            logger.info(
                "Pruned %s auto versions of document %s (retention_limit=%s)",
                deleted, doc_id, retention_limit,
            )
        record_versions_pruned(deleted)
        return deleted
