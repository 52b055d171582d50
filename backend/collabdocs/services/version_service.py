"""
Version Service

Ingests document snapshots as immutable, densely numbered versions and
serves version history:
- Idempotent ingestion keyed by content hash
- Gap-free numbering under concurrent writers
- Current-version pointer maintenance
- Best-effort retention of automatically generated versions
- Line diffs between stored versions
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import AsyncContextManager, List, Optional, Protocol, Tuple

from collabdocs.core.config import Settings, settings as default_settings
from collabdocs.core.exceptions import (
    DocumentNotFound,
    IngestStage,
    RetentionCleanupFailed,
    StorageError,
    VersionNotFound,
    WriteConflict,
    storage_stage,
)
from collabdocs.middleware.prometheus import (
    record_cleanup_failure,
    record_diff,
    record_version_ingested,
    record_write_conflict,
)
from collabdocs.models.document import Document
from collabdocs.models.document_version import DocumentVersion
from collabdocs.services.document_locks import DocumentLockRegistry
from collabdocs.services.line_diff import DiffSegment, compute_line_diff, is_truncated
from collabdocs.services.retention_service import RetentionService
from collabdocs.services.sanitization import (
    VersionSource,
    blank_to_none,
    normalize_source,
    resolve_creator,
    truncate_text,
)
from collabdocs.services.version_repository import VersionRepository

logger = logging.getLogger(__name__)


class VersionStore(Protocol):
    def transaction(self) -> AsyncContextManager[VersionRepository]: ...


@dataclass
class VersionIngest:
    """Snapshot metadata handed to the ingestion pipeline."""
    doc_id: int
    snapshot_url: str
    content_hash: str
    size_bytes: int = 0
    creator_id: Optional[int] = None
    change_summary: Optional[str] = None
    source: Optional[str] = None
    content_text: Optional[str] = None
    content_html: Optional[str] = None


@dataclass
class IngestResult:
    version_id: int
    version_number: int
    created: bool
    pruned_count: int = 0


@dataclass
class Bootstrap:
    """What a joining collaborator loads first. All None until something is published."""
    snapshot_url: Optional[str] = None
    sha256: Optional[str] = None
    version_id: Optional[int] = None


@dataclass
class VersionDiff:
    base_version_id: int
    target_version_id: int
    segments: List[DiffSegment] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return is_truncated(self.segments)


class VersionService:
    """Version control operations for collaborative documents."""

    def __init__(
        self,
        store: VersionStore,
        locks: DocumentLockRegistry,
        *,
        retention: Optional[RetentionService] = None,
        config: Optional[Settings] = None,
    ):
        self.store = store
        self.locks = locks
        self.retention = retention or RetentionService(store)
        self.config = config or default_settings

    # =========================================================================
    # Ingestion
    # =========================================================================

    async def ingest_version(
        self,
        request: VersionIngest,
        *,
        republish_existing: bool = False,
    ) -> IngestResult:
        """
        Ingest a snapshot as a new version of its document.

        An identical content hash already stored for the document returns
        that version unchanged: no new row, no pointer update, no cleanup.
        ``republish_existing`` makes such a hit move the current-version
        pointer instead (used by restore).

        Raises:
            DocumentNotFound: Unknown document
            WriteConflict: Still conflicting after the configured attempts
            StorageUnavailable: Storage unreachable or a call timed out
            StorageError: Any other storage failure, typed with its stage
        """
        source = normalize_source(request.source)
        summary = blank_to_none(
            truncate_text(request.change_summary, self.config.VERSION_CHANGE_SUMMARY_MAX_LENGTH)
        )

        async with self.locks.hold(request.doc_id):
            result, retention_limit = await self._ingest_with_retries(
                request, source, summary, republish_existing
            )
            record_version_ingested(source.value, result.created)

            if not result.created:
                logger.info(
                    "Snapshot %s already stored for document %s as version %s",
                    request.content_hash, request.doc_id, result.version_number,
                )
                return result

            logger.info(
                "Created version %s (id=%s, source=%s) for document %s",
                result.version_number, result.version_id, source.value, request.doc_id,
            )

            if source is VersionSource.AUTO and retention_limit > 0:
                result.pruned_count = await self._prune_best_effort(request.doc_id, retention_limit)

        return result

    async def _ingest_with_retries(
        self,
        request: VersionIngest,
        source: VersionSource,
        summary: Optional[str],
        republish_existing: bool,
    ) -> Tuple[IngestResult, int]:
        attempts = self.config.VERSION_INGEST_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            try:
                return await self._ingest_once(request, source, summary, republish_existing)
            except WriteConflict as exc:
                record_write_conflict()
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Write conflict ingesting into document %s (attempt %s/%s): %s",
                    request.doc_id, attempt, attempts, exc,
                )
                await asyncio.sleep(self.config.VERSION_RETRY_BACKOFF_SECONDS * attempt)
        raise AssertionError("unreachable")

    async def _ingest_once(
        self,
        request: VersionIngest,
        source: VersionSource,
        summary: Optional[str],
        republish_existing: bool,
    ) -> Tuple[IngestResult, int]:
        doc_id = request.doc_id
        # Failures while committing surface as insert failures.
        async with storage_stage(IngestStage.INSERT):
            async with self.store.transaction() as repo:
                async with storage_stage(IngestStage.LOOKUP):
                    document = await repo.get_document(doc_id, for_update=True)
                if document is None:
                    raise DocumentNotFound(doc_id, IngestStage.LOOKUP)

                async with storage_stage(IngestStage.DEDUP):
                    existing = await repo.find_by_content_hash(doc_id, request.content_hash)
                if existing is not None:
                    if republish_existing and document.last_published_version_id != existing.id:
                        await self._set_pointer(repo, doc_id, existing.id)
                    return IngestResult(existing.id, existing.version_number, created=False), 0

                async with storage_stage(IngestStage.ALLOCATE):
                    next_number = await repo.max_version_number(doc_id) + 1

                async with storage_stage(IngestStage.INSERT):
                    version = await repo.insert_version(
                        doc_id=doc_id,
                        version_number=next_number,
                        snapshot_url=request.snapshot_url,
                        snapshot_sha256=request.content_hash,
                        size_bytes=request.size_bytes,
                        created_by=resolve_creator(request.creator_id, document.owner_id),
                        change_summary=summary,
                        source=source.value,
                        content_text=blank_to_none(request.content_text),
                        content_html=blank_to_none(request.content_html),
                    )

                await self._set_pointer(repo, doc_id, version.id)
                result = IngestResult(version.id, version.version_number, created=True)
                return result, document.version_retention_limit

    async def _set_pointer(self, repo: VersionRepository, doc_id: int, version_id: int) -> None:
        """
        Move the current-version pointer, retrying a failed update.

        The version row stays in the enclosing transaction between attempts;
        if every attempt fails the whole transaction rolls back, so a version
        is never visible without its pointer.
        """
        attempts = self.config.VERSION_POINTER_UPDATE_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            try:
                async with storage_stage(IngestStage.POINTER_UPDATE):
                    updated = await repo.set_current_version(doc_id, version_id)
            except StorageError as exc:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Pointer update for document %s -> version %s failed (attempt %s/%s): %s",
                    doc_id, version_id, attempt, attempts, exc,
                )
                await asyncio.sleep(self.config.VERSION_RETRY_BACKOFF_SECONDS * attempt)
                continue
            if not updated:
                raise DocumentNotFound(doc_id, IngestStage.POINTER_UPDATE)
            return

    async def _prune_best_effort(self, doc_id: int, retention_limit: int) -> int:
        try:
            return await self.retention.prune_auto_versions(doc_id, retention_limit)
        except RetentionCleanupFailed:
            # The ingestion is already committed.
            record_cleanup_failure()
            logger.exception(
                "Retention cleanup failed for document %s (retention_limit=%s)",
                doc_id, retention_limit,
            )
            return 0

    # =========================================================================
    # Publishing
    # =========================================================================

    async def create_manual_version(
        self,
        doc_id: int,
        *,
        user_id: int,
        snapshot_url: str,
        content_hash: str,
        size_bytes: int = 0,
        change_summary: Optional[str] = None,
        content_text: Optional[str] = None,
        content_html: Optional[str] = None,
    ) -> IngestResult:
        """Explicit publish by an editor."""
        return await self.ingest_version(
            VersionIngest(
                doc_id=doc_id,
                snapshot_url=snapshot_url,
                content_hash=content_hash,
                size_bytes=size_bytes,
                creator_id=user_id,
                change_summary=change_summary,
                source=VersionSource.MANUAL.value,
                content_text=content_text,
                content_html=content_html,
            )
        )

    async def restore_version(self, doc_id: int, version_id: int, *, user_id: int) -> IngestResult:
        """
        Make a historical version current again.

        The stored snapshot is ingested with source ``restore``. Since its
        hash is normally already stored for the document, the usual outcome
        is that the existing version becomes current without a new row.
        """
        old = await self.get_version(doc_id, version_id)
        return await self.ingest_version(
            VersionIngest(
                doc_id=doc_id,
                snapshot_url=old.snapshot_url,
                content_hash=old.snapshot_sha256,
                size_bytes=old.size_bytes,
                creator_id=user_id,
                change_summary=f"Restored from version {version_id}",
                source=VersionSource.RESTORE.value,
                content_text=old.content_text,
                content_html=old.content_html,
            ),
            republish_existing=True,
        )

    async def publish_existing_version(self, doc_id: int, version_id: int) -> DocumentVersion:
        """Point the document at an already stored version."""
        async with self.locks.hold(doc_id):
            async with storage_stage(IngestStage.POINTER_UPDATE):
                async with self.store.transaction() as repo:
                    async with storage_stage(IngestStage.LOOKUP):
                        document = await repo.get_document(doc_id, for_update=True)
                        if document is None:
                            raise DocumentNotFound(doc_id)
                        version = await repo.get_version(doc_id, version_id)
                        if version is None:
                            raise VersionNotFound(doc_id, version_id)
                    await self._set_pointer(repo, doc_id, version.id)
        return version

    # =========================================================================
    # Reads
    # =========================================================================

    @staticmethod
    async def _require_document(repo: VersionRepository, doc_id: int) -> Document:
        document = await repo.get_document(doc_id)
        if document is None:
            raise DocumentNotFound(doc_id)
        return document

    async def list_versions(
        self,
        doc_id: int,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        created_by: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[DocumentVersion]:
        """Versions of a document, newest first."""
        async with storage_stage(IngestStage.READ):
            async with self.store.transaction() as repo:
                await self._require_document(repo, doc_id)
                return await repo.list_versions(
                    doc_id,
                    start_date=start_date,
                    end_date=end_date,
                    created_by=created_by,
                    limit=limit,
                )

    async def get_version(self, doc_id: int, version_id: int) -> DocumentVersion:
        async with storage_stage(IngestStage.READ):
            async with self.store.transaction() as repo:
                await self._require_document(repo, doc_id)
                version = await repo.get_version(doc_id, version_id)
        if version is None:
            raise VersionNotFound(doc_id, version_id, IngestStage.READ)
        return version

    async def diff_versions(
        self,
        doc_id: int,
        version_id: int,
        base_version_id: Optional[int] = None,
    ) -> VersionDiff:
        """
        Line diff from a base version to ``version_id``.

        Without an explicit base the document's latest version is used.
        Versions without extracted text diff as empty text.
        """
        async with storage_stage(IngestStage.READ):
            async with self.store.transaction() as repo:
                await self._require_document(repo, doc_id)
                target = await repo.get_version(doc_id, version_id)
                if target is None:
                    raise VersionNotFound(doc_id, version_id)
                if base_version_id is None:
                    base = await repo.get_latest_version(doc_id)
                else:
                    base = await repo.get_version(doc_id, base_version_id)
                    if base is None:
                        raise VersionNotFound(doc_id, base_version_id)

        loop = asyncio.get_running_loop()
        segments = await loop.run_in_executor(
            None,
            partial(
                compute_line_diff,
                base.content_text or "",
                target.content_text or "",
                max_lines=self.config.VERSION_DIFF_MAX_LINES,
            ),
        )
        diff = VersionDiff(base_version_id=base.id, target_version_id=target.id, segments=segments)
        record_diff(diff.truncated)
        return diff

    async def get_bootstrap(self, doc_id: int) -> Bootstrap:
        """Current snapshot reference for a document, or all None if unpublished."""
        async with storage_stage(IngestStage.READ):
            async with self.store.transaction() as repo:
                await self._require_document(repo, doc_id)
                current = await repo.get_current_snapshot(doc_id)
        if current is None:
            return Bootstrap()
        return Bootstrap(
            snapshot_url=current.snapshot_url,
            sha256=current.snapshot_sha256,
            version_id=current.id,
        )
