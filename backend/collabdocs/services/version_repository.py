"""DB persistence for document versions.

Separates SQLAlchemy persistence from the ingestion pipeline so the
pipeline can be unit tested against an in-memory store without a live
database.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from collabdocs.models.document import Document
from collabdocs.models.document_version import DocumentVersion


class VersionRepository:
    """Document and version store operations bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_document(self, doc_id: int, *, for_update: bool = False) -> Document | None:
        stmt = select(Document).where(Document.id == doc_id)
        if for_update:
            # Serializes writers of the same document across processes.
            stmt = stmt.with_for_update()
        res = await self.session.execute(stmt)
        return res.scalars().first()

    async def set_current_version(self, doc_id: int, version_id: int) -> bool:
        """
        Point the document at ``version_id``.

        Runs in a SAVEPOINT so a failed attempt can be retried without
        discarding the version row inserted earlier in the transaction.
        """
        async with self.session.begin_nested():
            res = await self.session.execute(
                update(Document)
                .where(Document.id == doc_id)
                .values(last_published_version_id=version_id, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
        return res.rowcount > 0

    # ------------------------------------------------------------------
    # Versions: write path
    # ------------------------------------------------------------------

    async def max_version_number(self, doc_id: int) -> int:
        res = await self.session.execute(
            select(func.coalesce(func.max(DocumentVersion.version_number), 0)).where(
                DocumentVersion.doc_id == doc_id
            )
        )
        return int(res.scalar_one())

    async def find_by_content_hash(self, doc_id: int, content_hash: str) -> DocumentVersion | None:
        res = await self.session.execute(
            select(DocumentVersion)
            .where(
                DocumentVersion.doc_id == doc_id,
                DocumentVersion.snapshot_sha256 == content_hash,
            )
            .order_by(DocumentVersion.version_number.asc())
            .limit(1)
        )
        return res.scalars().first()

    async def insert_version(
        self,
        *,
        doc_id: int,
        version_number: int,
        snapshot_url: str,
        snapshot_sha256: str,
        size_bytes: int,
        created_by: int,
        change_summary: Optional[str],
        source: str,
        content_text: Optional[str],
        content_html: Optional[str],
    ) -> DocumentVersion:
        row = DocumentVersion(
            doc_id=doc_id,
            version_number=version_number,
            snapshot_url=snapshot_url,
            snapshot_sha256=snapshot_sha256,
            size_bytes=size_bytes,
            created_by=created_by,
            change_summary=change_summary,
            source=source,
            content_text=content_text,
            content_html=content_html,
        )
        self.session.add(row)
        # Flush so the unique (doc_id, version_number) index is checked here.
        await self.session.flush()
        return row

    async def auto_version_ids_beyond(self, doc_id: int, keep: int) -> list[int]:
        """Ids of ``auto`` versions older than the newest ``keep`` of them."""
        res = await self.session.execute(
            select(DocumentVersion.id)
            .where(
                DocumentVersion.doc_id == doc_id,
                DocumentVersion.source == "auto",
            )
            .order_by(DocumentVersion.version_number.desc())
            .offset(keep)
        )
        return list(res.scalars().all())

    async def delete_versions(self, version_ids: Sequence[int]) -> int:
        if not version_ids:
            return 0
        res = await self.session.execute(
            delete(DocumentVersion).where(DocumentVersion.id.in_(list(version_ids)))
        )
        return res.rowcount or 0

    # ------------------------------------------------------------------
    # Versions: read path
    # ------------------------------------------------------------------

    async def get_version(self, doc_id: int, version_id: int) -> DocumentVersion | None:
        res = await self.session.execute(
            select(DocumentVersion).where(
                DocumentVersion.id == version_id,
                DocumentVersion.doc_id == doc_id,
            )
        )
        return res.scalars().first()

    async def get_latest_version(self, doc_id: int) -> DocumentVersion | None:
        res = await self.session.execute(
            select(DocumentVersion)
            .where(DocumentVersion.doc_id == doc_id)
            .order_by(DocumentVersion.version_number.desc())
            .limit(1)
        )
        return res.scalars().first()

    async def list_versions(
        self,
        doc_id: int,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        created_by: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[DocumentVersion]:
        stmt = select(DocumentVersion).where(DocumentVersion.doc_id == doc_id)
        if start_date is not None:
            stmt = stmt.where(DocumentVersion.created_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(DocumentVersion.created_at <= end_date)
        if created_by is not None:
            stmt = stmt.where(DocumentVersion.created_by == created_by)
        stmt = stmt.order_by(DocumentVersion.version_number.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def get_current_snapshot(self, doc_id: int) -> DocumentVersion | None:
        res = await self.session.execute(
            select(DocumentVersion)
            .join(Document, Document.last_published_version_id == DocumentVersion.id)
            .where(Document.id == doc_id)
        )
        return res.scalars().first()


class SqlAlchemyVersionStore:
    """Hands out repositories bound to a fresh session and transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[VersionRepository]:
        """Commit when the block exits cleanly, roll back when it raises."""
        async with self._session_factory() as session:
            async with session.begin():
                yield VersionRepository(session)
