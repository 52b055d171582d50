"""Document versions.

Each version is an immutable snapshot reference. Rows are appended by the
ingestion pipeline and removed only by retention cleanup (``auto`` rows).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from collabdocs.models.base import Base, CreatedAtMixin


class DocumentVersion(Base, CreatedAtMixin):
    __tablename__ = "document_versions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    doc_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        doc="Owning document",
    )

    version_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Dense, monotonic version number per document starting at 1",
    )

    snapshot_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Reference to the externally stored snapshot bytes",
    )

    snapshot_sha256: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        doc="Hex content digest used for idempotent dedup",
    )

    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    created_by: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        doc="Creator; the document owner when the producer is anonymous",
    )

    change_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="auto",
        server_default="auto",
        doc="manual | restore | auto",
    )

    content_text: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Extracted plain text, used for diffs and search",
    )

    content_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ux_document_versions_doc_vn", "doc_id", "version_number", unique=True),
        # Not unique on purpose: dedup by hash is enforced by the ingestion pipeline.
        Index("ix_document_versions_doc_sha256", "doc_id", "snapshot_sha256"),
        Index("ix_document_versions_doc_source_vn", "doc_id", "source", "version_number"),
    )

    def __repr__(self) -> str:
        return (
            f"DocumentVersion(id={self.id}, doc_id={self.doc_id}, "
            f"version_number={self.version_number}, source={self.source})"
        )
