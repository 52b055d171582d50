"""Collaborative document row.

Only the columns the version engine reads or writes are modelled here; the
rest of the document lifecycle belongs to other services.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from collabdocs.models.base import Base, TimestampMixin


class Document(Base, TimestampMixin):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    owner_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        doc="User who owns the document",
    )

    title: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )

    version_retention_limit: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        doc="Max auto versions kept; 0 keeps everything",
    )

    # Mutated only by the version engine.
    last_published_version_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        ForeignKey(
            "document_versions.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_documents_last_published_version",
        ),
        nullable=True,
        doc="Current/published version",
    )

    def __repr__(self) -> str:
        return f"Document(id={self.id}, owner_id={self.owner_id}, current={self.last_published_version_id})"
