"""
Version Schemas
===============

Request/response models for document versions, diffs and the
collaboration snapshot hooks.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from collabdocs.schemas.base import BaseSchema, VerbatimSchema


# =============================================================================
# Versions
# =============================================================================

class VersionResponse(VerbatimSchema):
    """A stored version."""

    id: int
    doc_id: int
    version_number: int
    snapshot_url: str
    snapshot_sha256: str
    size_bytes: int
    created_by: int
    change_summary: Optional[str] = None
    source: str
    content_text: Optional[str] = None
    content_html: Optional[str] = None
    created_at: datetime


class VersionListResponse(BaseSchema):
    versions: List[VersionResponse]


class VersionCreate(VerbatimSchema):
    """Explicit publish of the editor's current snapshot."""

    snapshot_url: str = Field(..., min_length=1)
    sha256: str = Field(..., min_length=1, max_length=128)
    size_bytes: int = Field(default=0, ge=0)
    change_summary: Optional[str] = None
    content_text: Optional[str] = None
    content_html: Optional[str] = None


class VersionCreatedResponse(BaseSchema):
    version_id: int
    version_number: int
    doc_id: int
    created: bool
    message: str


class VersionRestoredResponse(VersionCreatedResponse):
    restored_from_version_id: int


# =============================================================================
# Diffs
# =============================================================================

class DiffSegmentResponse(VerbatimSchema):
    op: str
    text: str


class VersionDiffResponse(VerbatimSchema):
    base_version_id: int
    target_version_id: int
    truncated: bool = False
    diff: List[DiffSegmentResponse]


# =============================================================================
# Collaboration
# =============================================================================

class SnapshotPayload(BaseSchema):
    """Snapshot reference posted by the exporter or an editor's save."""

    snapshot_url: str = Field(..., min_length=1)
    sha256: str = Field(..., min_length=1, max_length=128)
    size_bytes: int = Field(..., ge=0)


class SnapshotIngestResponse(BaseSchema):
    version_id: int
    version_number: int
    created: bool
    message: str


class BootstrapResponse(BaseSchema):
    snapshot_url: Optional[str] = None
    sha256: Optional[str] = None
    version_id: Optional[int] = None
