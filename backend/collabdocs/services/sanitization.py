"""
Ingestion input normalization.

Caller-supplied metadata is coerced into the shape stored on a version row
before any storage call is made.
"""

from enum import Enum
from typing import Optional


class VersionSource(str, Enum):
    """Provenance tag of a version."""
    MANUAL = "manual"
    RESTORE = "restore"
    AUTO = "auto"


def normalize_source(value: Optional[str]) -> VersionSource:
    """
    Coerce a free-form source tag to the closed set.

    Matching ignores case and surrounding whitespace. Anything unrecognised,
    including an empty or missing value, becomes ``auto``.
    """
    if isinstance(value, VersionSource):
        return value
    cleaned = (value or "").strip().lower()
    try:
        return VersionSource(cleaned)
    except ValueError:
        return VersionSource.AUTO


def truncate_text(value: Optional[str], limit: int) -> Optional[str]:
    """Cut ``value`` to at most ``limit`` characters."""
    if value is None:
        return None
    return value[:limit]


def blank_to_none(value: Optional[str]) -> Optional[str]:
    """Empty strings are stored as NULL."""
    if value is None or value == "":
        return None
    return value


def resolve_creator(creator_id: Optional[int], owner_id: int) -> int:
    """Anonymous or non-positive creators are attributed to the document owner."""
    if creator_id is None or creator_id <= 0:
        return owner_id
    return creator_id
