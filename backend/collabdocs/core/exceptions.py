"""
Versioning Errors
=================

Typed failures raised by the version control engine, the translation of
storage-layer exceptions into them, and the HTTP mapping used by the API.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)


class IngestStage(str, Enum):
    """Step of a versioning operation that touched storage."""

    LOOKUP = "lookup"
    DEDUP = "dedup"
    ALLOCATE = "allocate"
    INSERT = "insert"
    POINTER_UPDATE = "pointer_update"
    CLEANUP = "cleanup"
    READ = "read"


class VersioningError(Exception):
    """Base class for all engine failures."""

    code = "VERSIONING_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, stage: Optional[IngestStage] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage is None:
            return self.message
        return f"{self.message} (stage={self.stage.value})"


class DocumentNotFound(VersioningError):
    code = "DOCUMENT_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, doc_id: int, stage: Optional[IngestStage] = None):
        super().__init__(f"Document {doc_id} not found", stage)
        self.doc_id = doc_id


class VersionNotFound(VersioningError):
    code = "VERSION_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, doc_id: int, version_id: int, stage: Optional[IngestStage] = None):
        super().__init__(f"Version {version_id} not found for document {doc_id}", stage)
        self.doc_id = doc_id
        self.version_id = version_id


class StorageError(VersioningError):
    """Unexpected storage failure; carries the underlying message."""

    code = "STORAGE_ERROR"


class StorageUnavailable(StorageError):
    """Storage could not be reached or a call timed out. Not retried here."""

    code = "STORAGE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class WriteConflict(StorageError):
    """Concurrent write collided with this one. Safe to retry the allocation."""

    code = "WRITE_CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class RetentionCleanupFailed(StorageError):
    """Best-effort pruning failed. Logged by the caller, never surfaced."""

    code = "RETENTION_CLEANUP_FAILED"


_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


def translate_storage_error(exc: BaseException, stage: IngestStage) -> VersioningError:
    """Map a storage-layer exception onto the engine taxonomy."""
    if isinstance(exc, VersioningError):
        if exc.stage is None:
            exc.stage = stage
        return exc
    if isinstance(exc, IntegrityError):
        return WriteConflict(f"Write conflict: {exc.orig or exc}", stage)
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return StorageUnavailable(f"Storage unavailable: {exc.orig or exc}", stage)
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return StorageUnavailable(f"Storage unavailable: {exc.orig or exc}", stage)
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return StorageUnavailable(f"Storage call timed out or disconnected: {exc!r}", stage)
    if isinstance(exc, SQLAlchemyError):
        return StorageError(f"Database error: {exc}", stage)
    raise TypeError(f"Not a storage error: {exc!r}")


@asynccontextmanager
async def storage_stage(stage: IngestStage) -> AsyncIterator[None]:
    """Run a block of storage calls, re-raising failures typed with ``stage``."""
    try:
        yield
    except (
        VersioningError,
        SQLAlchemyError,
        TimeoutError,
        asyncio.TimeoutError,
        ConnectionError,
    ) as exc:
        translated = translate_storage_error(exc, stage)
        if translated is exc:
            raise
        raise translated from exc


def register_exception_handlers(app: FastAPI) -> None:
    """Map engine errors to JSON responses."""

    @app.exception_handler(VersioningError)
    async def versioning_error_handler(request: Request, exc: VersioningError):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.message,
                "code": exc.code,
                "stage": exc.stage.value if exc.stage else None,
            },
        )
