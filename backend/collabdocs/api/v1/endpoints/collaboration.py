"""
Collaboration Endpoints
=======================

Hooks used by the realtime collaboration server:
- bootstrap: which snapshot a joining client loads
- snapshot webhook: the exporter reports a freshly written snapshot
- snapshot save: an editor asks for the live state to be kept

Both snapshot paths go through the ingestion pipeline, which makes
repeated deliveries of the same snapshot idempotent.
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from collabdocs.api.deps import get_version_service
from collabdocs.core.access import PermissionTier, require_tier
from collabdocs.core.config import settings
from collabdocs.schemas.version import BootstrapResponse, SnapshotIngestResponse, SnapshotPayload
from collabdocs.services.sanitization import VersionSource
from collabdocs.services.version_service import IngestResult, VersionIngest, VersionService

router = APIRouter()


def verify_webhook_token(
    x_webhook_token: Optional[str] = Header(default=None, alias="X-Webhook-Token"),
) -> None:
    """Constant-time check of the exporter's shared secret."""
    expected = settings.SNAPSHOT_WEBHOOK_TOKEN
    if not expected or not x_webhook_token or not hmac.compare_digest(
        x_webhook_token.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook token",
        )


def _ingest_response(result: IngestResult) -> SnapshotIngestResponse:
    return SnapshotIngestResponse(
        version_id=result.version_id,
        version_number=result.version_number,
        created=result.created,
        message="Snapshot stored" if result.created else "Snapshot already stored",
    )


@router.get("/bootstrap/{doc_id}", response_model=BootstrapResponse)
async def get_bootstrap(
    doc_id: int,
    _: int = Depends(require_tier(PermissionTier.VIEWER)),
    service: VersionService = Depends(get_version_service),
):
    """Current snapshot of the document; all fields null if never published."""
    bootstrap = await service.get_bootstrap(doc_id)
    return BootstrapResponse(
        snapshot_url=bootstrap.snapshot_url,
        sha256=bootstrap.sha256,
        version_id=bootstrap.version_id,
    )


@router.post(
    "/snapshot/{doc_id}",
    response_model=SnapshotIngestResponse,
    dependencies=[Depends(verify_webhook_token)],
)
async def snapshot_webhook(
    doc_id: int,
    body: SnapshotPayload,
    service: VersionService = Depends(get_version_service),
):
    """
    Record a snapshot written by the exporter.

    The version is attributed to the document owner.
    """
    result = await service.ingest_version(
        VersionIngest(
            doc_id=doc_id,
            snapshot_url=body.snapshot_url,
            content_hash=body.sha256,
            size_bytes=body.size_bytes,
            source=VersionSource.AUTO.value,
        )
    )
    return _ingest_response(result)


@router.post("/snapshot/{doc_id}/save", response_model=SnapshotIngestResponse)
async def save_snapshot(
    doc_id: int,
    body: SnapshotPayload,
    user_id: int = Depends(require_tier(PermissionTier.EDITOR)),
    service: VersionService = Depends(get_version_service),
):
    """Record a snapshot on an editor's behalf."""
    result = await service.ingest_version(
        VersionIngest(
            doc_id=doc_id,
            snapshot_url=body.snapshot_url,
            content_hash=body.sha256,
            size_bytes=body.size_bytes,
            creator_id=user_id,
            source=VersionSource.AUTO.value,
        )
    )
    return _ingest_response(result)
