"""
Version Endpoints
=================

Version history of a document: listing, detail, explicit publish,
restore and line diffs.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from collabdocs.api.deps import get_version_service
from collabdocs.core.access import PermissionTier, require_tier
from collabdocs.schemas.version import (
    DiffSegmentResponse,
    VersionCreate,
    VersionCreatedResponse,
    VersionDiffResponse,
    VersionListResponse,
    VersionResponse,
    VersionRestoredResponse,
)
from collabdocs.services.line_diff import segments_to_json
from collabdocs.services.version_service import VersionService

router = APIRouter()


@router.get("/{doc_id}/versions", response_model=VersionListResponse)
async def list_versions(
    doc_id: int,
    start_date: Optional[datetime] = Query(None, description="Only versions created at or after"),
    end_date: Optional[datetime] = Query(None, description="Only versions created at or before"),
    created_by: Optional[int] = Query(None, gt=0),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    _: int = Depends(require_tier(PermissionTier.VIEWER)),
    service: VersionService = Depends(get_version_service),
):
    """List versions of a document, newest first."""
    versions = await service.list_versions(
        doc_id,
        start_date=start_date,
        end_date=end_date,
        created_by=created_by,
        limit=limit,
    )
    return VersionListResponse(
        versions=[VersionResponse.model_validate(v) for v in versions]
    )


@router.get("/{doc_id}/versions/{version_id}", response_model=VersionResponse)
async def get_version(
    doc_id: int,
    version_id: int,
    _: int = Depends(require_tier(PermissionTier.VIEWER)),
    service: VersionService = Depends(get_version_service),
):
    version = await service.get_version(doc_id, version_id)
    return VersionResponse.model_validate(version)


@router.post(
    "/{doc_id}/versions",
    response_model=VersionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_version(
    doc_id: int,
    body: VersionCreate,
    response: Response,
    user_id: int = Depends(require_tier(PermissionTier.EDITOR)),
    service: VersionService = Depends(get_version_service),
):
    """
    Publish the current snapshot as a manual version.

    Publishing content that is already stored returns the existing
    version with 200 instead of 201.
    """
    result = await service.create_manual_version(
        doc_id,
        user_id=user_id,
        snapshot_url=body.snapshot_url,
        content_hash=body.sha256,
        size_bytes=body.size_bytes,
        change_summary=body.change_summary,
        content_text=body.content_text,
        content_html=body.content_html,
    )
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return VersionCreatedResponse(
        version_id=result.version_id,
        version_number=result.version_number,
        doc_id=doc_id,
        created=result.created,
        message="Version created successfully" if result.created else "Version already exists",
    )


@router.post(
    "/{doc_id}/versions/{version_id}/restore",
    response_model=VersionRestoredResponse,
    status_code=status.HTTP_201_CREATED,
)
async def restore_version(
    doc_id: int,
    version_id: int,
    response: Response,
    user_id: int = Depends(require_tier(PermissionTier.OWNER)),
    service: VersionService = Depends(get_version_service),
):
    """
    Make a historical version current again.

    **Required tier:** owner
    """
    result = await service.restore_version(doc_id, version_id, user_id=user_id)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return VersionRestoredResponse(
        version_id=result.version_id,
        version_number=result.version_number,
        doc_id=doc_id,
        created=result.created,
        restored_from_version_id=version_id,
        message="Version restored successfully",
    )


@router.get("/{doc_id}/versions/{version_id}/diff", response_model=VersionDiffResponse)
async def diff_version(
    doc_id: int,
    version_id: int,
    base_version_id: Optional[int] = Query(None, gt=0, description="Defaults to the latest version"),
    _: int = Depends(require_tier(PermissionTier.VIEWER)),
    service: VersionService = Depends(get_version_service),
):
    """Line diff from the base version to this version."""
    diff = await service.diff_versions(doc_id, version_id, base_version_id)
    return VersionDiffResponse(
        base_version_id=diff.base_version_id,
        target_version_id=diff.target_version_id,
        truncated=diff.truncated,
        diff=[DiffSegmentResponse(**item) for item in segments_to_json(diff.segments)],
    )
