"""Document access tiers for the versioning API.

The engine itself performs no authorization. Routes resolve the caller's
tier on a document through the AccessPolicy installed on the app state
before calling into it.

The default policy only knows document ownership. Deployments with shared
documents install an ACL-backed policy at startup:

    set_access_policy(app, MyAclPolicy(...))
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Optional, Protocol

from fastapi import Depends, Header, HTTPException, Request, status

from collabdocs.core.exceptions import DocumentNotFound, IngestStage, storage_stage

if TYPE_CHECKING:
    from collabdocs.services.version_service import VersionStore


class PermissionTier(IntEnum):
    NONE = 0
    VIEWER = 1
    EDITOR = 2
    OWNER = 3


class AccessPolicy(Protocol):
    async def get_tier(self, *, doc_id: int, user_id: int) -> PermissionTier: ...


@dataclass(frozen=True)
class DocumentOwnerAccessPolicy:
    """Owner gets full access, everyone else none."""

    store: "VersionStore"

    async def get_tier(self, *, doc_id: int, user_id: int) -> PermissionTier:
        async with storage_stage(IngestStage.READ):
            async with self.store.transaction() as repo:
                document = await repo.get_document(doc_id)
        if document is None:
            raise DocumentNotFound(doc_id, IngestStage.READ)
        if document.owner_id == user_id:
            return PermissionTier.OWNER
        return PermissionTier.NONE


def set_access_policy(request_or_app: Request | object, policy: AccessPolicy) -> None:
    """Attach the active AccessPolicy to the FastAPI app state."""

    app = getattr(request_or_app, "app", request_or_app)
    setattr(app.state, "access_policy", policy)


def get_access_policy(request: Request) -> AccessPolicy:
    policy = getattr(request.app.state, "access_policy", None)
    if policy is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Access policy not configured",
        )
    return policy


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> int:
    """Caller id as asserted by the upstream auth gateway."""
    try:
        user_id = int(x_user_id) if x_user_id is not None else 0
    except ValueError:
        user_id = 0
    if user_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-User-Id header",
        )
    return user_id


def require_tier(tier: PermissionTier):
    """FastAPI dependency that enforces a minimum tier on the path's ``doc_id``.

    Intended usage:
      @router.post("/docs/{doc_id}/versions")
      async def endpoint(doc_id: int, user_id: int = Depends(require_tier(PermissionTier.EDITOR))):
          ...

    Returns the caller's user id on success; raises 403 otherwise.
    """

    async def checker(
        doc_id: int,
        request: Request,
        user_id: int = Depends(get_current_user_id),
    ) -> int:
        policy = get_access_policy(request)
        granted = await policy.get_tier(doc_id=doc_id, user_id=user_id)
        if granted < tier:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "insufficient_permission",
                    "required": tier.name.lower(),
                    "granted": PermissionTier(granted).name.lower(),
                },
            )
        return user_id

    return checker
