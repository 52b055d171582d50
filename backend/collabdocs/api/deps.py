"""
Shared API dependencies.
"""

from fastapi import HTTPException, Request, status

from collabdocs.services.version_service import VersionService


def get_version_service(request: Request) -> VersionService:
    """The VersionService built by the application lifespan."""
    service = getattr(request.app.state, "version_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Version service not initialized",
        )
    return service
