"""
API v1 Router
=============

Main router that combines all API v1 endpoints.
"""

from fastapi import APIRouter

from collabdocs.api.v1.endpoints import collaboration, versions

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(
    versions.router,
    prefix="/docs",
    tags=["Versions"],
)

api_router.include_router(
    collaboration.router,
    prefix="/collab",
    tags=["Collaboration"],
)
