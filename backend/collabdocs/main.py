"""
collabdocs - Main Application Entry Point
=========================================

This module initializes the FastAPI application with the versioning routes,
middleware, and the lifespan that wires the version engine together.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from collabdocs import __version__
from collabdocs.api.v1.metrics import router as metrics_router
from collabdocs.api.v1.router import api_router
from collabdocs.core.access import DocumentOwnerAccessPolicy, set_access_policy
from collabdocs.core.config import settings
from collabdocs.core.database import async_session_factory, create_db_and_tables, engine
from collabdocs.core.exceptions import register_exception_handlers
from collabdocs.core.logging import configure_logging
from collabdocs.middleware.audit_logger import AuditLoggerMiddleware
from collabdocs.middleware.prometheus import PrometheusMiddleware
from collabdocs.middleware.request_id import RequestIdMiddleware
from collabdocs.services.document_locks import DocumentLockRegistry
from collabdocs.services.version_repository import SqlAlchemyVersionStore
from collabdocs.services.version_service import VersionService, VersionStore

logger = logging.getLogger(__name__)


def install_versioning(app: FastAPI, store: VersionStore) -> VersionService:
    """
    Build the version engine around ``store`` and attach it to the app state.

    One lock registry per application; it must not be shared between apps.
    Keeps an access policy that was installed earlier.
    """
    service = VersionService(store, DocumentLockRegistry())
    app.state.version_store = store
    app.state.version_service = service
    if getattr(app.state, "access_policy", None) is None:
        set_access_policy(app, DocumentOwnerAccessPolicy(store))
    return service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    - Startup: create tables outside tests, build the version engine
    - Shutdown: dispose the engine's connection pool
    """
    if settings.APP_ENV != "test":
        try:
            await create_db_and_tables()
        except Exception as e:
            logger.warning(f"Could not create database tables: {e} - continuing; run migrations")

    if getattr(app.state, "version_service", None) is None:
        install_versioning(app, SqlAlchemyVersionStore(async_session_factory))

    yield

    await engine.dispose()


def create_application() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application with all middleware,
    routes, and settings applied.
    """
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Document version control engine",
        version=__version__,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # ---------------------------------------------------------------------------
    # Middleware (order matters - first added = last executed)
    # ---------------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Audit logging reads the request id, so it runs inside RequestIdMiddleware
    app.add_middleware(AuditLoggerMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(PrometheusMiddleware)

    # ---------------------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(metrics_router, prefix="")
    app.include_router(api_router, prefix=settings.API_PREFIX)

    return app


# Create application instance
app = create_application()
