"""
Database Configuration
======================

SQLAlchemy async database setup with connection pooling and session management.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import NullPool

from collabdocs.core.config import settings
from collabdocs.models.base import Base


def build_engine(url: str | None = None) -> AsyncEngine:
    """Create the async engine used by the application."""
    engine_kwargs = dict(
        echo=settings.DEBUG,
        pool_pre_ping=True,
        connect_args={"command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS},
    )

    # Pooled asyncpg connections outlive the per-test event loops.
    if settings.is_test:
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_size"] = settings.DB_POOL_SIZE
        engine_kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

    return create_async_engine(url or settings.DATABASE_URL, **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with the defaults every repository expects."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine: AsyncEngine = build_engine()

# Session factory
async_session_factory = build_session_factory(engine)


async def create_db_and_tables() -> None:
    """
    Create database tables if they don't exist.

    Note: In production, use Alembic migrations instead.
    This is primarily for development convenience.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

