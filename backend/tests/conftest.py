"""Pytest configuration.

This repo uses Pydantic Settings with environment-based DB config.
To keep unit tests import-safe (even when a local .env isn't present),
we set minimal dev defaults here before importing the app.

Most tests run the engine against ``InMemoryVersionStore``, a fake of the
SQLAlchemy store with the same repository surface. It yields to the event
loop on every call (like a real storage round-trip), rolls back on error,
enforces the unique (doc_id, version_number) index and can be told to fail
specific calls.
"""

import os


os.environ.setdefault("APP_NAME", "collabdocs")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("API_PREFIX", "/api/v1")
os.environ.setdefault("LOG_JSON", "false")
# pydantic-settings parses List[str] from env/.env as JSON; force a safe value
# to keep tests import-safe regardless of local developer .env contents.
os.environ["CORS_ORIGINS"] = "[]"
os.environ.setdefault("SNAPSHOT_WEBHOOK_TOKEN", "test-webhook-token")

# For Postgres-backed integration tests we want deterministic credentials.
_run_pg = os.environ.get("RUN_POSTGRES_TESTS", "").lower() in {"1", "true", "yes"}
_pg_host = os.environ.get("POSTGRES_TEST_HOST") or "localhost"
_pg_port = os.environ.get("POSTGRES_TEST_PORT") or "5432"
_pg_user = os.environ.get("POSTGRES_TEST_USER") or "collabdocs"
_pg_password = os.environ.get("POSTGRES_TEST_PASSWORD") or "collabdocs_dev_password"
_pg_db = os.environ.get("POSTGRES_TEST_DB") or "collabdocs_test"

os.environ.setdefault(
    "TEST_DATABASE_URL",
    f"postgresql+asyncpg://{_pg_user}:{_pg_password}@{_pg_host}:{_pg_port}/{_pg_db}",
)

import asyncio
import copy
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from urllib.parse import urlparse

from collabdocs.core.access import PermissionTier, set_access_policy
from collabdocs.core.config import settings
from collabdocs.core.database import build_session_factory
from collabdocs.main import create_application, install_versioning
from collabdocs.models import Base
from collabdocs.services.document_locks import DocumentLockRegistry
from collabdocs.services.version_service import VersionService


# =============================================================================
# In-memory store
# =============================================================================

@dataclass
class FakeDocument:
    id: int
    owner_id: int
    version_retention_limit: int = 0
    last_published_version_id: Optional[int] = None
    title: Optional[str] = None


@dataclass
class FakeVersion:
    id: int
    doc_id: int
    version_number: int
    snapshot_url: str
    snapshot_sha256: str
    size_bytes: int
    created_by: int
    change_summary: Optional[str]
    source: str
    content_text: Optional[str]
    content_html: Optional[str]
    created_at: datetime


_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


class InMemoryRepository:
    def __init__(self, store: "InMemoryVersionStore"):
        self.store = store

    async def _step(self, name: str) -> None:
        self.store.calls.append(name)
        await asyncio.sleep(0)
        pending = self.store.failures.get(name)
        if pending:
            raise pending.pop(0)

    async def get_document(self, doc_id: int, *, for_update: bool = False):
        await self._step("get_document")
        return self.store.documents.get(doc_id)

    async def set_current_version(self, doc_id: int, version_id: int) -> bool:
        await self._step("set_current_version")
        document = self.store.documents.get(doc_id)
        if document is None:
            return False
        document.last_published_version_id = version_id
        return True

    async def max_version_number(self, doc_id: int) -> int:
        await self._step("max_version_number")
        return max((v.version_number for v in self.store.versions_for(doc_id)), default=0)

    async def find_by_content_hash(self, doc_id: int, content_hash: str):
        await self._step("find_by_content_hash")
        for version in self.store.versions_for(doc_id):
            if version.snapshot_sha256 == content_hash:
                return version
        return None

    async def insert_version(self, **fields) -> FakeVersion:
        await self._step("insert_version")
        for existing in self.store.versions_for(fields["doc_id"]):
            if existing.version_number == fields["version_number"]:
                raise IntegrityError(
                    "INSERT INTO document_versions",
                    {},
                    Exception("duplicate key value violates unique constraint ux_document_versions_doc_vn"),
                )
        version_id = self.store.next_version_id
        self.store.next_version_id += 1
        row = FakeVersion(
            id=version_id,
            created_at=_EPOCH + timedelta(minutes=version_id),
            **fields,
        )
        self.store.versions[version_id] = row
        return row

    async def auto_version_ids_beyond(self, doc_id: int, keep: int) -> List[int]:
        await self._step("auto_version_ids_beyond")
        autos = [v for v in self.store.versions_for(doc_id) if v.source == "auto"]
        autos.sort(key=lambda v: v.version_number, reverse=True)
        return [v.id for v in autos[keep:]]

    async def delete_versions(self, version_ids) -> int:
        await self._step("delete_versions")
        deleted = 0
        for version_id in version_ids:
            row = self.store.versions.pop(version_id, None)
            if row is None:
                continue
            deleted += 1
            document = self.store.documents.get(row.doc_id)
            if document is not None and document.last_published_version_id == version_id:
                document.last_published_version_id = None
        return deleted

    async def get_version(self, doc_id: int, version_id: int):
        await self._step("get_version")
        row = self.store.versions.get(version_id)
        if row is None or row.doc_id != doc_id:
            return None
        return row

    async def get_latest_version(self, doc_id: int):
        await self._step("get_latest_version")
        rows = self.store.versions_for(doc_id)
        return rows[-1] if rows else None

    async def list_versions(
        self,
        doc_id: int,
        *,
        start_date=None,
        end_date=None,
        created_by=None,
        limit=None,
    ):
        await self._step("list_versions")
        rows = list(reversed(self.store.versions_for(doc_id)))
        if start_date is not None:
            rows = [v for v in rows if v.created_at >= start_date]
        if end_date is not None:
            rows = [v for v in rows if v.created_at <= end_date]
        if created_by is not None:
            rows = [v for v in rows if v.created_by == created_by]
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def get_current_snapshot(self, doc_id: int):
        await self._step("get_current_snapshot")
        document = self.store.documents.get(doc_id)
        if document is None or document.last_published_version_id is None:
            return None
        return self.store.versions.get(document.last_published_version_id)


class InMemoryVersionStore:
    def __init__(self):
        self.documents: Dict[int, FakeDocument] = {}
        self.versions: Dict[int, FakeVersion] = {}
        self.next_version_id = 1
        self.failures: Dict[str, list] = defaultdict(list)
        self.calls: List[str] = []
        self.commits = 0
        self.rollbacks = 0

    def add_document(self, doc_id: int, owner_id: int, retention_limit: int = 0) -> FakeDocument:
        document = FakeDocument(id=doc_id, owner_id=owner_id, version_retention_limit=retention_limit)
        self.documents[doc_id] = document
        return document

    def versions_for(self, doc_id: int) -> List[FakeVersion]:
        return sorted(
            (v for v in self.versions.values() if v.doc_id == doc_id),
            key=lambda v: v.version_number,
        )

    def fail(self, operation: str, *errors: BaseException) -> None:
        """Make the next calls of ``operation`` raise ``errors`` in order."""
        self.failures[operation].extend(errors)

    @asynccontextmanager
    async def transaction(self):
        saved = copy.deepcopy((self.documents, self.versions, self.next_version_id))
        try:
            yield InMemoryRepository(self)
        except BaseException:
            self.documents, self.versions, self.next_version_id = saved
            self.rollbacks += 1
            raise
        self.commits += 1


@dataclass
class StaticAccessPolicy:
    """Tiers keyed by (doc_id, user_id); unknown pairs get none."""

    tiers: Dict[tuple, PermissionTier] = field(default_factory=dict)

    async def get_tier(self, *, doc_id: int, user_id: int) -> PermissionTier:
        return self.tiers.get((doc_id, user_id), PermissionTier.NONE)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store() -> InMemoryVersionStore:
    return InMemoryVersionStore()


@pytest.fixture
def fast_settings():
    """Settings without retry backoff."""
    return settings.model_copy(update={"VERSION_RETRY_BACKOFF_SECONDS": 0.0})


@pytest.fixture
def service(store, fast_settings) -> VersionService:
    return VersionService(store, DocumentLockRegistry(), config=fast_settings)


@pytest.fixture
def app(store):
    application = create_application()
    install_versioning(application, store)
    return application


@pytest.fixture
def static_policy(app) -> StaticAccessPolicy:
    """Replace the ownership policy with explicit per-user tiers."""
    policy = StaticAccessPolicy()
    set_access_policy(app, policy)
    return policy


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Postgres-backed fixtures
# =============================================================================

TEST_DATABASE_URL = os.environ["TEST_DATABASE_URL"]


async def _can_connect_to_postgres(url: str, timeout_seconds: float = 1.0) -> bool:
    try:
        parsed = urlparse(url.replace("postgresql+asyncpg://", "postgresql://", 1))
        host = parsed.hostname or "localhost"
        port = parsed.port or 5432

        conn = asyncio.open_connection(host, port)
        reader, writer = await asyncio.wait_for(conn, timeout=timeout_seconds)
        writer.close()
        await writer.wait_closed()
        return True
    except (OSError, asyncio.TimeoutError):
        return False


async def _require_postgres_or_skip(url: str) -> None:
    if await _can_connect_to_postgres(url):
        return

    message = (
        "Postgres is not reachable for integration tests. "
        "Start it (e.g. docker compose up -d postgres) or set POSTGRES_TEST_* to a running instance."
    )

    if _run_pg:
        pytest.fail(f"RUN_POSTGRES_TESTS=1 but {message}")

    pytest.skip(message)


@pytest_asyncio.fixture(scope="function")
async def pg_engine():
    """Engine on the test database with fresh tables."""
    await _require_postgres_or_skip(TEST_DATABASE_URL)

    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def pg_session_factory(pg_engine):
    return build_session_factory(pg_engine)
