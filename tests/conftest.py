"""
DocPortal — Test Configuration (conftest.py)
==============================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment variables are set before any docportal import so the
       settings singleton picks them up. Every test gets a fresh in-memory
       SQLite database, a temporary docs root and a search engine stub.

Fixture Hierarchy:
    Function-scoped:
    ├── db_engine / db: in-memory SQLite with the schema created
    ├── docs_root / storage: temporary DOCS_ROOT + StorageService bound to it
    ├── search: AsyncMock standing in for SearchService
    ├── tree / documents / sync: services wired to the three above
    ├── sample_tree: v1.0/getting-started/introduction with one document
    └── client / admin_client / user_client: HTTPX clients against the app
"""

import os
import tempfile
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any docportal import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DOCS_ROOT"] = tempfile.mkdtemp(prefix="docportal_test_")
os.environ["SESSION_SECRET"] = "test-session-secret-not-for-production"
os.environ["SEED_SAMPLE_DOCS"] = "false"
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["MEILISEARCH_HOST"] = "http://search.test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from docportal import models  # noqa: E402,F401
from docportal.database import Base, get_db_session  # noqa: E402
from docportal.models.user import ROLE_ADMIN, ROLE_USER  # noqa: E402
from docportal.schemas.docs import ChapterCreate, DocumentCreate, ModuleCreate, VersionCreate  # noqa: E402
from docportal.services.auth_service import auth_service  # noqa: E402
from docportal.services.document_service import DocumentService  # noqa: E402
from docportal.services.storage_service import StorageService  # noqa: E402
from docportal.services.sync_service import SyncService  # noqa: E402
from docportal.services.tree_service import TreeService  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
USER_EMAIL = "reader@example.com"
PASSWORD = "correct-horse-battery"


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    In-memory SQLite engine shared by every session of one test.

    StaticPool keeps a single connection, otherwise each session would see
    its own empty :memory: database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Services
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def docs_root(tmp_path):
    root = tmp_path / "docs"
    root.mkdir()
    return root


@pytest.fixture
def storage(docs_root):
    return StorageService(docs_root)


@pytest.fixture
def search():
    """
    Stand-in for SearchService: index writes succeed, queries return nothing.
    `indexed` holds the records passed to the last reindex().
    """
    mock = AsyncMock()
    mock.upsert_documents.return_value = True
    mock.delete_document.return_value = True
    mock.indexed = []

    def reindex(records):
        mock.indexed[:] = list(records)
        return len(mock.indexed)

    mock.reindex.side_effect = reindex
    mock.search.return_value = []
    mock.suggest.return_value = []
    mock.health_check.return_value = True
    return mock


@pytest.fixture
def tree(storage, search):
    return TreeService(storage=storage, search=search)


@pytest.fixture
def documents(storage, search, tree):
    return DocumentService(storage=storage, search=search, tree=tree)


@pytest.fixture
def sync(storage, search):
    return SyncService(storage=storage, search=search)


@pytest_asyncio.fixture
async def admin_user(db):
    user = await auth_service.upsert_user(db, ADMIN_EMAIL, PASSWORD, "Ada Admin", ROLE_ADMIN)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def sample_tree(db, tree, documents, admin_user):
    """
    v1.0 → getting-started → introduction → overview.md, committed.

    Returns a dict with the created rows plus the document detail.
    """
    version = await tree.create_version(db, VersionCreate(name="v1.0", display_name="Version 1.0"))
    module = await tree.create_module(
        db, ModuleCreate(version_id=version.id, name="getting-started", display_name="Getting Started")
    )
    chapter = await tree.create_chapter(
        db, ChapterCreate(module_id=module.id, name="introduction", display_name="Introduction")
    )
    document = await documents.create_document(
        db,
        DocumentCreate(
            title="Overview",
            chapter_id=chapter.id,
            filename="overview",
            raw_content="# Overview\n\nWelcome aboard.\n\n## Install\n\nRun the installer.\n",
        ),
        admin_user,
    )
    await db.commit()
    return {"version": version, "module": module, "chapter": chapter, "document": document}


# ══════════════════════════════════════════════════════════════════════════
# HTTP clients
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def app(session_factory, storage, search, monkeypatch):
    """
    The FastAPI app bound to the test database, docs root and search stub.

    Routes use the module-level service singletons, so those are pointed at
    the test doubles for the duration of the test.
    """
    from docportal.main import app as fastapi_app
    from docportal.services.search_service import search_service
    from docportal.services.storage_service import storage_service

    monkeypatch.setattr(storage_service, "root", storage.root)
    for name in ("upsert_documents", "delete_document", "reindex", "search", "suggest", "health_check"):
        monkeypatch.setattr(search_service, name, getattr(search, name))

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db_session] = override_db_session
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Anonymous client; keeps the session cookie between requests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _login(client: AsyncClient, email: str) -> AsyncClient:
    response = await client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return client


@pytest_asyncio.fixture
async def admin_client(client, admin_user) -> AsyncClient:
    return await _login(client, ADMIN_EMAIL)


@pytest_asyncio.fixture
async def user_client(client, db) -> AsyncClient:
    await auth_service.upsert_user(db, USER_EMAIL, PASSWORD, None, ROLE_USER)
    await db.commit()
    return await _login(client, USER_EMAIL)
