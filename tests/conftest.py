"""Pytest configuration and fixtures."""
from __future__ import annotations

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from image_catalog.api.dependencies import get_cache_service, get_storage_service
from image_catalog.core.database import Base, build_session_factory, get_db
from image_catalog.main import app
from image_catalog.models import database  # noqa: F401
from image_catalog.repositories import (
    ImageRepository,
    InMemoryCatalog,
    InMemoryImageStore,
    InMemoryTagStore,
    TagRepository,
)
from image_catalog.services import CacheService, LocalStorageService
from tests.fakes import FakeRedis, RecordingEventPublisher


# In-memory SQLite shared by every connection of the test engine
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to work, and foreign keys
    # (hence ON DELETE CASCADE) are off unless enabled per connection
    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_factory = build_session_factory(test_db_engine)

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def image_repo(db_session) -> ImageRepository:
    return ImageRepository(db_session)


@pytest.fixture
def tag_repo(db_session) -> TagRepository:
    return TagRepository(db_session)


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture
def image_store(catalog) -> InMemoryImageStore:
    return InMemoryImageStore(catalog)


@pytest.fixture
def tag_store(catalog) -> InMemoryTagStore:
    return InMemoryTagStore(catalog)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis) -> CacheService:
    return CacheService(fake_redis)


@pytest.fixture
def storage(tmp_path) -> LocalStorageService:
    return LocalStorageService(tmp_path / "images", "http://test/files")


@pytest.fixture
def events() -> RecordingEventPublisher:
    return RecordingEventPublisher()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    cache: CacheService,
    storage: LocalStorageService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database, cache and storage overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_service] = lambda: cache
    app.dependency_overrides[get_storage_service] = lambda: storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def sample_upload() -> dict:
    """Form fields for a valid upload."""
    return {
        "tags": ["nature", "sunset"],
        "metadata": '{"camera": "test"}',
        "width": "640",
        "height": "480",
    }
