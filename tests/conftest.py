import os
import tempfile

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from movienight.config import settings
from movienight.database import get_db
from movienight.dependencies import get_media_library, get_request_catalog
from movienight.main import app
from movienight.models.base import Base

ADMIN_SECRET = "test-admin-secret"


@pytest.fixture
async def db_engine():
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)
    test_db_url = f"sqlite+aiosqlite:///{db_path}"
    engine = create_async_engine(
        test_db_url, connect_args={"check_same_thread": False, "timeout": 30}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def session_factory(db_engine):
    """Independent sessions for tests that race several requests."""
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client() -> AsyncClient:
    """HTTP client that does NOT override the DB (for endpoints that don't need DB)."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_client(db_session: AsyncSession) -> AsyncClient:
    """HTTP client with DB dependency overridden to use the test SQLite DB."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(monkeypatch) -> dict:
    monkeypatch.setattr(settings, "admin_secret", ADMIN_SECRET)
    return {"X-Admin-Secret": ADMIN_SECRET}


class FakeSubmitter:
    """Stands in for the request service."""

    def __init__(self, request_id: str | None = "req-1", error: Exception | None = None):
        self.request_id = request_id
        self.error = error
        self.calls: list[str] = []

    async def submit_request(self, external_id: str) -> str | None:
        self.calls.append(external_id)
        if self.error is not None:
            raise self.error
        return self.request_id


@pytest.fixture
def fake_submitter() -> FakeSubmitter:
    submitter = FakeSubmitter()
    app.dependency_overrides[get_request_catalog] = lambda: submitter
    yield submitter
    app.dependency_overrides.pop(get_request_catalog, None)


@pytest.fixture
def override_library():
    def _override(library):
        app.dependency_overrides[get_media_library] = lambda: library

    yield _override
    app.dependency_overrides.pop(get_media_library, None)


@pytest.fixture
def override_catalog():
    def _override(catalog):
        app.dependency_overrides[get_request_catalog] = lambda: catalog

    yield _override
    app.dependency_overrides.pop(get_request_catalog, None)
