"""
Shared fixtures for the Rain test suite

Every test gets its own in-memory SQLite database with the schema created
and its own temporary upload root.
"""
import io
import zipfile

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rain.core.config import settings
from rain.db.database import build_engine, get_db, init_db
from rain.main import app
from rain.models import Bundle
from rain.services.ingest import create_bundle, ensure_issue


def build_zip(entries) -> bytes:
    """Build a zip archive in memory from (name, content) pairs"""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries:
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
async def engine():
    test_engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def data_root(tmp_path, monkeypatch):
    root = tmp_path / "uploads"
    root.mkdir()
    monkeypatch.setattr(settings, "DATA_ROOT", str(root))
    return root


@pytest.fixture
async def bundle(db) -> Bundle:
    """An empty, persisted bundle with hash abc123"""
    await ensure_issue(db, "ISSUE-1")
    bundle_id = await create_bundle(db, "ISSUE-1", "abc123", "test bundle", 0)
    await db.commit()
    return await db.get(Bundle, bundle_id)


@pytest.fixture
async def client(session_maker, data_root):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
