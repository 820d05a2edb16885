import sys
from datetime import datetime, timedelta
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from typing import AsyncGenerator, List

import pytest
import pytest_asyncio
import httpx
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

import schemas
from main import app
from models import Base
from database import get_db
from blob_store import BlobStore, get_blob_store
from config import Settings
from exceptions import BlobStoreError
from registry import ShareRegistry
from routers.shares import get_registry, get_settings

class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now = self.now + timedelta(seconds=seconds)

class FakeBlobStore(BlobStore):
    def __init__(self):
        self.deleted: List[str] = []
        self.delete_calls = 0
        self.fail_deletes = False
        self.explode_on = set()
        self.usage = schemas.UsageReport(
            total_bytes=2048,
            app_total_bytes=1024,
            files_uploaded=3,
            limit_bytes=2147483648
        )

    async def delete_files(self, storage_keys: List[str]) -> None:
        self.delete_calls += 1
        if self.explode_on.intersection(storage_keys):
            raise RuntimeError("unexpected blob store failure")
        if self.fail_deletes:
            raise BlobStoreError("blob store unavailable")
        self.deleted.extend(storage_keys)

    async def get_usage_info(self) -> schemas.UsageReport:
        if self.usage is None:
            raise BlobStoreError("usage info unavailable")
        return self.usage

@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()

@pytest.fixture(scope="function")
def test_settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        BLOB_STORE_URL="https://blob.test",
        BLOB_STORE_API_KEY="sk_test_key",
        BLOB_DELETE_MAX_ATTEMPTS=3,
        BLOB_RETRY_BACKOFF_SECONDS=0,
    )

@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, 0))

@pytest.fixture(scope="function")
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()

@pytest.fixture(scope="function")
def registry(db_session: AsyncSession, blob_store: FakeBlobStore, test_settings: Settings, clock: FakeClock) -> ShareRegistry:
    return ShareRegistry(db_session, blob_store, test_settings, clock=clock)

@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    blob_store: FakeBlobStore,
    test_settings: Settings,
    registry: ShareRegistry
) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_registry] = lambda: registry

    transport = httpx.ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testshare") as client:
        yield client

    app.dependency_overrides.clear()
