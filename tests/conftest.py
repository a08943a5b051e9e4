import pytest
import pytest_asyncio
from unittest.mock import Mock
from httpx import AsyncClient, ASGITransport
import os
import sys
from datetime import timedelta
from typing import AsyncGenerator

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import EngagementStore
from core.models import UserRecord, UserRole, VideoRecord, utcnow
from core.settings import Settings
from main import create_app
from services.engagement_service import EngagementService


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'engagement_test.db'}"


@pytest_asyncio.fixture
async def store(database_url) -> AsyncGenerator[EngagementStore, None]:
    """An opened store backed by a fresh SQLite file."""
    store = EngagementStore(database_url)
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def service(store) -> EngagementService:
    return EngagementService(store, max_retries=5, retry_backoff_ms=1)


@pytest_asyncio.fixture
async def users(store):
    """Three channels: two regular users and an admin."""
    alice = UserRecord(username="alice", email="alice@example.com")
    bob = UserRecord(username="bob", email="bob@example.com")
    admin = UserRecord(username="admin", email="admin@example.com", role=UserRole.ADMIN.value)
    await store.insert(alice, bob, admin)
    return {"alice": alice, "bob": bob, "admin": admin}


@pytest_asyncio.fixture
async def video(store, users) -> VideoRecord:
    """A public video uploaded by alice."""
    record = VideoRecord(
        uploader_id=users["alice"].id,
        title="Pasta Carbonara",
        description="A classic Roman recipe",
        category="Cooking",
        tags=["pasta", "italian"],
    )
    await store.insert(record)
    return record


@pytest.fixture
def make_video(store, users):
    """Factory inserting videos with explicit counters and age."""

    async def _make(views=0, is_public=True, category="Other", age_minutes=0, **kwargs):
        record = VideoRecord(
            uploader_id=kwargs.pop("uploader_id", users["alice"].id),
            title=kwargs.pop("title", f"Video with {views} views"),
            views=views,
            is_public=is_public,
            category=category,
            created_at=utcnow() - timedelta(minutes=age_minutes),
            **kwargs,
        )
        await store.insert(record)
        return record

    return _make


@pytest_asyncio.fixture
async def async_client(database_url, store, service) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client wired to the test store."""
    app = create_app(Settings(database_url=database_url, environment="test"))
    app.state.store = store
    app.state.engagement_service = service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.info = Mock()
    logger.error = Mock()
    logger.warning = Mock()
    logger.debug = Mock()
    return logger
