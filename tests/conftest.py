"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.pool import StaticPool

from billing_api.core.auth import get_current_user
from billing_api.core.config import settings
from billing_api.core.database import get_optional_db
from billing_api.main import app
from billing_api.models import Base
from billing_api.schemas.auth import TokenData
from billing_api.services.config_store import memory_config_store
from billing_api.services.creem_service import CreemService, get_creem_service

TEST_SECRET = "whsec_test_secret"
TEST_USER_EMAIL = "user@example.com"


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Tests never see real credentials from the environment."""
    monkeypatch.setattr(settings, "creem_webhook_secret", "")
    monkeypatch.setattr(settings, "creem_api_key", "")
    monkeypatch.setattr(settings, "jwt_secret_key", "")
    memory_config_store.clear()
    yield
    memory_config_store.clear()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    """In-memory SQLite database for tests."""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def current_user():
    return TokenData(user_id=str(uuid.uuid4()), email=TEST_USER_EMAIL)


@pytest.fixture
def creem_service():
    """Unconfigured Creem client; tests that need one build it with a MockTransport."""
    return CreemService(api_key="", base_url="https://creem.test")


@pytest.fixture
async def client(db, current_user, creem_service):
    """HTTP client against the app with the test session injected."""
    async def _db():
        yield db

    app.dependency_overrides[get_optional_db] = _db
    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_creem_service] = lambda: creem_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def degraded_client(current_user, creem_service):
    """HTTP client with no data store configured."""
    async def _no_db():
        yield None

    app.dependency_overrides[get_optional_db] = _no_db
    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_creem_service] = lambda: creem_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "creem_webhook_secret", TEST_SECRET)
    return TEST_SECRET
