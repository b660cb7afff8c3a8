"""
Test configuration and fixtures.
Uses SQLite (aiosqlite) for fast tests. Mocks all external services.
"""
import os

os.environ.setdefault("APP_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from src.database import Base
import src.models  # noqa: F401


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so several sessions can share one database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.ping = AsyncMock(return_value=True)
    with (
        patch("src.utils.redis.get_redis", AsyncMock(return_value=redis_mock)),
        patch("src.utils.rate_limiter.get_redis", AsyncMock(return_value=redis_mock)),
        patch("src.api.health.get_redis", AsyncMock(return_value=redis_mock)),
    ):
        yield redis_mock


@pytest.fixture
def no_rate_limit():
    """Rate limiter that always allows."""
    allow = AsyncMock(return_value=(True, None))
    with (
        patch("src.api.leads.check_user_rate_limit", allow),
        patch("src.api.billing.check_user_rate_limit", allow),
    ):
        yield allow


def make_mock_settings(**overrides):
    """Build a mock Settings object."""
    defaults = {
        "app_env": "test",
        "app_base_url": "https://app.leadgenai.com",
        "app_secret_key": "test-secret-key",
        "log_level": "WARNING",
        "allowed_origins": "",
        "auth_jwt_secret": "test-jwt-secret",
        "auth_jwt_audience": "authenticated",
        "auth_jwt_algorithm": "HS256",
        "stripe_secret_key": "sk_test_xxx",
        "stripe_webhook_secret": "whsec_test_xxx",
        "stripe_premium_price_id": "",
        "openai_api_key": "sk-or-test",
        "openai_base_url": "https://openrouter.ai/api/v1",
        "openai_model": "deepseek/deepseek-chat-v3-0324:free",
        "openai_max_tokens": 3000,
        "openai_timeout_seconds": 60,
        "openai_referer": "https://leadgenai.com",
        "sentry_dsn": "",
        "max_leads_per_search": 100,
        "search_rate_limit_per_minute": 10,
        "checkout_rate_limit_per_minute": 5,
    }
    defaults.update(overrides)
    settings = MagicMock()
    for k, v in defaults.items():
        setattr(settings, k, v)
    return settings


@pytest.fixture
def settings_factory():
    return make_mock_settings


@pytest.fixture
def mock_settings():
    return make_mock_settings()


@pytest.fixture
async def client(session_factory):
    """HTTP client against the app, authenticated as user-1, backed by the test database."""
    import httpx
    from src.api.auth import CurrentUser, get_current_user
    from src.database import get_db
    from src.main import app

    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(id="user-1", email="sarah@acme.com")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()
