"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-at-least-32-bytes!!")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("PUSH_ENABLED", "false")

from collections.abc import AsyncGenerator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from limits.aio.storage import memory as memory_storage  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.core.database import Base  # noqa: E402
from app.core.settings import ChatConfig  # noqa: E402
from app.models.chat_log import ChatLog  # noqa: E402, F401
from app.models.chat_message import ChatMessage  # noqa: E402, F401
from app.models.chat_room import ChatRoom  # noqa: E402, F401
from app.models.user import User  # noqa: E402, F401
from app.services.chat_gateway import ChatGateway  # noqa: E402
from app.services.connection_manager import ConnectionManager  # noqa: E402
from app.services.notification_dispatcher import NotificationDispatcher  # noqa: E402
from app.services.presence_tracker import PresenceTracker  # noqa: E402
from app.services.push_service import PushService  # noqa: E402
from app.services.rate_limiter import MessageRateLimiter  # noqa: E402
from tests.support import (  # noqa: E402
    FakeClock,
    make_auth_headers,
    test_engine,
    test_session_factory,
)


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# --- Test Redis (fakeredis) ---


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fake Redis client."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(
    fake_redis: fakeredis.aioredis.FakeRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Patch the global redis_client read by the middleware and get_redis()."""
    monkeypatch.setattr("app.core.redis.redis_client", fake_redis)


@pytest.fixture(autouse=True)
def reset_http_rate_limits() -> None:
    """Start every test with empty slowapi counters."""
    from app.core.rate_limit import limiter

    limiter.reset()


# --- App override & client fixtures ---


def _get_app():  # type: ignore[no-untyped-def]
    """Import app lazily and apply overrides."""
    from app.core.database import get_async_session as original_dep
    from app.main import app

    app.dependency_overrides[original_dep] = override_get_async_session
    return app


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client without credentials."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def authed_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client authenticated as user 2."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers=make_auth_headers(user_id=2),
    ) as ac:
        yield ac


@pytest.fixture
async def admin_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with admin auth headers."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers=make_auth_headers(user_id=99, role="admin"),
    ) as ac:
        yield ac


# --- DB session for tests ---


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository and service tests."""
    async with test_session_factory() as session:
        yield session


# --- Chat components ---


@pytest.fixture
def chat_config() -> ChatConfig:
    return ChatConfig(
        message_rate_limit="10/minute",
        max_text_length=500,
        pending_room_ttl_hours=24,
        cleanup_interval_hours=6,
        soft_delete_grace_days=3,
        notification_preview_length=100,
    )


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive the rate limiter storage from a manually advanced clock."""
    fake = FakeClock()
    monkeypatch.setattr(memory_storage, "time", fake)
    return fake


@pytest.fixture
def presence() -> PresenceTracker:
    return PresenceTracker()


@pytest.fixture
def mock_push_service() -> AsyncMock:
    service = AsyncMock(spec=PushService)
    service.send.return_value = []
    return service


@pytest.fixture
def gateway(
    presence: PresenceTracker,
    mock_push_service: AsyncMock,
    chat_config: ChatConfig,
) -> ChatGateway:
    """Gateway wired to the test database."""
    return ChatGateway(
        session_factory=test_session_factory,
        presence=presence,
        rate_limiter=MessageRateLimiter.from_limit_string("10/minute"),
        connections=ConnectionManager(),
        dispatcher=NotificationDispatcher(presence, preview_length=100),
        push_service=mock_push_service,
        config=chat_config,
    )
