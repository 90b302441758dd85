"""Shared test database, token and seeding helpers."""

import time
import uuid
from datetime import datetime

import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.models.chat_room import ChatRoom, make_open_key
from app.models.user import User

# --- Test DB (SQLite in-memory) ---

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool
)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


# --- Token helpers ---


def make_token(
    user_id: int = 1,
    email: str = "test@test.com",
    role: str = "user",
    token_type: str = "access",
    jti: str | None = None,
    expires_in: int = 900,
) -> str:
    """Encode a token the way the identity service issues them."""
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "type": token_type,
        "jti": jti or str(uuid.uuid4()),
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(
        payload,
        settings.auth.secret_key.get_secret_value(),
        algorithm=settings.auth.algorithm,
    )


def make_auth_headers(
    user_id: int = 1,
    email: str = "test@test.com",
    role: str = "user",
) -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    token = make_token(user_id=user_id, email=email, role=role)
    return {"Authorization": f"Bearer {token}"}


# --- Seeding helpers ---


async def seed_user(
    user_id: int,
    username: str | None = None,
    push_token: str | None = None,
    **prefs: bool,
) -> User:
    """Insert a user row with an explicit id."""
    async with test_session_factory() as session:
        user = User(
            id=user_id,
            email=f"user{user_id}@test.com",
            username=username or f"user{user_id}",
            expo_push_token=push_token,
            **prefs,
        )
        session.add(user)
        await session.commit()
    return user


async def seed_room(
    listing_id: int = 100,
    owner_id: int = 1,
    inquirer_id: int = 2,
    status: str = "pending",
    has_messages: bool = False,
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
    **fields: object,
) -> ChatRoom:
    """Insert a chat room directly, bypassing the registry."""
    async with test_session_factory() as session:
        room = ChatRoom(
            listing_id=listing_id,
            owner_id=owner_id,
            inquirer_id=inquirer_id,
            name=f"Listing #{listing_id}",
            status=status,
            open_key=(
                None
                if status == "cancelled"
                else make_open_key(listing_id, owner_id, inquirer_id)
            ),
            has_messages=has_messages,
            read_by=[],
            **fields,
        )
        if created_at is not None:
            room.created_at = created_at
        if updated_at is not None:
            room.updated_at = updated_at
        session.add(room)
        await session.commit()
    return room


class FakeClock:
    """Manually advanced wall clock.

    Exposes ``time()`` so it can stand in for the ``time`` module read by
    the rate limiter's memory storage.
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def time(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSocket:
    """Stands in for an accepted WebSocket and records outgoing frames."""

    def __init__(self, fail: bool = False) -> None:
        self.frames: list[dict] = []
        self.fail = fail
        self.close_code: int | None = None

    async def send_json(self, data: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code

    def names(self) -> list[str]:
        return [frame["event"] for frame in self.frames]

    def events(self, name: str) -> list[dict]:
        return [frame["data"] for frame in self.frames if frame["event"] == name]

    def clear(self) -> None:
        self.frames.clear()
