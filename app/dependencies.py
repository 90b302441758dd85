"""Global dependencies for the application."""

from collections.abc import Callable
from functools import lru_cache

from fastapi import Depends, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import async_session_factory, get_async_session
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.repositories.chat_log_repo import ChatLogRepository
from app.repositories.chat_room_repo import ChatRoomRepository
from app.repositories.user_repo import UserRepository
from app.services.chat_gateway import ChatGateway
from app.services.cleanup_service import CleanupService
from app.services.connection_manager import ConnectionManager
from app.services.message_store import MessageStore
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.presence_tracker import PresenceTracker
from app.services.push_service import PushService
from app.services.rate_limiter import MessageRateLimiter
from app.services.room_registry import RoomRegistry


# --- Process-scoped chat components ---


@lru_cache
def get_presence_tracker() -> PresenceTracker:
    """Get the process-wide presence tracker."""
    return PresenceTracker()


@lru_cache
def get_chat_gateway() -> ChatGateway:
    """Get the process-wide chat gateway."""
    presence = get_presence_tracker()
    return ChatGateway(
        session_factory=async_session_factory,
        presence=presence,
        rate_limiter=MessageRateLimiter.from_limit_string(
            settings.chat.message_rate_limit
        ),
        connections=ConnectionManager(),
        dispatcher=NotificationDispatcher(
            presence, preview_length=settings.chat.notification_preview_length
        ),
        push_service=PushService(settings.push),
        config=settings.chat,
    )


# --- Auth dependencies ---


class CurrentUser(BaseModel):
    """Authenticated user extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str


def get_current_user(request: Request) -> CurrentUser:
    """Extract the authenticated user from middleware-populated state."""
    state = getattr(request, "state", None)
    user_id = getattr(state, "user_id", None) if state else None
    if user_id is None:
        raise AuthenticationError(message="Not authenticated")
    return CurrentUser(
        id=state.user_id,
        email=state.email,
        role=state.role,
    )


def require_role(*allowed_roles: str) -> Callable[..., CurrentUser]:
    """Dependency factory that enforces role-based access control."""

    def _check(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                message=f"Role '{current_user.role}' is not permitted"
            )
        return current_user

    return _check


# --- Request-scoped repositories and services ---


def get_user_repository(
    session: AsyncSession = Depends(get_async_session),
) -> UserRepository:
    """Get UserRepository bound to the current session."""
    return UserRepository(session)


def get_chat_room_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ChatRoomRepository:
    """Get ChatRoomRepository bound to the current session."""
    return ChatRoomRepository(session)


def get_room_registry(
    room_repo: ChatRoomRepository = Depends(get_chat_room_repository),
    session: AsyncSession = Depends(get_async_session),
) -> RoomRegistry:
    """Get RoomRegistry bound to the current session."""
    return RoomRegistry(room_repo=room_repo, session=session)


def get_message_store(
    session: AsyncSession = Depends(get_async_session),
) -> MessageStore:
    """Get MessageStore bound to the current session."""
    return MessageStore(
        ChatLogRepository(session), max_text_length=settings.chat.max_text_length
    )


def get_cleanup_service(
    room_repo: ChatRoomRepository = Depends(get_chat_room_repository),
    message_store: MessageStore = Depends(get_message_store),
) -> CleanupService:
    """Get CleanupService bound to the current session."""
    return CleanupService(
        room_repo=room_repo, message_store=message_store, config=settings.chat
    )
