"""Real-time chat gateway.

Each client event is dispatched to one handler that returns the effects to
apply: outbound events, room subscriptions and push notifications. Handlers
commit their unit of work before any effect is produced, so a failed write
never reaches other participants. Log-mutating events for the same room run
under a per-room lock so broadcasts follow append order.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.websockets import WebSocket

from app.core.database import session_scope
from app.core.exceptions import AppException, NotParticipantError, RateLimitedError
from app.core.settings import ChatConfig
from app.models.chat_room import ChatRoom
from app.models.user import User
from app.repositories.chat_log_repo import ChatLogRepository
from app.repositories.chat_room_repo import ChatRoomRepository
from app.repositories.user_repo import UserRepository
from app.schemas.gateway_schema import (
    ClientEvent,
    DeleteMessageEvent,
    GetPresenceEvent,
    JoinEvent,
    LeaveEvent,
    MarkReadEvent,
    SendEvent,
    TypingEvent,
    client_event_adapter,
)
from app.schemas.message_schema import MessageResponse
from app.schemas.notification_schema import PushMessage
from app.services.connection_manager import ConnectionManager, DispatchResult
from app.services.message_store import MessageStore
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.presence_tracker import PresenceTracker
from app.services.push_service import PushService
from app.services.rate_limiter import MessageRateLimiter
from app.services.room_registry import RoomRegistry, role_of, unread_flags

logger = structlog.get_logger()

_LOCKED_EVENTS = frozenset({"join", "send", "mark_read", "delete_message"})

WS_CLOSE_SUPERSEDED = 4409


@dataclass(frozen=True)
class ConnectionContext:
    """Authenticated identity of one live connection."""

    connection_id: str
    user_id: int


def _keyed(flags: dict[int, Any]) -> dict[str, Any]:
    return {str(k): v for k, v in flags.items()}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _room_snapshot(room: ChatRoom, unread: bool) -> dict[str, Any]:
    return {
        "room_id": room.id,
        "status": room.status,
        "has_messages": room.has_messages,
        "last_message": room.last_message,
        "last_message_sender_id": room.last_message_sender_id,
        "last_message_at": _iso(room.last_message_at),
        "unread": unread,
    }


class _UnitOfWork:
    """Session-bound services for one handler invocation."""

    def __init__(self, session: AsyncSession, config: ChatConfig) -> None:
        self.registry = RoomRegistry(ChatRoomRepository(session), session)
        self.store = MessageStore(ChatLogRepository(session), config.max_text_length)
        self.users = UserRepository(session)


class ChatGateway:
    """Dispatches client events and fans results out to connections."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        presence: PresenceTracker,
        rate_limiter: MessageRateLimiter,
        connections: ConnectionManager,
        dispatcher: NotificationDispatcher,
        push_service: PushService,
        config: ChatConfig,
    ) -> None:
        self._session_factory = session_factory
        self._presence = presence
        self._rate_limiter = rate_limiter
        self._connections = connections
        self._dispatcher = dispatcher
        self._push_service = push_service
        self._config = config
        self._room_locks: dict[str, asyncio.Lock] = {}
        self._participants: dict[str, tuple[int, int]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._handlers: dict[
            str, Callable[[ConnectionContext, Any], Awaitable[DispatchResult]]
        ] = {
            "join": self._on_join,
            "send": self._on_send,
            "mark_read": self._on_mark_read,
            "delete_message": self._on_delete_message,
            "typing": self._on_typing,
            "leave": self._on_leave,
            "get_presence": self._on_get_presence,
        }

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    @property
    def connections(self) -> ConnectionManager:
        return self._connections

    # --- Connection lifecycle ---

    async def connect(self, ctx: ConnectionContext, websocket: WebSocket) -> None:
        """Register an accepted, authenticated connection.

        A user holds one live connection. An older one is closed and its
        rooms are told the user left, since presence now tracks the new one.
        """
        superseded = self._connections.user_connections(ctx.user_id)
        stale_rooms = self._presence.rooms_of(ctx.user_id)
        for connection_id in superseded:
            logger.info(
                "Closing superseded chat connection",
                connection_id=connection_id,
                user_id=ctx.user_id,
            )
            await self._connections.evict(connection_id, WS_CLOSE_SUPERSEDED)

        self._connections.register(ctx.connection_id, ctx.user_id, websocket)
        self._presence.mark_online(ctx.user_id, ctx.connection_id)
        logger.info(
            "Chat connection opened",
            connection_id=ctx.connection_id,
            user_id=ctx.user_id,
        )

        result = DispatchResult()
        for room_id in stale_rooms:
            self._announce_departure(result, room_id, ctx.user_id)
            self._forget_room_if_idle(room_id)
        for outbound in result.outbound:
            await self._connections.deliver(outbound)

    async def disconnect(self, ctx: ConnectionContext) -> None:
        """Tear down a connection and tell its rooms the user went away.

        Runs for both explicit closes and dropped transports.
        """
        self._connections.unregister(ctx.connection_id)
        departed = self._presence.disconnect(ctx.connection_id)
        logger.info(
            "Chat connection closed",
            connection_id=ctx.connection_id,
            user_id=ctx.user_id,
        )
        if departed is None:
            return

        user_id, rooms = departed
        result = DispatchResult()
        for room_id in rooms:
            self._announce_departure(result, room_id, user_id)
            self._forget_room_if_idle(room_id)
        for outbound in result.outbound:
            await self._connections.deliver(outbound)

    def _announce_departure(
        self, result: DispatchResult, room_id: str, user_id: int
    ) -> None:
        participants = self._participants.get(room_id)
        if participants is not None:
            result.to_room(
                room_id,
                "presence_update",
                {
                    "room_id": room_id,
                    "presence": _keyed(self._presence.status_for(participants)),
                },
            )
        result.to_room(room_id, "user_left", {"room_id": room_id, "user_id": user_id})

    def _forget_room_if_idle(self, room_id: str) -> None:
        if self._presence.members_of(room_id):
            return
        self._participants.pop(room_id, None)
        lock = self._room_locks.get(room_id)
        if lock is not None and not lock.locked():
            del self._room_locks[room_id]

    # --- Event entry points ---

    @staticmethod
    def parse(raw: str | bytes | dict[str, Any]) -> ClientEvent:
        """Parse a raw frame into a typed client event."""
        if isinstance(raw, (str, bytes)):
            return client_event_adapter.validate_json(raw)
        return client_event_adapter.validate_python(raw)

    async def handle(
        self, ctx: ConnectionContext, raw: str | bytes | dict[str, Any]
    ) -> None:
        """Process one inbound frame. Errors go back to this connection only."""
        try:
            event = self.parse(raw)
        except ValidationError as exc:
            await self._connections.send(
                ctx.connection_id,
                "error",
                {
                    "code": "VALIDATION_ERROR",
                    "message": "Malformed event",
                    "details": [
                        {"loc": list(err["loc"]), "msg": err["msg"]}
                        for err in exc.errors()
                    ],
                },
            )
            return

        lock: contextlib.AbstractAsyncContextManager[Any]
        if event.event in _LOCKED_EVENTS:
            lock = self._lock_for(event.room_id)
        else:
            lock = contextlib.nullcontext()

        try:
            async with lock:
                result = await self.dispatch(ctx, event)
                await self._connections.apply(ctx.connection_id, result)
        except AppException as exc:
            logger.warning(
                "Chat event rejected",
                chat_event=event.event,
                room_id=event.room_id,
                user_id=ctx.user_id,
                code=exc.code,
            )
            await self._connections.send(
                ctx.connection_id,
                "error",
                {"code": exc.code, "message": exc.message, "event": event.event},
            )
            return
        except Exception:
            logger.exception(
                "Chat event failed",
                chat_event=event.event,
                room_id=event.room_id,
                user_id=ctx.user_id,
            )
            await self._connections.send(
                ctx.connection_id,
                "error",
                {
                    "code": "INTERNAL_ERROR",
                    "message": "Something went wrong",
                    "event": event.event,
                },
            )
            return

        self._schedule_pushes(result.pushes)

    async def dispatch(self, ctx: ConnectionContext, event: ClientEvent) -> DispatchResult:
        """Run the handler for an event and return its effects."""
        return await self._handlers[event.event](ctx, event)

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        lock = self._room_locks.get(room_id)
        if lock is None:
            lock = self._room_locks[room_id] = asyncio.Lock()
        return lock

    # --- Handlers ---

    async def _on_join(self, ctx: ConnectionContext, event: JoinEvent) -> DispatchResult:
        async with session_scope(self._session_factory) as session:
            uow = _UnitOfWork(session, self._config)
            room = await uow.registry.get_room_for_participant(
                event.room_id, ctx.user_id
            )
            history = await uow.store.history(room.id)

        self._presence.join_room(ctx.user_id, ctx.connection_id, room.id)
        self._participants[room.id] = room.participant_ids
        flags = unread_flags(room)

        result = DispatchResult(subscribe=[room.id])
        result.to_connection(
            ctx.connection_id,
            "initial_data",
            {
                "room_id": room.id,
                "status": room.status,
                "role": role_of(room, ctx.user_id),
                "participants": {
                    "owner_id": room.owner_id,
                    "inquirer_id": room.inquirer_id,
                },
                "current_state": history.current_state,
                "conversation_mode": history.conversation_mode,
                "messages": [m.model_dump(mode="json") for m in history.messages],
                "presence": _keyed(
                    self._presence.status_for(room.participant_ids, ctx.user_id)
                ),
                "unread": _keyed(flags),
            },
        )
        result.to_room(
            room.id,
            "user_joined",
            {
                "room_id": room.id,
                "user_id": ctx.user_id,
                "role": role_of(room, ctx.user_id),
            },
            exclude_connection=ctx.connection_id,
        )
        result.to_room(
            room.id,
            "presence_update",
            {
                "room_id": room.id,
                "presence": _keyed(self._presence.status_for(room.participant_ids)),
            },
        )
        return result

    async def _on_send(self, ctx: ConnectionContext, event: SendEvent) -> DispatchResult:
        pushes: list[PushMessage] = []
        async with session_scope(self._session_factory) as session:
            uow = _UnitOfWork(session, self._config)
            room = await uow.registry.get_room_for_participant(
                event.room_id, ctx.user_id
            )
            if not await self._rate_limiter.check(ctx.user_id):
                raise RateLimitedError()
            content = uow.store.validate(event.to_content())
            room = await uow.registry.activate_on_first_message(room.id)
            role = role_of(room, ctx.user_id)
            message = await uow.store.append(room.id, ctx.user_id, role, content)
            await uow.registry.record_message(room, message)

            flags = unread_flags(room)
            totals = {
                pid: await uow.registry.global_unread_count(pid)
                for pid in room.participant_ids
            }
            users = await uow.users.find_by_ids(list(room.participant_ids))
            pushes = self._build_pushes(room, ctx.user_id, users, content, totals)
            payload = MessageResponse.from_row(message).model_dump(mode="json")

        result = DispatchResult(pushes=pushes)
        result.to_room(room.id, "new_message", {"room_id": room.id, "message": payload})
        result.to_room(
            room.id,
            "unread_status_update",
            {"room_id": room.id, "unread": _keyed(flags)},
        )
        for pid in room.participant_ids:
            result.to_user(pid, "room_updated", _room_snapshot(room, flags[pid]))
            result.to_user(pid, "global_unread_update", {"total_unread": totals[pid]})
        return result

    def _build_pushes(
        self,
        room: ChatRoom,
        sender_id: int,
        users: dict[int, User],
        content: Any,
        totals: dict[int, int],
    ) -> list[PushMessage]:
        sender = users.get(sender_id)
        sender_name = sender.username if sender else None
        pushes = []
        for pid in room.participant_ids:
            recipient = users.get(pid)
            if recipient is None:
                continue
            if not self._dispatcher.should_notify(recipient, room, sender_id):
                continue
            push = self._dispatcher.build_chat_push(
                recipient, sender_id, sender_name, room, content, badge=totals[pid]
            )
            if push is not None:
                pushes.append(push)
        return pushes

    async def _on_mark_read(
        self, ctx: ConnectionContext, event: MarkReadEvent
    ) -> DispatchResult:
        async with session_scope(self._session_factory) as session:
            uow = _UnitOfWork(session, self._config)
            room = await uow.registry.get_room_for_participant(
                event.room_id, ctx.user_id
            )
            await uow.registry.mark_read(room, ctx.user_id)
            seen = await uow.store.mark_seen(room.id, ctx.user_id)
            flags = unread_flags(room)
            total = await uow.registry.global_unread_count(ctx.user_id)

        result = DispatchResult()
        result.to_room(
            room.id,
            "unread_status_update",
            {
                "room_id": room.id,
                "unread": _keyed(flags),
                "reader_id": ctx.user_id,
                "seen_messages": seen,
            },
        )
        result.to_user(ctx.user_id, "global_unread_update", {"total_unread": total})
        return result

    async def _on_delete_message(
        self, ctx: ConnectionContext, event: DeleteMessageEvent
    ) -> DispatchResult:
        async with session_scope(self._session_factory) as session:
            uow = _UnitOfWork(session, self._config)
            room = await uow.registry.get_room_for_participant(
                event.room_id, ctx.user_id
            )
            tail = await uow.store.delete_own(room.id, event.message_id, ctx.user_id)
            await uow.registry.refresh_last_message(room, tail)
            flags = unread_flags(room)
            totals = {
                pid: await uow.registry.global_unread_count(pid)
                for pid in room.participant_ids
            }

        result = DispatchResult()
        result.to_room(
            room.id,
            "message_deleted",
            {
                "room_id": room.id,
                "message_id": event.message_id,
                "last_message": room.last_message,
                "last_message_sender_id": room.last_message_sender_id,
                "last_message_at": _iso(room.last_message_at),
            },
        )
        result.to_room(
            room.id,
            "unread_status_update",
            {"room_id": room.id, "unread": _keyed(flags)},
        )
        for pid in room.participant_ids:
            result.to_user(pid, "room_updated", _room_snapshot(room, flags[pid]))
            result.to_user(pid, "global_unread_update", {"total_unread": totals[pid]})
        return result

    async def _on_typing(
        self, ctx: ConnectionContext, event: TypingEvent
    ) -> DispatchResult:
        if not self._presence.is_in_room(ctx.user_id, event.room_id):
            raise NotParticipantError()
        result = DispatchResult()
        result.to_room(
            event.room_id,
            "user_typing",
            {
                "room_id": event.room_id,
                "user_id": ctx.user_id,
                "is_typing": event.is_typing,
            },
            exclude_connection=ctx.connection_id,
        )
        return result

    async def _on_leave(self, ctx: ConnectionContext, event: LeaveEvent) -> DispatchResult:
        result = DispatchResult(unsubscribe=[event.room_id])
        if self._presence.leave_room(ctx.user_id, event.room_id):
            self._announce_departure(result, event.room_id, ctx.user_id)
            self._forget_room_if_idle(event.room_id)
        return result

    async def _on_get_presence(
        self, ctx: ConnectionContext, event: GetPresenceEvent
    ) -> DispatchResult:
        async with session_scope(self._session_factory) as session:
            uow = _UnitOfWork(session, self._config)
            room = await uow.registry.get_room_for_participant(
                event.room_id, ctx.user_id
            )

        result = DispatchResult()
        result.to_connection(
            ctx.connection_id,
            "presence_snapshot",
            {
                "room_id": room.id,
                "presence": _keyed(
                    self._presence.status_for(room.participant_ids, ctx.user_id)
                ),
            },
        )
        return result

    # --- Server-initiated broadcasts ---

    async def broadcast_room_closed(self, room_id: str, status: str) -> None:
        """Tell joined connections a room was cancelled or expired."""
        result = DispatchResult()
        result.to_room(room_id, "room_closed", {"room_id": room_id, "status": status})
        for outbound in result.outbound:
            await self._connections.deliver(outbound)

    # --- Push notifications ---

    def _schedule_pushes(self, pushes: list[PushMessage]) -> None:
        if not pushes:
            return
        task = asyncio.create_task(self._send_pushes(pushes))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_pushes(self, pushes: list[PushMessage]) -> None:
        try:
            await self._push_service.send(pushes)
        except Exception:
            logger.exception("Push notification delivery failed", count=len(pushes))

    async def drain(self) -> None:
        """Wait for scheduled push deliveries to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._push_service.aclose()
