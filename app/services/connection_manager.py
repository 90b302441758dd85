"""WebSocket connection registry and fan-out.

Connections are addressed three ways: directly by connection id, by room
(every connection subscribed to it) and by user (the personal channel,
every connection the user holds). Single event loop only.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from app.schemas.gateway_schema import ServerEventName
from app.schemas.notification_schema import PushMessage

logger = structlog.get_logger()

Target = Literal["connection", "room", "user"]


@dataclass(frozen=True)
class Outbound:
    """One server event addressed to a connection, a room or a user channel."""

    target: Target
    key: str
    event: ServerEventName
    data: dict[str, Any]
    exclude_connection: str | None = None


@dataclass
class DispatchResult:
    """Effects of handling one client event."""

    outbound: list[Outbound] = field(default_factory=list)
    pushes: list[PushMessage] = field(default_factory=list)
    subscribe: list[str] = field(default_factory=list)
    unsubscribe: list[str] = field(default_factory=list)

    def to_connection(
        self, connection_id: str, event: ServerEventName, data: dict[str, Any]
    ) -> None:
        self.outbound.append(Outbound("connection", connection_id, event, data))

    def to_room(
        self,
        room_id: str,
        event: ServerEventName,
        data: dict[str, Any],
        exclude_connection: str | None = None,
    ) -> None:
        self.outbound.append(
            Outbound("room", room_id, event, data, exclude_connection)
        )

    def to_user(self, user_id: int, event: ServerEventName, data: dict[str, Any]) -> None:
        self.outbound.append(Outbound("user", str(user_id), event, data))


class ConnectionManager:
    """Holds live sockets and their room subscriptions."""

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._connection_users: dict[str, int] = {}
        self._user_connections: dict[int, set[str]] = {}
        self._room_connections: dict[str, set[str]] = {}
        self._connection_rooms: dict[str, set[str]] = {}

    def register(self, connection_id: str, user_id: int, websocket: WebSocket) -> None:
        self._sockets[connection_id] = websocket
        self._connection_users[connection_id] = user_id
        self._user_connections.setdefault(user_id, set()).add(connection_id)
        self._connection_rooms[connection_id] = set()

    def unregister(self, connection_id: str) -> None:
        """Forget a connection and all of its subscriptions."""
        self._sockets.pop(connection_id, None)
        for room_id in self._connection_rooms.pop(connection_id, set()):
            self._discard(self._room_connections, room_id, connection_id)
        user_id = self._connection_users.pop(connection_id, None)
        if user_id is not None:
            self._discard(self._user_connections, user_id, connection_id)

    @staticmethod
    def _discard(index: dict[Any, set[str]], key: Any, connection_id: str) -> None:
        members = index.get(key)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del index[key]

    def subscribe(self, connection_id: str, room_id: str) -> None:
        if connection_id not in self._sockets:
            return
        self._room_connections.setdefault(room_id, set()).add(connection_id)
        self._connection_rooms[connection_id].add(room_id)

    def unsubscribe(self, connection_id: str, room_id: str) -> None:
        self._discard(self._room_connections, room_id, connection_id)
        rooms = self._connection_rooms.get(connection_id)
        if rooms is not None:
            rooms.discard(room_id)

    def room_connections(self, room_id: str) -> frozenset[str]:
        return frozenset(self._room_connections.get(room_id, ()))

    def user_connections(self, user_id: int) -> frozenset[str]:
        return frozenset(self._user_connections.get(user_id, ()))

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._sockets

    def connection_count(self) -> int:
        return len(self._sockets)

    def _resolve(self, outbound: Outbound) -> Iterable[str]:
        if outbound.target == "connection":
            recipients: Iterable[str] = (outbound.key,)
        elif outbound.target == "room":
            recipients = self._room_connections.get(outbound.key, ())
        else:
            recipients = self._user_connections.get(int(outbound.key), ())
        return [c for c in recipients if c != outbound.exclude_connection]

    async def _safe_send(self, connection_id: str, frame: dict[str, Any]) -> bool:
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(frame)
            return True
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.debug(
                "Failed to send to connection",
                connection_id=connection_id,
                error=str(exc),
            )
            return False

    async def deliver(self, outbound: Outbound) -> int:
        """Send one event to every resolved connection concurrently."""
        frame = {"event": outbound.event, "data": outbound.data}
        recipients = list(self._resolve(outbound))
        if not recipients:
            return 0
        results = await asyncio.gather(
            *[self._safe_send(c, frame) for c in recipients]
        )
        return sum(1 for ok in results if ok)

    async def evict(self, connection_id: str, code: int) -> bool:
        """Unregister a connection, then close its socket with ``code``."""
        websocket = self._sockets.get(connection_id)
        self.unregister(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.close(code=code)
            return True
        except (RuntimeError, OSError) as exc:
            logger.debug(
                "Failed to close connection",
                connection_id=connection_id,
                error=str(exc),
            )
            return False

    async def send(
        self, connection_id: str, event: ServerEventName, data: dict[str, Any]
    ) -> bool:
        """Send one event to a single connection."""
        return await self._safe_send(connection_id, {"event": event, "data": data})

    async def apply(self, connection_id: str, result: DispatchResult) -> None:
        """Apply subscription changes, then deliver outbound events in order."""
        for room_id in result.subscribe:
            self.subscribe(connection_id, room_id)
        for room_id in result.unsubscribe:
            self.unsubscribe(connection_id, room_id)
        for outbound in result.outbound:
            await self.deliver(outbound)
