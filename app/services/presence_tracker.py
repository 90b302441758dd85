"""In-process presence map: who is connected and which rooms they joined.

State is per process and is lost on restart. A multi-instance deployment
would need this backed by a shared broker.
"""

from collections.abc import Iterable

import structlog

logger = structlog.get_logger()


class PresenceTracker:
    """Tracks live connections and joined rooms per user."""

    def __init__(self) -> None:
        self._connections: dict[int, str] = {}
        self._users_by_connection: dict[str, int] = {}
        self._rooms: dict[int, set[str]] = {}

    def mark_online(self, user_id: int, connection_id: str) -> None:
        """Record the user's live connection, replacing a stale one."""
        previous = self._connections.get(user_id)
        if previous == connection_id:
            return
        if previous is not None:
            self._users_by_connection.pop(previous, None)
            logger.debug(
                "Replacing stale connection",
                user_id=user_id,
                previous_connection_id=previous,
                connection_id=connection_id,
            )
        self._connections[user_id] = connection_id
        self._users_by_connection[connection_id] = user_id
        self._rooms[user_id] = set()

    def join_room(self, user_id: int, connection_id: str, room_id: str) -> None:
        """Add a room to the user's joined set, marking them online."""
        self.mark_online(user_id, connection_id)
        self._rooms[user_id].add(room_id)

    def leave_room(self, user_id: int, room_id: str) -> bool:
        """Drop a room from the user's joined set. Returns False if absent."""
        rooms = self._rooms.get(user_id)
        if not rooms or room_id not in rooms:
            return False
        rooms.discard(room_id)
        return True

    def disconnect(self, connection_id: str) -> tuple[int, set[str]] | None:
        """Forget a connection. Returns the user and the rooms they had joined.

        Returns None when the connection was already superseded by a newer one.
        """
        user_id = self._users_by_connection.pop(connection_id, None)
        if user_id is None or self._connections.get(user_id) != connection_id:
            return None
        del self._connections[user_id]
        return user_id, self._rooms.pop(user_id, set())

    def is_online(self, user_id: int) -> bool:
        return user_id in self._connections

    def is_in_room(self, user_id: int, room_id: str) -> bool:
        return room_id in self._rooms.get(user_id, ())

    def rooms_of(self, user_id: int) -> frozenset[str]:
        return frozenset(self._rooms.get(user_id, ()))

    def members_of(self, room_id: str) -> set[int]:
        """Users currently joined to a room."""
        return {uid for uid, rooms in self._rooms.items() if room_id in rooms}

    def status_for(
        self, participant_ids: Iterable[int], viewer_id: int | None = None
    ) -> dict[int, bool]:
        """Online flag per participant.

        The viewer is always reported online since they are asking from a
        live connection.
        """
        return {
            pid: pid == viewer_id or self.is_online(pid) for pid in participant_ids
        }
