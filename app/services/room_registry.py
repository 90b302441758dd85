"""Room lifecycle service: creation, activation, cancellation and read state."""

import base64
import json
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AppException,
    ChatRoomNotFoundError,
    InvalidRequestError,
    NotParticipantError,
    SelfChatError,
)
from app.models.chat_message import ChatMessage
from app.models.chat_room import ChatRoom
from app.repositories.chat_room_repo import ChatRoomRepository
from app.schemas.chat_room_schema import (
    ChatRoomListResponse,
    ChatRoomSummary,
    RoomStatsResponse,
)
from app.schemas.message_schema import SenderRole, snapshot_of

logger = structlog.get_logger()

RECENT_ACTIVITY_WINDOW = timedelta(days=7)
_CLOSED_STATUSES = frozenset({"cancelled", "expired"})


def encode_cursor(updated_at: datetime, room_id: str) -> str:
    """Encode pagination cursor as base64url JSON."""
    payload = {"u": updated_at.isoformat(), "i": room_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Decode pagination cursor. Raises AppException on invalid input."""
    try:
        raw = base64.urlsafe_b64decode(cursor.encode())
        data = json.loads(raw)
        updated_at = datetime.fromisoformat(data["u"])
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=UTC)
        room_id = str(data["i"])
        return updated_at, room_id
    except Exception as exc:
        raise AppException(
            message=f"Invalid cursor: {exc}",
            code="INVALID_CURSOR",
            status_code=400,
        ) from exc


def role_of(room: ChatRoom, user_id: int) -> SenderRole:
    """Role of a participant, taken from the room's explicit owner field."""
    if user_id == room.owner_id:
        return "owner"
    if user_id == room.inquirer_id:
        return "inquirer"
    raise NotParticipantError()


def unread_flags(room: ChatRoom) -> dict[int, bool]:
    """Per-participant unread flag for the room's latest message.

    A participant is unread when a latest message exists, they did not send
    it, and they are absent from ``read_by``.
    """
    read_by = set(room.read_by or [])
    flags: dict[int, bool] = {}
    for pid in room.participant_ids:
        flags[pid] = (
            room.has_messages
            and room.last_message_sender_id is not None
            and pid != room.last_message_sender_id
            and pid not in read_by
        )
    return flags


class RoomRegistry:
    """Owns the chat room entity and its lifecycle transitions."""

    def __init__(self, room_repo: ChatRoomRepository, session: AsyncSession) -> None:
        self._room_repo = room_repo
        self._session = session

    async def find_or_create_room(
        self,
        listing_id: int,
        owner_id: int,
        inquirer_id: int,
        display_name: str,
    ) -> tuple[ChatRoom, bool]:
        """Return the open room for the triple, creating a pending one if absent.

        A concurrent creator winning the unique ``open_key`` race is resolved
        by refetching its room.
        """
        if owner_id == inquirer_id:
            raise SelfChatError()

        existing = await self._room_repo.find_open_room(
            listing_id, owner_id, inquirer_id
        )
        if existing is not None:
            return existing, False

        try:
            room = await self._room_repo.create_room(
                listing_id=listing_id,
                owner_id=owner_id,
                inquirer_id=inquirer_id,
                name=display_name,
            )
        except IntegrityError:
            await self._session.rollback()
            existing = await self._room_repo.find_open_room(
                listing_id, owner_id, inquirer_id
            )
            if existing is None:
                raise
            logger.info(
                "Chat room creation raced, returning existing room",
                room_id=existing.id,
                listing_id=listing_id,
            )
            return existing, False

        logger.info(
            "Chat room created",
            room_id=room.id,
            listing_id=listing_id,
            owner_id=owner_id,
            inquirer_id=inquirer_id,
        )
        return room, True

    async def check_room(self, listing_id: int, inquirer_id: int) -> ChatRoom | None:
        """Return the caller's open room for a listing, if one exists."""
        return await self._room_repo.find_open_room_for_inquirer(
            listing_id, inquirer_id
        )

    async def get_room_for_participant(self, room_id: str, user_id: int) -> ChatRoom:
        """Load a live room and verify the user takes part in it."""
        room = await self._room_repo.find_by_id(room_id)
        if room is None or room.status == "cancelled" or room.is_deleted:
            raise ChatRoomNotFoundError()
        if not room.is_participant(user_id):
            raise NotParticipantError()
        return room

    async def activate_on_first_message(self, room_id: str) -> ChatRoom:
        """Move a pending room to active. Repeated calls leave it unchanged."""
        room = await self._room_repo.find_by_id(room_id)
        if room is None:
            raise ChatRoomNotFoundError()
        if room.status in _CLOSED_STATUSES:
            raise InvalidRequestError(
                message="This chat room is closed", code="ROOM_CLOSED"
            )
        if room.status == "active":
            return room

        now = datetime.now(UTC)
        room.status = "active"
        room.has_messages = True
        room.first_message_at = now
        room.updated_at = now
        await self._session.flush()
        logger.info("Chat room activated", room_id=room.id)
        return room

    async def cancel(self, room_id: str, requester_id: int) -> ChatRoom:
        """Cancel a room on behalf of one of its participants."""
        room = await self._room_repo.find_by_id(room_id)
        if room is None or not room.is_participant(requester_id):
            raise ChatRoomNotFoundError()
        if room.status == "cancelled":
            return room

        room.status = "cancelled"
        room.open_key = None
        room.updated_at = datetime.now(UTC)
        await self._session.flush()
        logger.info("Chat room cancelled", room_id=room.id, requester_id=requester_id)
        return room

    async def mark_read(self, room: ChatRoom, user_id: int) -> bool:
        """Add the user to ``read_by``. Returns False when already present.

        Reading is not activity, so the room keeps its place in room lists.
        """
        read_by = list(room.read_by or [])
        if user_id in read_by:
            return False
        read_by.append(user_id)
        room.read_by = read_by
        await self._session.flush()
        return True

    async def record_message(self, room: ChatRoom, message: ChatMessage) -> None:
        """Point the room's latest-message snapshot at a freshly appended message."""
        room.last_message = snapshot_of(message)
        room.last_message_sender_id = message.sender_id
        room.last_message_at = message.created_at
        room.read_by = [message.sender_id]
        room.updated_at = message.created_at
        await self._session.flush()

    async def refresh_last_message(
        self, room: ChatRoom, tail: ChatMessage | None
    ) -> None:
        """Recompute the snapshot after a deletion from the new log tail."""
        if tail is None:
            room.last_message = None
            room.last_message_sender_id = None
            room.last_message_at = None
        else:
            room.last_message = snapshot_of(tail)
            room.last_message_sender_id = tail.sender_id
            room.last_message_at = tail.created_at
        await self._session.flush()

    async def list_rooms_for_user(
        self,
        user_id: int,
        limit: int = 20,
        cursor: str | None = None,
    ) -> ChatRoomListResponse:
        """Return a page of the user's rooms, most recently active first."""
        cursor_updated_at: datetime | None = None
        cursor_id: str | None = None

        if cursor is not None:
            cursor_updated_at, cursor_id = decode_cursor(cursor)

        rows = await self._room_repo.find_rooms_by_user(
            user_id=user_id,
            limit=limit + 1,
            cursor_updated_at=cursor_updated_at,
            cursor_id=cursor_id,
        )

        has_next = len(rows) > limit
        page_rows = rows[:limit]

        next_cursor: str | None = None
        if has_next and page_rows:
            last = page_rows[-1]
            next_cursor = encode_cursor(last.updated_at, last.id)

        return ChatRoomListResponse(
            rooms=[self.summarize(room, user_id) for room in page_rows],
            next_cursor=next_cursor,
            has_next=has_next,
            total_unread=await self.global_unread_count(user_id),
        )

    async def room_stats(
        self, user_id: int, now: datetime | None = None
    ) -> RoomStatsResponse:
        """Room counts by status and rooms active in the last week."""
        now = now or datetime.now(UTC)
        by_status = await self._room_repo.count_by_status(user_id)
        active = await self._room_repo.count_active_since(
            user_id, now - RECENT_ACTIVITY_WINDOW
        )
        return RoomStatsResponse(
            total_rooms=sum(by_status.values()),
            active_conversations=active,
            by_status=by_status,
        )

    async def global_unread_count(self, user_id: int) -> int:
        """Number of the user's rooms with an outstanding unread flag."""
        rooms = await self._room_repo.find_all_rooms_by_user(user_id)
        return sum(1 for room in rooms if unread_flags(room).get(user_id, False))

    @staticmethod
    def summarize(room: ChatRoom, user_id: int) -> ChatRoomSummary:
        """Room as seen by one participant."""
        return ChatRoomSummary(
            id=room.id,
            listing_id=room.listing_id,
            name=room.name,
            owner_id=room.owner_id,
            inquirer_id=room.inquirer_id,
            status=room.status,  # type: ignore[arg-type]
            has_messages=room.has_messages,
            last_message=room.last_message,
            last_message_sender_id=room.last_message_sender_id,
            last_message_at=room.last_message_at,
            read_by=list(room.read_by or []),
            first_message_at=room.first_message_at,
            created_at=room.created_at,
            updated_at=room.updated_at,
            role=role_of(room, user_id),
            unread=unread_flags(room)[user_id],
        )
