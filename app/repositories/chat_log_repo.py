"""Chat log repository for message log database operations."""

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.chat_log import ChatLog
from app.models.chat_message import ChatMessage


class ChatLogRepository:
    """Encapsulates per-room log and message queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_log(self, room_id: str) -> ChatLog | None:
        """Find the conversation log row of a room."""
        result = await self._session.execute(
            select(ChatLog).where(ChatLog.room_id == room_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create_log(self, room_id: str) -> ChatLog:
        """Return the room's log, creating it on first use."""
        log = await self.find_log(room_id)
        if log is not None:
            return log
        log = ChatLog(room_id=room_id)
        self._session.add(log)
        await self._session.flush()
        await self._session.refresh(log)
        return log

    async def create_message(self, message: ChatMessage) -> ChatMessage:
        """Append a message to the log."""
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def find_messages(self, room_id: str) -> list[ChatMessage]:
        """Retrieve all messages of a room in append order."""
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.room_id == room_id)
            .order_by(ChatMessage.id.asc())
        )
        return list(result.scalars().all())

    async def find_message(self, room_id: str, message_id: str) -> ChatMessage | None:
        """Find one message of a room by its public id."""
        result = await self._session.execute(
            select(ChatMessage).where(
                and_(
                    ChatMessage.room_id == room_id,
                    ChatMessage.message_id == message_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def find_last_message(self, room_id: str) -> ChatMessage | None:
        """Return the tail of the room's log."""
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.room_id == room_id)
            .order_by(ChatMessage.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def delete_message(self, message: ChatMessage) -> None:
        """Hard-delete a single message."""
        await self._session.delete(message)
        await self._session.flush()

    async def mark_seen(self, room_id: str, reader_id: int) -> int:
        """Flip messages from other senders to ``seen``."""
        result = await self._session.execute(
            update(ChatMessage)
            .where(
                ChatMessage.room_id == room_id,
                ChatMessage.sender_id != reader_id,
                ChatMessage.status == "sent",
            )
            .values(status="seen")
            .execution_options(synchronize_session="fetch")
        )
        return int(result.rowcount or 0)

    async def delete_for_rooms(self, room_ids: list[str]) -> int:
        """Hard-delete logs and messages of the given rooms.

        Returns the number of deleted messages.
        """
        if not room_ids:
            return 0
        result = await self._session.execute(
            delete(ChatMessage)
            .where(ChatMessage.room_id.in_(room_ids))
            .execution_options(synchronize_session="fetch")
        )
        await self._session.execute(
            delete(ChatLog)
            .where(ChatLog.room_id.in_(room_ids))
            .execution_options(synchronize_session="fetch")
        )
        return int(result.rowcount or 0)
