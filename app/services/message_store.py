"""Append-only per-room message log with guided conversation state."""

import structlog

from app.core.exceptions import (
    MessageNotFoundError,
    MessageValidationError,
    NotMessageSenderError,
)
from app.models.chat_log import INITIAL_STATE
from app.models.chat_message import ChatMessage
from app.repositories.chat_log_repo import ChatLogRepository
from app.schemas.message_schema import (
    FreetextContent,
    MessageResponse,
    OptionContent,
    RoomHistory,
    SenderRole,
)

logger = structlog.get_logger()


class MessageStore:
    """Validates, appends and replays room messages."""

    def __init__(self, log_repo: ChatLogRepository, max_text_length: int = 500) -> None:
        self._log_repo = log_repo
        self._max_text_length = max_text_length

    def validate(
        self, content: OptionContent | FreetextContent
    ) -> OptionContent | FreetextContent:
        """Check a payload against its declared kind and return it normalized.

        Option messages need a non-empty id, label and next state. Free text
        is trimmed and must keep between 1 and ``max_text_length`` characters.
        """
        if isinstance(content, OptionContent):
            option_id = content.option_id.strip()
            option_label = content.option_label.strip()
            next_state = content.next_state.strip()
            if not option_id or not option_label:
                raise MessageValidationError(
                    "Option messages require an option id and label"
                )
            if not next_state:
                raise MessageValidationError("Option messages require a next state")
            return OptionContent(
                option_id=option_id, option_label=option_label, next_state=next_state
            )

        text = content.text.strip()
        if not text:
            raise MessageValidationError("Message text must not be empty")
        if len(text) > self._max_text_length:
            raise MessageValidationError(
                f"Message text must be at most {self._max_text_length} characters"
            )
        return FreetextContent(text=text)

    async def append(
        self,
        room_id: str,
        sender_id: int,
        sender_role: SenderRole,
        content: OptionContent | FreetextContent,
    ) -> ChatMessage:
        """Validate and append a message, advancing the conversation state."""
        content = self.validate(content)
        log = await self._log_repo.get_or_create_log(room_id)

        if isinstance(content, OptionContent):
            log.current_state = content.next_state
            message = ChatMessage(
                room_id=room_id,
                sender_id=sender_id,
                sender_role=sender_role,
                message_type="option",
                option_id=content.option_id,
                option_label=content.option_label,
                next_state=content.next_state,
                state_after=log.current_state,
            )
        else:
            log.conversation_mode = "freetext"
            message = ChatMessage(
                room_id=room_id,
                sender_id=sender_id,
                sender_role=sender_role,
                message_type="freetext",
                text=content.text,
                state_after=log.current_state,
            )

        return await self._log_repo.create_message(message)

    async def history(self, room_id: str) -> RoomHistory:
        """Full ordered log of a room with its current state."""
        log = await self._log_repo.find_log(room_id)
        messages = await self._log_repo.find_messages(room_id)
        return RoomHistory(
            room_id=room_id,
            current_state=log.current_state if log else INITIAL_STATE,
            conversation_mode=log.conversation_mode if log else "guided",  # type: ignore[arg-type]
            messages=[MessageResponse.from_row(m) for m in messages],
        )

    async def delete_own(
        self, room_id: str, message_id: str, requester_id: int
    ) -> ChatMessage | None:
        """Remove the requester's own message and return the new log tail."""
        message = await self._log_repo.find_message(room_id, message_id)
        if message is None:
            raise MessageNotFoundError()
        if message.sender_id != requester_id:
            raise NotMessageSenderError()

        await self._log_repo.delete_message(message)
        logger.info("Chat message deleted", room_id=room_id, message_id=message_id)
        return await self._log_repo.find_last_message(room_id)

    async def mark_seen(self, room_id: str, reader_id: int) -> int:
        """Flip messages sent by others to ``seen``."""
        return await self._log_repo.mark_seen(room_id, reader_id)

    async def purge_rooms(self, room_ids: list[str]) -> int:
        """Delete the logs of the given rooms. Returns removed message count."""
        return await self._log_repo.delete_for_rooms(room_ids)
