"""Chat message content and response schemas."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.chat_message import ChatMessage

SenderRole = Literal["owner", "inquirer"]


class OptionContent(BaseModel):
    """Menu option selection that moves the guided conversation forward."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["option"] = "option"
    option_id: str
    option_label: str
    next_state: str


class FreetextContent(BaseModel):
    """User-typed text; never changes the conversation state."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["freetext"] = "freetext"
    text: str


MessageContent = Annotated[
    OptionContent | FreetextContent, Field(discriminator="kind")
]


def content_of(row: ChatMessage) -> OptionContent | FreetextContent:
    """Rebuild the tagged content from a stored message row."""
    if row.message_type == "option":
        return OptionContent(
            option_id=row.option_id or "",
            option_label=row.option_label or "",
            next_state=row.next_state or "",
        )
    return FreetextContent(text=row.text or "")


def snapshot_of(row: ChatMessage) -> str:
    """Text shown as the room's last message preview."""
    content = content_of(row)
    if isinstance(content, OptionContent):
        return content.option_label
    return content.text


class MessageResponse(BaseModel):
    """Single message as delivered to clients."""

    model_config = ConfigDict(frozen=True)

    message_id: str
    room_id: str
    sender_id: int
    sender_role: SenderRole
    content: MessageContent
    state_after: str
    status: Literal["sent", "seen"]
    created_at: datetime

    @classmethod
    def from_row(cls, row: ChatMessage) -> "MessageResponse":
        return cls(
            message_id=row.message_id,
            room_id=row.room_id,
            sender_id=row.sender_id,
            sender_role=row.sender_role,  # type: ignore[arg-type]
            content=content_of(row),
            state_after=row.state_after,
            status=row.status,  # type: ignore[arg-type]
            created_at=row.created_at,
        )


class RoomHistory(BaseModel):
    """Full ordered log of a room plus its conversation state."""

    model_config = ConfigDict(frozen=True)

    room_id: str
    current_state: str
    conversation_mode: Literal["guided", "freetext"]
    messages: list[MessageResponse]
