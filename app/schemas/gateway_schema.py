"""WebSocket gateway event schemas.

Clients send ``{"event": <name>, ...fields}``; the server answers with
``{"event": <name>, "data": {...}}``. The acting user is always the
authenticated connection identity, never a field of the event.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.schemas.message_schema import FreetextContent, OptionContent


class _RoomEvent(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    room_id: str = Field(..., min_length=1, max_length=36)


class JoinEvent(_RoomEvent):
    event: Literal["join"]


class SendEvent(_RoomEvent):
    event: Literal["send"]
    message_type: Literal["option", "freetext"]
    option_id: str | None = None
    option_label: str | None = None
    next_state: str | None = None
    text: str | None = None

    def to_content(self) -> OptionContent | FreetextContent:
        """Convert the flat wire shape into the tagged message content."""
        if self.message_type == "option":
            return OptionContent(
                option_id=self.option_id or "",
                option_label=self.option_label or "",
                next_state=self.next_state or "",
            )
        return FreetextContent(text=self.text or "")


class MarkReadEvent(_RoomEvent):
    event: Literal["mark_read"]


class DeleteMessageEvent(_RoomEvent):
    event: Literal["delete_message"]
    message_id: str = Field(..., min_length=1, max_length=36)


class TypingEvent(_RoomEvent):
    event: Literal["typing"]
    is_typing: bool


class LeaveEvent(_RoomEvent):
    event: Literal["leave"]


class GetPresenceEvent(_RoomEvent):
    event: Literal["get_presence"]


ClientEvent = Annotated[
    JoinEvent
    | SendEvent
    | MarkReadEvent
    | DeleteMessageEvent
    | TypingEvent
    | LeaveEvent
    | GetPresenceEvent,
    Field(discriminator="event"),
]

client_event_adapter: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)

ServerEventName = Literal[
    "initial_data",
    "user_joined",
    "user_left",
    "presence_update",
    "presence_snapshot",
    "new_message",
    "unread_status_update",
    "global_unread_update",
    "room_updated",
    "room_closed",
    "message_deleted",
    "user_typing",
    "error",
]


class ServerEvent(BaseModel):
    """Envelope for every server-to-client frame."""

    event: ServerEventName
    data: dict[str, Any]
