"""Chat room API schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

RoomStatus = Literal["pending", "active", "cancelled", "expired"]


class CreateRoomRequest(BaseModel):
    """Open (or reuse) the inquiry room for a listing."""

    listing_id: int = Field(..., ge=1)
    owner_id: int = Field(..., ge=1, description="Listing owner user id")
    listing_title: str | None = Field(default=None, max_length=255)

    @field_validator("listing_title")
    @classmethod
    def strip_markup(cls, v: str | None) -> str | None:
        if v is None:
            return None
        cleaned = v.strip().replace("<", "").replace(">", "")
        return cleaned or None


class CreateRoomResponse(BaseModel):
    """Result of find-or-create."""

    model_config = ConfigDict(frozen=True)

    room_id: str
    is_new: bool
    status: RoomStatus
    has_messages: bool


class CheckRoomResponse(BaseModel):
    """Whether the caller already has an open room for a listing."""

    model_config = ConfigDict(frozen=True)

    exists: bool
    room_id: str | None = None
    status: RoomStatus | None = None
    has_messages: bool | None = None


class ChatRoomSummary(BaseModel):
    """Chat room as seen by one of its participants."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    listing_id: int
    name: str
    owner_id: int
    inquirer_id: int
    status: RoomStatus
    has_messages: bool
    last_message: str | None = None
    last_message_sender_id: int | None = None
    last_message_at: datetime | None = None
    read_by: list[int] = Field(default_factory=list)
    first_message_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    role: Literal["owner", "inquirer"]
    unread: bool


class ChatRoomListResponse(BaseModel):
    """Paginated room list with cursor metadata."""

    model_config = ConfigDict(frozen=True)

    rooms: list[ChatRoomSummary]
    next_cursor: str | None = None
    has_next: bool = False
    total_unread: int = 0


class RoomStatsResponse(BaseModel):
    """Room counts for the current user."""

    model_config = ConfigDict(frozen=True)

    total_rooms: int
    active_conversations: int
    by_status: dict[str, int]


class CleanupReport(BaseModel):
    """Outcome of one cleanup run."""

    model_config = ConfigDict(frozen=True)

    swept_pending_rooms: int = 0
    purged_rooms: int = 0
    purged_messages: int = 0
    ran_at: datetime


class CleanupStatsResponse(BaseModel):
    """Rooms currently eligible for each cleanup path."""

    model_config = ConfigDict(frozen=True)

    stale_pending_rooms: int
    purgeable_rooms: int
    checked_at: datetime


class ExpireListingResponse(BaseModel):
    """Rooms expired because their listing was deleted."""

    model_config = ConfigDict(frozen=True)

    listing_id: int
    expired_rooms: int
