"""Chat room database model."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


def make_open_key(listing_id: int, owner_id: int, inquirer_id: int) -> str:
    """Uniqueness key held by a room while it is not cancelled."""
    return f"{listing_id}:{owner_id}:{inquirer_id}"


class ChatRoom(Base):
    """Two-party conversation scoped to one listing.

    ``open_key`` is unique and cleared on cancellation, so at most one
    non-cancelled room exists per (listing, owner, inquirer).
    ``updated_at`` moves only on activity: messages and lifecycle changes.
    Read receipts leave it alone.
    """

    __tablename__ = "chat_rooms"
    __table_args__ = (
        Index("ix_chat_rooms_owner_id_updated_at", "owner_id", "updated_at"),
        Index("ix_chat_rooms_inquirer_id_updated_at", "inquirer_id", "updated_at"),
        Index("ix_chat_rooms_listing_id_status", "listing_id", "status"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    listing_id: Mapped[int] = mapped_column(nullable=False, index=True)
    owner_id: Mapped[int] = mapped_column(nullable=False)
    inquirer_id: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    open_key: Mapped[str | None] = mapped_column(
        String(100), unique=True, nullable=True
    )
    has_messages: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_sender_id: Mapped[int | None] = mapped_column(nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    read_by: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    first_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delete_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    @property
    def participant_ids(self) -> tuple[int, int]:
        """Owner and inquirer ids."""
        return (self.owner_id, self.inquirer_id)

    def is_participant(self, user_id: int) -> bool:
        """Check whether a user is one of the two participants."""
        return user_id in self.participant_ids
