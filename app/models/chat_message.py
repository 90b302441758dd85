"""Chat message database model."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class ChatMessage(Base):
    """One entry in a room's append-only log.

    ``id`` gives append order; ``message_id`` is the stable public id.
    Option columns are set for ``option`` messages, ``text`` for ``freetext``.
    """

    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(
        String(36),
        unique=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )
    room_id: Mapped[str] = mapped_column(
        ForeignKey("chat_rooms.id"), nullable=False, index=True
    )
    sender_id: Mapped[int] = mapped_column(nullable=False)
    sender_role: Mapped[str] = mapped_column(String(20), nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    option_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    option_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    next_state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    state_after: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="sent")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
