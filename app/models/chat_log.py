"""Per-room conversation log database model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

INITIAL_STATE = "START"


class ChatLog(Base):
    """Conversation-level state of a room's message log.

    ``conversation_mode`` starts as ``guided`` and becomes ``freetext``
    once any free-text message has been posted.
    """

    __tablename__ = "chat_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    room_id: Mapped[str] = mapped_column(
        ForeignKey("chat_rooms.id"), unique=True, nullable=False, index=True
    )
    conversation_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default="guided"
    )
    current_state: Mapped[str] = mapped_column(
        String(100), nullable=False, default=INITIAL_STATE
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
