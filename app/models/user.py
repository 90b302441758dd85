"""User profile database model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class User(Base):
    """Marketplace user as seen by the chat service.

    Credentials live with the identity service; this row carries the
    display name, push token and notification preferences.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expo_push_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notify_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    notify_chat_messages: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    notify_sound: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_vibration: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
