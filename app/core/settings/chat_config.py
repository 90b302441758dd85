"""Chat subsystem configuration."""

from datetime import timedelta

from pydantic import BaseModel


class ChatConfig(BaseModel, frozen=True):
    """Limits and retention windows for chat rooms and messages."""

    message_rate_limit: str
    max_text_length: int
    pending_room_ttl_hours: int
    cleanup_interval_hours: int
    soft_delete_grace_days: int
    notification_preview_length: int

    @property
    def pending_room_ttl(self) -> timedelta:
        """Age after which message-less pending rooms are swept."""
        return timedelta(hours=self.pending_room_ttl_hours)

    @property
    def soft_delete_grace(self) -> timedelta:
        """Window between soft delete and permanent purge."""
        return timedelta(days=self.soft_delete_grace_days)
