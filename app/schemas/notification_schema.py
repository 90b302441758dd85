"""Push notification schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class PushMessage(BaseModel):
    """One message for the Expo push API."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    to: str
    title: str
    body: str
    data: dict[str, Any] = Field(default_factory=dict)
    sound: str | None = "default"
    badge: int | None = None
    priority: Literal["default", "normal", "high"] = "high"
    channel_id: str = Field(default="chat-messages", alias="channelId")


class PushTicket(BaseModel):
    """Per-message delivery ticket returned by the push API."""

    model_config = ConfigDict(frozen=True)

    status: Literal["ok", "error"]
    id: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None


class PushTokenRequest(BaseModel):
    """Register the device's Expo push token."""

    push_token: str = Field(..., min_length=1, max_length=255)


class NotificationSettings(BaseModel):
    """User notification preferences."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    enabled: bool = Field(default=True, validation_alias="notify_enabled")
    chat_messages: bool = Field(default=True, validation_alias="notify_chat_messages")
    sound: bool = Field(default=True, validation_alias="notify_sound")
    vibration: bool = Field(default=True, validation_alias="notify_vibration")


class NotificationSettingsUpdate(BaseModel):
    """Partial update of notification preferences."""

    enabled: bool | None = None
    chat_messages: bool | None = None
    sound: bool | None = None
    vibration: bool | None = None
