"""Decides which participants get a push notification for a new message."""

from app.models.chat_room import ChatRoom
from app.models.user import User
from app.schemas.message_schema import FreetextContent, OptionContent
from app.schemas.notification_schema import PushMessage
from app.services.presence_tracker import PresenceTracker

DEFAULT_TITLE = "New message"
_ELLIPSIS = "..."


def truncate_preview(text: str, max_length: int) -> str:
    """Shorten text to ``max_length`` characters, ending with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(_ELLIPSIS)] + _ELLIPSIS


class NotificationDispatcher:
    """Push decision layer. Delivery itself is done by PushService."""

    def __init__(self, presence: PresenceTracker, preview_length: int = 100) -> None:
        self._presence = presence
        self._preview_length = preview_length

    def should_notify(self, participant: User, room: ChatRoom, sender_id: int) -> bool:
        """Notify only when the participant is not the sender, is not in the
        room right now, and has chat notifications enabled."""
        if participant.id == sender_id:
            return False
        if self._presence.is_in_room(participant.id, room.id):
            return False
        return participant.notify_enabled and participant.notify_chat_messages

    def build_chat_push(
        self,
        recipient: User,
        sender_id: int,
        sender_name: str | None,
        room: ChatRoom,
        content: OptionContent | FreetextContent,
        badge: int | None = None,
    ) -> PushMessage | None:
        """Build the push for one recipient, or None when they have no token."""
        if not recipient.expo_push_token:
            return None

        body = (
            content.option_label if isinstance(content, OptionContent) else content.text
        )
        title = sender_name or DEFAULT_TITLE
        return PushMessage(
            to=recipient.expo_push_token,
            title=title,
            body=truncate_preview(body, self._preview_length),
            data={
                "type": "chat_message",
                "room_id": room.id,
                "listing_id": room.listing_id,
                "sender_id": sender_id,
                "sender_name": title,
            },
            sound="default" if recipient.notify_sound else None,
            badge=badge,
        )
