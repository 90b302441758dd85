"""Tests for ChatGateway event handling."""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from app.models.chat_room import ChatRoom
from app.schemas.notification_schema import PushMessage
from app.services.chat_gateway import ChatGateway, ConnectionContext
from tests.support import (
    FakeClock,
    FakeSocket,
    seed_room,
    seed_user,
    test_session_factory,
)

OWNER = ConnectionContext(connection_id="c-owner", user_id=1)
INQUIRER = ConnectionContext(connection_id="c-inquirer", user_id=2)
OUTSIDER = ConnectionContext(connection_id="c-outsider", user_id=3)


def _send(room_id: str, text: str) -> dict[str, Any]:
    return {
        "event": "send",
        "room_id": room_id,
        "message_type": "freetext",
        "text": text,
    }


async def _connect(gateway: ChatGateway, ctx: ConnectionContext) -> FakeSocket:
    socket = FakeSocket()
    await gateway.connect(ctx, socket)  # type: ignore[arg-type]
    return socket


@pytest.fixture
async def room() -> ChatRoom:
    await seed_user(1, username="olivia", push_token="ExponentPushToken[owner]")
    await seed_user(2, username="ivan", push_token="ExponentPushToken[inquirer]")
    return await seed_room(listing_id=100, owner_id=1, inquirer_id=2)


class TestConversationFlow:
    """Join, send, read and push across two participants."""

    async def test_full_conversation(
        self, gateway: ChatGateway, room: ChatRoom, mock_push_service: AsyncMock
    ) -> None:
        owner_ws = await _connect(gateway, OWNER)
        inquirer_ws = await _connect(gateway, INQUIRER)

        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})
        assert inquirer_ws.names() == ["initial_data", "presence_update"]
        initial = inquirer_ws.events("initial_data")[0]
        assert initial["status"] == "pending"
        assert initial["role"] == "inquirer"
        assert initial["messages"] == []
        assert initial["current_state"] == "START"
        assert initial["presence"] == {"1": True, "2": True}
        inquirer_ws.clear()

        # first message activates the room and pushes to the absent owner
        await gateway.handle(INQUIRER, _send(room.id, "  Hello there  "))
        await gateway.drain()

        assert inquirer_ws.names() == [
            "new_message",
            "unread_status_update",
            "room_updated",
            "global_unread_update",
        ]
        message = inquirer_ws.events("new_message")[0]["message"]
        assert message["content"] == {"kind": "freetext", "text": "Hello there"}
        assert message["sender_role"] == "inquirer"
        assert message["state_after"] == "START"
        assert inquirer_ws.events("unread_status_update")[0]["unread"] == {
            "1": True,
            "2": False,
        }

        assert owner_ws.names() == ["room_updated", "global_unread_update"]
        updated = owner_ws.events("room_updated")[0]
        assert updated["status"] == "active"
        assert updated["unread"] is True
        assert updated["last_message"] == "Hello there"
        assert owner_ws.events("global_unread_update") == [{"total_unread": 1}]

        mock_push_service.send.assert_awaited_once()
        pushes: list[PushMessage] = mock_push_service.send.await_args.args[0]
        assert len(pushes) == 1
        assert pushes[0].to == "ExponentPushToken[owner]"
        assert pushes[0].title == "ivan"
        assert pushes[0].body == "Hello there"
        assert pushes[0].badge == 1

        owner_ws.clear()
        inquirer_ws.clear()

        await gateway.handle(OWNER, {"event": "join", "room_id": room.id})
        joined = inquirer_ws.events("user_joined")
        assert joined == [{"room_id": room.id, "user_id": 1, "role": "owner"}]
        owner_initial = owner_ws.events("initial_data")[0]
        assert owner_initial["status"] == "active"
        assert len(owner_initial["messages"]) == 1
        assert owner_initial["unread"] == {"1": True, "2": False}
        assert owner_ws.events("user_joined") == []

        owner_ws.clear()
        inquirer_ws.clear()

        await gateway.handle(OWNER, {"event": "mark_read", "room_id": room.id})
        read_update = inquirer_ws.events("unread_status_update")[0]
        assert read_update["unread"] == {"1": False, "2": False}
        assert read_update["reader_id"] == 1
        assert read_update["seen_messages"] == 1
        assert owner_ws.events("global_unread_update") == [{"total_unread": 0}]

        # both participants are in the room, so no further push
        await gateway.handle(OWNER, _send(room.id, "Hi, it is available"))
        await gateway.drain()
        assert mock_push_service.send.await_count == 1

        async with test_session_factory() as session:
            stored = await session.get(ChatRoom, room.id)
        assert stored is not None
        assert stored.status == "active"
        assert stored.last_message == "Hi, it is available"
        assert stored.last_message_sender_id == 1
        assert stored.read_by == [1]

    async def test_price_inquiry_lifecycle(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        await _connect(gateway, OWNER)
        inquirer_ws = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})

        await gateway.handle(
            INQUIRER,
            {
                "event": "send",
                "room_id": room.id,
                "message_type": "option",
                "option_id": "ask_price",
                "option_label": "What is the rent?",
                "next_state": "PRICE",
            },
        )
        async with test_session_factory() as session:
            stored = await session.get(ChatRoom, room.id)
            assert stored is not None
            assert stored.status == "active"
            assert stored.has_messages is True

        await gateway.handle(OWNER, _send(room.id, "₹15000"))
        async with test_session_factory() as session:
            stored = await session.get(ChatRoom, room.id)
            assert stored is not None
            assert stored.last_message == "₹15000"
            assert stored.read_by == [1]
        assert inquirer_ws.events("unread_status_update")[-1]["unread"] == {
            "1": False,
            "2": True,
        }

        await gateway.handle(INQUIRER, {"event": "mark_read", "room_id": room.id})
        assert inquirer_ws.events("unread_status_update")[-1]["unread"] == {
            "1": False,
            "2": False,
        }
        assert inquirer_ws.events("global_unread_update")[-1] == {"total_unread": 0}

    async def test_option_message_advances_state(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})
        await gateway.handle(
            INQUIRER,
            {
                "event": "send",
                "room_id": room.id,
                "message_type": "option",
                "option_id": "viewing",
                "option_label": "Book a viewing",
                "next_state": "ASK_DATE",
            },
        )
        message = socket.events("new_message")[0]["message"]
        assert message["content"]["option_label"] == "Book a viewing"
        assert message["state_after"] == "ASK_DATE"

    async def test_delete_own_message(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        owner_ws = await _connect(gateway, OWNER)
        inquirer_ws = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})
        await gateway.handle(OWNER, {"event": "join", "room_id": room.id})
        await gateway.handle(INQUIRER, _send(room.id, "first"))
        await gateway.handle(INQUIRER, _send(room.id, "second"))
        second_id = inquirer_ws.events("new_message")[1]["message"]["message_id"]

        await gateway.handle(
            OWNER,
            {"event": "delete_message", "room_id": room.id, "message_id": second_id},
        )
        assert owner_ws.events("error")[0]["code"] == "NOT_MESSAGE_SENDER"

        await gateway.handle(
            INQUIRER,
            {"event": "delete_message", "room_id": room.id, "message_id": second_id},
        )
        deleted = owner_ws.events("message_deleted")[0]
        assert deleted["message_id"] == second_id
        assert deleted["last_message"] == "first"
        assert deleted["last_message_sender_id"] == 2


class TestRejections:
    """Errors reach only the offending connection."""

    async def test_rate_limited(
        self, gateway: ChatGateway, room: ChatRoom, clock: FakeClock
    ) -> None:
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})
        for i in range(11):
            await gateway.handle(INQUIRER, _send(room.id, f"message {i}"))

        assert len(socket.events("new_message")) == 10
        errors = socket.events("error")
        assert len(errors) == 1
        assert errors[0]["code"] == "RATE_LIMITED"
        assert errors[0]["event"] == "send"

        clock.advance(61)
        await gateway.handle(INQUIRER, _send(room.id, "after the window"))
        assert len(socket.events("new_message")) == 11

    async def test_rejected_sends_do_not_use_rate_limit(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        own_room = await seed_room(listing_id=7, owner_id=1, inquirer_id=3)
        socket = await _connect(gateway, OUTSIDER)

        for i in range(11):
            await gateway.handle(OUTSIDER, _send(room.id, f"intrusion {i}"))
        codes = {e["code"] for e in socket.events("error")}
        assert codes == {"NOT_PARTICIPANT"}

        socket.clear()
        await gateway.handle(OUTSIDER, {"event": "join", "room_id": own_room.id})
        for i in range(10):
            await gateway.handle(OUTSIDER, _send(own_room.id, f"message {i}"))
        assert len(socket.events("new_message")) == 10
        assert socket.events("error") == []

    async def test_malformed_frames(self, gateway: ChatGateway, room: ChatRoom) -> None:
        owner_ws = await _connect(gateway, OWNER)
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(OWNER, {"event": "join", "room_id": room.id})
        owner_ws.clear()

        await gateway.handle(INQUIRER, "not json")
        await gateway.handle(INQUIRER, {"event": "dance", "room_id": room.id})
        await gateway.handle(INQUIRER, {"event": "send", "room_id": room.id})

        codes = [e["code"] for e in socket.events("error")]
        assert codes == ["VALIDATION_ERROR"] * 3
        assert owner_ws.frames == []

    async def test_invalid_text_not_stored(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, _send(room.id, "x" * 501))
        await gateway.handle(INQUIRER, _send(room.id, "   "))

        errors = socket.events("error")
        assert [e["code"] for e in errors] == ["VALIDATION_ERROR"] * 2
        async with test_session_factory() as session:
            stored = await session.get(ChatRoom, room.id)
        assert stored is not None
        assert stored.status == "pending"
        assert stored.has_messages is False

    async def test_outsider_cannot_join(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        socket = await _connect(gateway, OUTSIDER)
        await gateway.handle(OUTSIDER, {"event": "join", "room_id": room.id})
        assert socket.events("error")[0]["code"] == "NOT_PARTICIPANT"
        assert gateway.presence.is_in_room(3, room.id) is False

    async def test_cancelled_room_is_not_found(self, gateway: ChatGateway) -> None:
        cancelled = await seed_room(listing_id=7, status="cancelled")
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, _send(cancelled.id, "hello"))
        assert socket.events("error")[0]["code"] == "CHAT_ROOM_NOT_FOUND"

    async def test_expired_room_is_closed(self, gateway: ChatGateway) -> None:
        expired = await seed_room(listing_id=8, status="expired", has_messages=True)
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, _send(expired.id, "hello"))
        assert socket.events("error")[0]["code"] == "ROOM_CLOSED"

    async def test_typing_requires_join(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(
            INQUIRER, {"event": "typing", "room_id": room.id, "is_typing": True}
        )
        assert socket.events("error")[0]["code"] == "NOT_PARTICIPANT"

    async def test_unexpected_failure_is_internal_error(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        async def boom(*args: object) -> None:
            raise RuntimeError("database exploded")

        gateway._handlers["get_presence"] = boom  # type: ignore[assignment]
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, {"event": "get_presence", "room_id": room.id})
        error = socket.events("error")[0]
        assert error["code"] == "INTERNAL_ERROR"
        assert "exploded" not in error["message"]


class TestPresence:
    """Typing, leave, disconnect and presence snapshots."""

    async def test_typing_excludes_sender(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        owner_ws = await _connect(gateway, OWNER)
        inquirer_ws = await _connect(gateway, INQUIRER)
        await gateway.handle(OWNER, {"event": "join", "room_id": room.id})
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})
        owner_ws.clear()
        inquirer_ws.clear()

        await gateway.handle(
            OWNER, {"event": "typing", "room_id": room.id, "is_typing": True}
        )
        assert inquirer_ws.events("user_typing") == [
            {"room_id": room.id, "user_id": 1, "is_typing": True}
        ]
        assert owner_ws.frames == []

    async def test_leave_stops_room_events(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        owner_ws = await _connect(gateway, OWNER)
        inquirer_ws = await _connect(gateway, INQUIRER)
        await gateway.handle(OWNER, {"event": "join", "room_id": room.id})
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})
        owner_ws.clear()
        inquirer_ws.clear()

        await gateway.handle(INQUIRER, {"event": "leave", "room_id": room.id})
        assert owner_ws.events("user_left") == [{"room_id": room.id, "user_id": 2}]
        assert inquirer_ws.frames == []
        assert gateway.presence.is_in_room(2, room.id) is False

        await gateway.handle(
            OWNER, {"event": "typing", "room_id": room.id, "is_typing": True}
        )
        assert inquirer_ws.events("user_typing") == []

    async def test_disconnect_broadcasts_departure(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        owner_ws = await _connect(gateway, OWNER)
        await _connect(gateway, INQUIRER)
        await gateway.handle(OWNER, {"event": "join", "room_id": room.id})
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})
        owner_ws.clear()

        await gateway.disconnect(INQUIRER)

        assert owner_ws.names() == ["presence_update", "user_left"]
        assert owner_ws.events("presence_update")[0]["presence"] == {
            "1": True,
            "2": False,
        }
        assert gateway.presence.is_online(2) is False
        assert not gateway.connections.is_connected(INQUIRER.connection_id)

    async def test_reconnect_closes_previous_connection(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        owner_ws = await _connect(gateway, OWNER)
        first_ws = await _connect(gateway, INQUIRER)
        await gateway.handle(OWNER, {"event": "join", "room_id": room.id})
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})
        owner_ws.clear()

        second = ConnectionContext(connection_id="c-inquirer-2", user_id=2)
        second_ws = await _connect(gateway, second)

        assert first_ws.close_code == 4409
        assert not gateway.connections.is_connected(INQUIRER.connection_id)
        assert INQUIRER.connection_id not in gateway.connections.room_connections(
            room.id
        )
        assert gateway.presence.is_online(2) is True
        assert gateway.presence.is_in_room(2, room.id) is False
        assert owner_ws.names() == ["presence_update", "user_left"]

        # the closed socket's own teardown must not take the user offline
        await gateway.disconnect(INQUIRER)
        assert gateway.presence.is_online(2) is True

        await gateway.handle(second, {"event": "join", "room_id": room.id})
        owner_ws.clear()
        first_ws.clear()
        await gateway.handle(
            second, {"event": "typing", "room_id": room.id, "is_typing": True}
        )
        assert owner_ws.events("user_typing")[0]["user_id"] == 2
        assert second_ws.events("error") == []
        assert first_ws.frames == []

        await gateway.disconnect(second)
        assert gateway.presence.is_online(2) is False

    async def test_presence_snapshot(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, {"event": "get_presence", "room_id": room.id})
        snapshot = socket.events("presence_snapshot")[0]
        assert snapshot == {"room_id": room.id, "presence": {"1": False, "2": True}}

    async def test_room_closed_broadcast(
        self, gateway: ChatGateway, room: ChatRoom
    ) -> None:
        owner_ws = await _connect(gateway, OWNER)
        await gateway.handle(OWNER, {"event": "join", "room_id": room.id})
        await gateway.broadcast_room_closed(room.id, "cancelled")
        assert owner_ws.events("room_closed") == [
            {"room_id": room.id, "status": "cancelled"}
        ]


class TestPushes:
    """Push scheduling after a committed send."""

    async def test_push_failure_is_swallowed(
        self, gateway: ChatGateway, room: ChatRoom, mock_push_service: AsyncMock
    ) -> None:
        mock_push_service.send.side_effect = RuntimeError("expo down")
        socket = await _connect(gateway, INQUIRER)
        await gateway.handle(INQUIRER, {"event": "join", "room_id": room.id})

        await gateway.handle(INQUIRER, _send(room.id, "hello"))
        await gateway.drain()

        mock_push_service.send.assert_awaited_once()
        assert len(socket.events("new_message")) == 1
        assert socket.events("error") == []

    async def test_disabled_preferences_skip_push(
        self, gateway: ChatGateway, mock_push_service: AsyncMock
    ) -> None:
        await seed_user(1, push_token="ExponentPushToken[owner]", notify_enabled=False)
        await seed_user(2)
        quiet = await seed_room(listing_id=9)
        await _connect(gateway, INQUIRER)

        await gateway.handle(INQUIRER, _send(quiet.id, "hello"))
        await gateway.drain()

        mock_push_service.send.assert_not_awaited()
