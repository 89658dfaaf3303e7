from __future__ import annotations

import asyncio
from collections import defaultdict

import pytest

from marketplace.models import Notification
from marketplace.models_messaging import ConversationParticipant, Message
from marketplace.security_utils import create_access_token
from marketplace.services import socket_service
from support import auth_headers, make_user

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def start_conversation(client, user, other, **extra) -> str:
    payload = {"participant_ids": [other.id], **extra}
    response = client.post("/api/messages/conversations", headers=auth_headers(user), json=payload)
    assert response.status_code in (200, 201)
    return response.json()["data"]["conversation_id"]


def unread_for(db, conversation_id: str, user) -> int:
    db.expire_all()
    participant = (
        db.query(ConversationParticipant)
        .filter(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user.id,
        )
        .one()
    )
    return participant.unread_count


class RecordingServer:
    """Collects handlers registered with @server.event and records what they emit."""

    def __init__(self):
        self.handlers = {}
        self.emitted: list[tuple] = []
        self.rooms: dict[str, set] = defaultdict(set)

    def event(self, handler):
        self.handlers[handler.__name__] = handler
        return handler

    async def emit(self, event, data, to=None, room=None, skip_sid=None):
        self.emitted.append((event, data, to or room))

    async def enter_room(self, sid, room):
        self.rooms[sid].add(room)

    async def leave_room(self, sid, room):
        self.rooms[sid].discard(room)


@pytest.fixture()
def socket_server(monkeypatch):
    monkeypatch.setattr(socket_service, "connected_users", {})
    monkeypatch.setattr(socket_service, "socket_users", {})
    server = RecordingServer()
    socket_service.register_socketio_handlers(server)
    return server


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


def test_create_conversation_with_initial_message(client, db, guest, host) -> None:
    response = client.post(
        "/api/messages/conversations",
        headers=auth_headers(guest),
        json={"participant_ids": [host.id], "title": "Question", "initial_message": "  Is parking included?  "},
    )

    assert response.status_code == 201
    assert response.json()["data"]["existing"] is False
    conversation_id = response.json()["data"]["conversation_id"]
    message = db.query(Message).one()
    assert message.content == "Is parking included?"
    assert unread_for(db, conversation_id, host) == 1
    assert unread_for(db, conversation_id, guest) == 0


def test_property_inquiry_is_reused(client, guest, host, listing) -> None:
    first = start_conversation(client, guest, host, type="PROPERTY_INQUIRY", property_id=listing.id)

    response = client.post(
        "/api/messages/conversations",
        headers=auth_headers(guest),
        json={"participant_ids": [host.id], "type": "PROPERTY_INQUIRY", "property_id": listing.id},
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"conversation_id": first, "existing": True}


def test_create_conversation_validates_participants(client, guest) -> None:
    bad_id = client.post("/api/messages/conversations", headers=auth_headers(guest), json={"participant_ids": ["x"]})
    assert bad_id.status_code == 400

    unknown = client.post(
        "/api/messages/conversations",
        headers=auth_headers(guest),
        json={"participant_ids": ["6f1c8a52-3b7e-4d8e-9a51-0c2f4b7d9e10"]},
    )
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "One or more participants not found"


def test_list_conversations(client, db, guest, host) -> None:
    conversation_id = start_conversation(client, guest, host, initial_message="Hello there")

    data = client.get("/api/messages/conversations", headers=auth_headers(host)).json()["data"]

    assert len(data) == 1
    assert data[0]["id"] == conversation_id
    assert data[0]["unread_count"] == 1
    assert data[0]["participants"][0]["id"] == guest.id
    assert data[0]["last_message"]["content"] == "Hello there"
    assert data[0]["last_message"]["sender_name"] == guest.full_name


def test_opening_conversation_marks_messages_read(client, db, guest, host) -> None:
    conversation_id = start_conversation(client, guest, host, initial_message="Hello there")

    response = client.get(f"/api/messages/conversations/{conversation_id}", headers=auth_headers(host))

    assert response.status_code == 200
    messages = response.json()["data"]["messages"]
    assert messages[0]["sender"]["is_current_user"] is False
    assert unread_for(db, conversation_id, host) == 0
    assert db.query(Message).one().is_read is True


def test_non_participant_is_denied(client, db, guest, host) -> None:
    conversation_id = start_conversation(client, guest, host)
    outsider = make_user(db, "outsider@example.com")

    response = client.get(f"/api/messages/conversations/{conversation_id}", headers=auth_headers(outsider))

    assert response.status_code == 403
    assert response.json()["error"] == "Access denied to conversation"


def test_bad_before_cursor(client, guest, host) -> None:
    conversation_id = start_conversation(client, guest, host)

    response = client.get(
        f"/api/messages/conversations/{conversation_id}", headers=auth_headers(guest), params={"before": "yesterday"}
    )

    assert response.status_code == 400


def test_mute_toggle(client, guest, host) -> None:
    conversation_id = start_conversation(client, guest, host)
    url = f"/api/messages/conversations/{conversation_id}/mute"

    toggled = client.put(url, headers=auth_headers(guest))
    assert toggled.json()["data"] == {"is_muted": True}

    explicit = client.put(url, headers=auth_headers(guest), json={"is_muted": False})
    assert explicit.json()["data"] == {"is_muted": False}
    assert explicit.json()["message"] == "Conversation unmuted"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def test_send_message_broadcasts_and_notifies_offline_participant(client, db, guest, host, emitted) -> None:
    conversation_id = start_conversation(client, guest, host)

    response = client.post(
        f"/api/messages/conversations/{conversation_id}/messages",
        headers=auth_headers(guest),
        json={"content": "<b>Can I check in early?</b>"},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert "<b>" not in data["content"]
    assert data["sender"]["is_current_user"] is True
    assert ("new_message", f"conversation_{conversation_id}") in [(e, room) for e, _, room in emitted]
    assert unread_for(db, conversation_id, host) == 1
    note = db.query(Notification).filter(Notification.user_id == host.id).one()
    assert note.type == "MESSAGE"


def test_muted_participant_is_not_notified(client, db, guest, host) -> None:
    conversation_id = start_conversation(client, guest, host)
    client.put(f"/api/messages/conversations/{conversation_id}/mute", headers=auth_headers(host))

    client.post(
        f"/api/messages/conversations/{conversation_id}/messages",
        headers=auth_headers(guest),
        json={"content": "Hello"},
    )

    assert db.query(Notification).filter(Notification.user_id == host.id).count() == 0


def test_send_message_rejects_empty_content(client, guest, host) -> None:
    conversation_id = start_conversation(client, guest, host)

    response = client.post(
        f"/api/messages/conversations/{conversation_id}/messages",
        headers=auth_headers(guest),
        json={"content": "<script></script>"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Message content is required"


def test_search_users(client, db, guest, host, agent) -> None:
    hosts = client.get("/api/messages/users", headers=auth_headers(guest), params={"type": "hosts"}).json()["data"]
    assert [u["id"] for u in hosts] == [host.id]
    assert hosts[0]["user_type"] == "Host"

    by_name = client.get("/api/messages/users", headers=auth_headers(guest), params={"search": "aish"}).json()["data"]
    assert [u["id"] for u in by_name] == [agent.id]


# ---------------------------------------------------------------------------
# Socket.IO handlers
# ---------------------------------------------------------------------------


def test_socket_authenticate_joins_user_and_conversation_rooms(client, db, guest, host, socket_server) -> None:
    conversation_id = start_conversation(client, guest, host)

    asyncio.run(socket_server.handlers["authenticate"]("sid-1", {"token": create_access_token(guest.id, guest.email)}))

    assert socket_server.rooms["sid-1"] == {f"user_{guest.id}", f"conversation_{conversation_id}"}
    assert socket_service.is_user_online(guest.id)
    assert socket_service.get_connected_users() == [guest.id]
    assert socket_server.emitted[-1][0] == "authenticated"

    asyncio.run(socket_server.handlers["disconnect"]("sid-1"))
    assert not socket_service.is_user_online(guest.id)


def test_socket_authenticate_rejects_bad_token(db, socket_server) -> None:
    asyncio.run(socket_server.handlers["authenticate"]("sid-2", "garbage"))

    assert socket_server.emitted == [("auth_error", {"error": "Invalid or expired token"}, "sid-2")]


def test_socket_join_requires_participation(client, db, guest, host, socket_server) -> None:
    conversation_id = start_conversation(client, guest, host)
    outsider = make_user(db, "outsider@example.com")
    handlers = socket_server.handlers

    asyncio.run(handlers["join_conversation"]("anon", conversation_id))
    assert socket_server.emitted[-1] == ("error", {"error": "Not authenticated"}, "anon")

    asyncio.run(handlers["authenticate"]("sid-3", create_access_token(outsider.id, outsider.email)))
    asyncio.run(handlers["join_conversation"]("sid-3", conversation_id))
    assert socket_server.emitted[-1] == ("error", {"error": "Access denied to conversation"}, "sid-3")


def test_socket_send_message_skips_notification_for_online_recipient(
    client, db, guest, host, socket_server, emitted
) -> None:
    conversation_id = start_conversation(client, guest, host)
    handlers = socket_server.handlers
    asyncio.run(handlers["authenticate"]("guest-sid", create_access_token(guest.id, guest.email)))
    asyncio.run(handlers["authenticate"]("host-sid", create_access_token(host.id, host.email)))

    asyncio.run(handlers["send_message"]("guest-sid", {"conversationId": conversation_id, "content": "On my way"}))
    asyncio.run(handlers["typing_start"]("guest-sid", {"conversationId": conversation_id}))

    assert db.query(Message).one().content == "On my way"
    assert db.query(Notification).count() == 0
    events = [event for event, _, _ in emitted]
    assert "new_message" in events
    assert "user_typing" in events


def test_socket_send_message_ignores_malformed_payloads(client, db, guest, host, socket_server, emitted) -> None:
    conversation_id = start_conversation(client, guest, host)
    handlers = socket_server.handlers
    asyncio.run(handlers["authenticate"]("guest-sid", create_access_token(guest.id, guest.email)))
    emitted.clear()

    for payload in ("hello", ["hello"], None, 42):
        asyncio.run(handlers["send_message"]("guest-sid", payload))
    asyncio.run(handlers["typing_start"]("guest-sid", "not-a-dict"))
    asyncio.run(handlers["mark_read"]("guest-sid", ["oops"]))

    assert db.query(Message).count() == 0
    assert emitted == []
    assert socket_server.emitted[-1][0] == "authenticated"

    asyncio.run(
        handlers["send_message"](
            "guest-sid", {"conversationId": conversation_id, "content": "Gate code is 4412", "type": "VIDEO"}
        )
    )
    asyncio.run(
        handlers["send_message"](
            "guest-sid", {"conversationId": conversation_id, "content": "Floor plan attached", "type": "FILE"}
        )
    )

    types = {m.content: m.message_type for m in db.query(Message).all()}
    assert types == {"Gate code is 4412": "TEXT", "Floor plan attached": "FILE"}


def test_socket_mark_read(client, db, guest, host, socket_server, emitted) -> None:
    conversation_id = start_conversation(client, guest, host, initial_message="Ping")
    handlers = socket_server.handlers
    asyncio.run(handlers["authenticate"]("host-sid", create_access_token(host.id, host.email)))

    asyncio.run(handlers["mark_read"]("host-sid", {"conversationId": conversation_id}))

    assert unread_for(db, conversation_id, host) == 0
    assert emitted[-1][0] == "message_read"
