"""
Socket.IO real-time channel

Chat delivery, typing indicators, read receipts and per-user pushes for
notifications, payment and booking status updates.

Rooms:
    user_{id}          every socket of one authenticated user
    conversation_{id}  every socket that joined a conversation
"""

import logging
from typing import Any, Optional, get_args

import socketio
from fastapi import HTTPException

from .. import database
from ..auth import resolve_user_from_token
from ..config import ALLOWED_ORIGINS
from ..domain.messaging.schemas import MessageType
from ..models_messaging import ConversationParticipant

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if "*" in ALLOWED_ORIGINS else ALLOWED_ORIGINS,
    logger=False,
    engineio_logger=False,
)

# user_id -> set of socket ids
connected_users: dict[str, set[str]] = {}
# socket id -> user_id
socket_users: dict[str, str] = {}

MESSAGE_TYPES = set(get_args(MessageType))


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


def conversation_room(conversation_id: str) -> str:
    return f"conversation_{conversation_id}"


async def emit(event: str, data: Any, room: str, skip_sid: Optional[str] = None) -> None:
    """Emit to a room. Delivery failures are logged, never raised to the caller."""
    try:
        await sio.emit(event, data, room=room, skip_sid=skip_sid)
    except Exception as e:
        logger.error(f"❌ Socket emit '{event}' to {room} failed: {e}")


# ============================================================================
# PUSH HELPERS (used by REST handlers and services)
# ============================================================================


async def send_notification_to_user(user_id: str, notification: dict) -> None:
    await emit("notification", notification, user_room(user_id))


async def send_payment_status_update(user_id: str, payment_data: dict) -> None:
    await emit("payment_status_update", payment_data, user_room(user_id))


async def send_booking_status_update(user_id: str, booking_data: dict) -> None:
    await emit("booking_status_update", booking_data, user_room(user_id))


async def broadcast_new_message(conversation_id: str, message: dict) -> None:
    await emit("new_message", {"message": message, "conversationId": conversation_id}, conversation_room(conversation_id))


def get_connected_users() -> list[str]:
    return list(connected_users.keys())


def is_user_online(user_id: str) -> bool:
    return bool(connected_users.get(user_id))


def _track(sid: str, user_id: str) -> None:
    socket_users[sid] = user_id
    connected_users.setdefault(user_id, set()).add(sid)


def _untrack(sid: str) -> Optional[str]:
    user_id = socket_users.pop(sid, None)
    if user_id:
        sids = connected_users.get(user_id, set())
        sids.discard(sid)
        if not sids:
            connected_users.pop(user_id, None)
    return user_id


def _is_participant(db, conversation_id: str, user_id: str) -> bool:
    return (
        db.query(ConversationParticipant)
        .filter(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        )
        .first()
        is not None
    )


# ============================================================================
# EVENT HANDLERS
# ============================================================================


def register_socketio_handlers(server: socketio.AsyncServer) -> None:
    """Register chat event handlers on the server"""

    @server.event
    async def connect(sid, environ, auth=None):
        logger.debug(f"🔌 Socket connected: {sid}")

    @server.event
    async def authenticate(sid, token):
        if isinstance(token, dict):
            token = token.get("token")
        if not token:
            await server.emit("auth_error", {"error": "Invalid token"}, to=sid)
            return

        db = database.SessionLocal()
        try:
            user = resolve_user_from_token(token, db)
            conversation_ids = [
                p.conversation_id
                for p in db.query(ConversationParticipant).filter(ConversationParticipant.user_id == user.id).all()
            ]
            user_data = {"id": user.id, "email": user.email, "isHost": user.is_host}
        except HTTPException as e:
            await server.emit("auth_error", {"error": e.detail}, to=sid)
            return
        finally:
            db.close()

        _track(sid, user_data["id"])
        await server.enter_room(sid, user_room(user_data["id"]))
        for conversation_id in conversation_ids:
            await server.enter_room(sid, conversation_room(conversation_id))

        await server.emit("authenticated", {"user": user_data}, to=sid)
        logger.info(f"✅ User {user_data['id']} connected with socket {sid}")

    @server.event
    async def join_conversation(sid, conversation_id):
        user_id = socket_users.get(sid)
        if not user_id:
            await server.emit("error", {"error": "Not authenticated"}, to=sid)
            return

        db = database.SessionLocal()
        try:
            allowed = _is_participant(db, conversation_id, user_id)
        finally:
            db.close()

        if not allowed:
            await server.emit("error", {"error": "Access denied to conversation"}, to=sid)
            return

        await server.enter_room(sid, conversation_room(conversation_id))
        await server.emit("joined_conversation", {"conversationId": conversation_id}, to=sid)

    @server.event
    async def leave_conversation(sid, conversation_id):
        await server.leave_room(sid, conversation_room(conversation_id))

    @server.event
    async def send_message(sid, data):
        from ..domain.messaging.service import MessagingService
        from ..models import User

        user_id = socket_users.get(sid)
        if not user_id:
            await server.emit("error", {"error": "Not authenticated"}, to=sid)
            return

        if not isinstance(data, dict):
            return
        message_type = data.get("type")
        if message_type not in MESSAGE_TYPES:
            message_type = "TEXT"
        content = data.get("content")
        attachments = data.get("attachments")

        db = database.SessionLocal()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            await MessagingService(db).send_message(
                user,
                data.get("conversationId"),
                content if isinstance(content, str) else "",
                message_type,
                attachments if isinstance(attachments, list) else [],
            )
        except HTTPException as e:
            await server.emit("error", {"error": e.detail}, to=sid)
        finally:
            db.close()

    @server.event
    async def typing_start(sid, data):
        user_id = socket_users.get(sid)
        if not user_id or not isinstance(data, dict):
            return
        conversation_id = data.get("conversationId")
        await emit(
            "user_typing",
            {"userId": user_id, "conversationId": conversation_id},
            conversation_room(conversation_id),
            skip_sid=sid,
        )

    @server.event
    async def typing_stop(sid, data):
        user_id = socket_users.get(sid)
        if not user_id or not isinstance(data, dict):
            return
        conversation_id = data.get("conversationId")
        await emit(
            "user_stopped_typing",
            {"userId": user_id, "conversationId": conversation_id},
            conversation_room(conversation_id),
            skip_sid=sid,
        )

    @server.event
    async def mark_read(sid, data):
        from ..domain.messaging.service import MessagingService
        from ..models import User

        user_id = socket_users.get(sid)
        if not user_id or not isinstance(data, dict):
            return

        conversation_id = data.get("conversationId")
        db = database.SessionLocal()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            MessagingService(db).mark_read(user, conversation_id, data.get("messageId"))
        except HTTPException as e:
            await server.emit("error", {"error": e.detail}, to=sid)
            return
        finally:
            db.close()

        await emit(
            "message_read",
            {"messageId": data.get("messageId"), "conversationId": conversation_id, "readBy": user_id},
            conversation_room(conversation_id),
            skip_sid=sid,
        )

    @server.event
    async def disconnect(sid):
        user_id = _untrack(sid)
        if user_id:
            logger.info(f"🔌 User {user_id} disconnected ({sid})")

    logger.info("✅ Socket.IO event handlers registered")
