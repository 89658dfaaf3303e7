"""Messaging service - Business logic for conversations and chat messages"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...models_messaging import Conversation, ConversationParticipant, Message
from ...security_utils import sanitize_text
from ...services import socket_service
from ...services.notification_service import NotificationService
from ...shared.validators import to_naive_utc
from .repository import MessagingRepository
from .schemas import ConversationCreate

logger = logging.getLogger(__name__)


def serialize_participant(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.full_name,
        "avatar": user.avatar,
        "is_host": user.is_host,
        "is_agent": user.is_agent,
        "isOnline": socket_service.is_user_online(user.id),
    }


def serialize_message(message: Message, viewer_id: Optional[str] = None) -> dict:
    sender = message.sender
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "content": message.content,
        "message_type": message.message_type,
        "attachments": message.attachments or [],
        "is_read": message.is_read,
        "read_at": message.read_at.isoformat() if message.read_at else None,
        "created_at": message.created_at.isoformat() if message.created_at else None,
        "sender": {
            "id": message.sender_id,
            "name": sender.full_name if sender else None,
            "avatar": sender.avatar if sender else None,
            "is_current_user": message.sender_id == viewer_id,
        },
    }


class MessagingService:
    """Service layer for messaging business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = MessagingRepository()

    def _require_participation(self, conversation_id: str, user: User) -> ConversationParticipant:
        participation = self.repo.get_participation(self.db, conversation_id, user.id)
        if not participation:
            raise HTTPException(status_code=403, detail="Access denied to conversation")
        return participation

    def list_conversations(self, user: User) -> list[dict]:
        results = []
        for conversation in self.repo.get_user_conversations(self.db, user.id):
            mine = next((p for p in conversation.participants if p.user_id == user.id), None)
            last = self.repo.get_last_message(self.db, conversation.id)
            results.append(
                {
                    "id": conversation.id,
                    "type": conversation.type,
                    "title": conversation.title,
                    "property_id": conversation.property_id,
                    "booking_id": conversation.booking_id,
                    "participants": [
                        serialize_participant(p.user) for p in conversation.participants if p.user_id != user.id
                    ],
                    "last_message": (
                        {
                            "content": last.content,
                            "sender_name": "You" if last.sender_id == user.id else last.sender.full_name,
                            "created_at": last.created_at.isoformat() if last.created_at else None,
                            "message_type": last.message_type,
                        }
                        if last
                        else None
                    ),
                    "unread_count": mine.unread_count if mine else 0,
                    "is_muted": mine.is_muted if mine else False,
                    "last_message_at": conversation.last_message_at.isoformat() if conversation.last_message_at else None,
                    "created_at": conversation.created_at.isoformat() if conversation.created_at else None,
                }
            )
        return results

    def get_conversation(self, user: User, conversation_id: str, limit: int = 50, before: Optional[str] = None) -> dict:
        """Conversation detail with its messages. Opening it marks everything read for the caller"""
        participation = self._require_participation(conversation_id, user)

        before_dt = None
        if before:
            try:
                before_dt = to_naive_utc(datetime.fromisoformat(before.replace("Z", "+00:00")))
            except ValueError as e:
                raise HTTPException(status_code=400, detail="Invalid 'before' cursor") from e

        conversation = self.repo.get_conversation(self.db, conversation_id)
        messages = self.repo.get_messages(self.db, conversation_id, limit, before_dt)

        self.mark_read(user, conversation_id, participation=participation)

        return {
            "conversation": {
                "id": conversation.id,
                "type": conversation.type,
                "title": conversation.title,
                "property_id": conversation.property_id,
                "booking_id": conversation.booking_id,
                "participants": [serialize_participant(p.user) for p in conversation.participants],
            },
            "messages": [serialize_message(m, user.id) for m in messages],
        }

    def create_conversation(self, user: User, data: ConversationCreate) -> tuple[Conversation, bool]:
        """Returns (conversation, existing)"""
        participant_ids = set(data.participant_ids) | {user.id}

        known = self.db.query(User.id).filter(User.id.in_(participant_ids)).count()
        if known != len(participant_ids):
            raise HTTPException(status_code=404, detail="One or more participants not found")

        if data.type != "GENERAL":
            existing = self.repo.find_existing_conversation(
                self.db, data.type, participant_ids, data.property_id, data.booking_id
            )
            if existing:
                return existing, True

        conversation = self.repo.create_conversation(
            self.db,
            participant_ids,
            type=data.type,
            title=data.title,
            property_id=data.property_id,
            booking_id=data.booking_id,
        )
        logger.info(f"✅ Conversation {conversation.id} created by {user.id} with {len(participant_ids)} participants")

        if data.initial_message and data.initial_message.strip():
            self._insert_message(user, conversation, data.initial_message.strip(), "TEXT", [])

        return conversation, False

    def _insert_message(
        self, user: User, conversation: Conversation, content: str, message_type: str, attachments: list
    ) -> Message:
        message = self.repo.create_message(
            self.db,
            conversation_id=conversation.id,
            sender_id=user.id,
            content=content,
            message_type=message_type,
            attachments=attachments,
        )
        conversation.last_message_at = message.created_at or datetime.utcnow()
        self.repo.increment_unread(self.db, conversation.id, user.id)
        self.db.commit()
        self.db.refresh(message)
        return message

    async def send_message(
        self,
        user: User,
        conversation_id: str,
        content: str,
        message_type: str = "TEXT",
        attachments: Optional[list] = None,
    ) -> dict:
        """Insert a message, broadcast it to the room and notify offline participants"""
        if not user:
            raise HTTPException(status_code=401, detail="User not found")
        self._require_participation(conversation_id, user)

        content = sanitize_text(content or "").strip()
        if not content:
            raise HTTPException(status_code=400, detail="Message content is required")
        if len(content) > 5000:
            raise HTTPException(status_code=400, detail="Message content is too long")

        conversation = self.repo.get_conversation(self.db, conversation_id)
        message = self._insert_message(user, conversation, content, message_type, attachments or [])
        payload = serialize_message(message)

        await socket_service.broadcast_new_message(conversation_id, payload)

        notifications = NotificationService(self.db)
        for participant in conversation.participants:
            if participant.user_id == user.id or participant.is_muted:
                continue
            if socket_service.is_user_online(participant.user_id):
                continue
            await notifications.new_message(participant.user_id, conversation_id, user.full_name)

        return serialize_message(message, user.id)

    def mark_read(
        self,
        user: User,
        conversation_id: str,
        message_id: Optional[str] = None,
        participation: Optional[ConversationParticipant] = None,
    ) -> int:
        if not user:
            raise HTTPException(status_code=401, detail="User not found")
        participation = participation or self._require_participation(conversation_id, user)

        updated = self.repo.mark_messages_read(self.db, conversation_id, user.id, message_id)
        participation.unread_count = 0
        participation.last_read_at = datetime.utcnow()
        self.db.commit()
        return updated

    def search_users(self, user: User, search: Optional[str], user_type: Optional[str], limit: int = 20) -> list[dict]:
        return [
            {
                "id": u.id,
                "name": u.full_name,
                "avatar": u.avatar,
                "is_host": u.is_host,
                "is_agent": u.is_agent,
                "user_type": "Agent" if u.is_agent else "Host" if u.is_host else "Guest",
                "isOnline": socket_service.is_user_online(u.id),
            }
            for u in self.repo.search_users(self.db, user.id, search, user_type, limit)
        ]

    def set_mute(self, user: User, conversation_id: str, is_muted: Optional[bool]) -> bool:
        """Set the mute flag, or toggle it when no value is given"""
        participation = self._require_participation(conversation_id, user)
        participation.is_muted = (not participation.is_muted) if is_muted is None else bool(is_muted)
        self.db.commit()
        return participation.is_muted
