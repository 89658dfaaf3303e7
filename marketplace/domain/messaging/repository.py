"""Messaging repository - Database operations for conversations and messages"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ...models import User
from ...models_messaging import Conversation, ConversationParticipant, Message


class MessagingRepository:
    """Repository for messaging database operations"""

    @staticmethod
    def get_participation(db: Session, conversation_id: str, user_id: str) -> Optional[ConversationParticipant]:
        return (
            db.query(ConversationParticipant)
            .filter(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id == user_id,
            )
            .first()
        )

    @staticmethod
    def get_user_conversations(db: Session, user_id: str) -> list[Conversation]:
        """Conversations the user takes part in, most recent activity first"""
        return (
            db.query(Conversation)
            .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
            .filter(ConversationParticipant.user_id == user_id)
            .options(joinedload(Conversation.participants).joinedload(ConversationParticipant.user))
            .order_by(func.coalesce(Conversation.last_message_at, Conversation.created_at).desc())
            .all()
        )

    @staticmethod
    def get_conversation(db: Session, conversation_id: str) -> Optional[Conversation]:
        return (
            db.query(Conversation)
            .options(joinedload(Conversation.participants).joinedload(ConversationParticipant.user))
            .filter(Conversation.id == conversation_id)
            .first()
        )

    @staticmethod
    def get_last_message(db: Session, conversation_id: str) -> Optional[Message]:
        return (
            db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .first()
        )

    @staticmethod
    def get_messages(
        db: Session, conversation_id: str, limit: int = 50, before: Optional[datetime] = None
    ) -> list[Message]:
        """Up to `limit` messages older than `before`, returned in ascending order"""
        query = (
            db.query(Message)
            .options(joinedload(Message.sender))
            .filter(Message.conversation_id == conversation_id)
        )
        if before:
            query = query.filter(Message.created_at < before)
        messages = query.order_by(Message.created_at.desc()).limit(limit).all()
        return list(reversed(messages))

    @staticmethod
    def find_existing_conversation(
        db: Session,
        conversation_type: str,
        participant_ids: set[str],
        property_id: Optional[str],
        booking_id: Optional[str],
    ) -> Optional[Conversation]:
        """Conversation of this type with exactly the same participant set"""
        candidates = (
            db.query(Conversation)
            .options(joinedload(Conversation.participants))
            .filter(
                Conversation.type == conversation_type,
                Conversation.property_id == property_id,
                Conversation.booking_id == booking_id,
            )
            .all()
        )
        for conversation in candidates:
            if {p.user_id for p in conversation.participants} == participant_ids:
                return conversation
        return None

    @staticmethod
    def create_conversation(db: Session, participant_ids: set[str], **conversation_data) -> Conversation:
        conversation = Conversation(**conversation_data)
        db.add(conversation)
        db.flush()
        for user_id in participant_ids:
            db.add(ConversationParticipant(conversation_id=conversation.id, user_id=user_id))
        db.commit()
        db.refresh(conversation)
        return conversation

    @staticmethod
    def create_message(db: Session, **message_data) -> Message:
        message = Message(**message_data)
        db.add(message)
        db.flush()
        return message

    @staticmethod
    def increment_unread(db: Session, conversation_id: str, sender_id: str) -> None:
        db.query(ConversationParticipant).filter(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id != sender_id,
        ).update(
            {ConversationParticipant.unread_count: ConversationParticipant.unread_count + 1},
            synchronize_session=False,
        )

    @staticmethod
    def mark_messages_read(
        db: Session, conversation_id: str, reader_id: str, message_id: Optional[str] = None
    ) -> int:
        """Mark messages from the other participants as read"""
        query = db.query(Message).filter(
            Message.conversation_id == conversation_id,
            Message.sender_id != reader_id,
            Message.is_read.is_(False),
        )
        if message_id:
            query = query.filter(Message.id == message_id)
        return query.update({Message.is_read: True, Message.read_at: datetime.utcnow()}, synchronize_session=False)

    @staticmethod
    def search_users(
        db: Session, exclude_user_id: str, search: Optional[str] = None, user_type: Optional[str] = None, limit: int = 20
    ) -> list[User]:
        query = db.query(User).filter(User.is_active.is_(True), User.id != exclude_user_id)

        if user_type == "hosts":
            query = query.filter(User.is_host.is_(True))
        elif user_type == "agents":
            query = query.filter(User.is_agent.is_(True))
        elif user_type == "guests":
            query = query.filter(User.is_host.is_(False), User.is_agent.is_(False))

        if search:
            term = f"%{search.lower()}%"
            query = query.filter(or_(User.first_name.ilike(term), User.last_name.ilike(term)))

        return query.order_by(User.first_name).limit(limit).all()
