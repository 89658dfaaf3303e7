"""Outbound SMS audit trail, one row per Twilio send attempt."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class SmsLog(Base):
    __tablename__ = "sms_logs"
    __table_args__ = (Index("ix_sms_logs_entity", "entity_type", "entity_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    to_phone = Column(String(20), nullable=False)
    message_body = Column(Text, nullable=False)
    # Notification type that triggered the text (BOOKING_CONFIRMED, PAYMENT_RECEIVED, ...)
    message_type = Column(String(50), nullable=False)
    entity_type = Column(String(50))
    entity_id = Column(String(36))
    twilio_message_sid = Column(String(64))
    status = Column(String(20), nullable=False)  # sent | failed
    error_message = Column(Text)
    sent_at = Column(DateTime, server_default=func.now())

    recipient = relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<SmsLog {self.message_type} -> {self.to_phone} ({self.status})>"
