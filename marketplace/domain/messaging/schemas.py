"""Messaging domain schemas - Pydantic models for validation"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_uuid

ConversationType = Literal["GENERAL", "BOOKING", "SUPPORT", "PROPERTY_INQUIRY"]
MessageType = Literal["TEXT", "IMAGE", "FILE", "SYSTEM"]


class ConversationCreate(BaseModel):
    """Schema for starting a conversation"""

    participant_ids: list[str] = Field(..., min_length=1)
    type: ConversationType = "GENERAL"
    title: Optional[str] = Field(None, max_length=255)
    property_id: Optional[str] = None
    booking_id: Optional[str] = None
    initial_message: Optional[str] = None

    @field_validator("participant_ids")
    @classmethod
    def validate_participants(cls, v):
        for participant_id in v:
            if not validate_uuid(participant_id):
                raise ValueError(f"Invalid participant id: {participant_id}")
        return v


class Attachment(BaseModel):
    url: str
    filename: str
    size: int
    type: str


class MessageCreate(BaseModel):
    """Schema for sending a message"""

    content: str = Field(..., min_length=1, max_length=5000)
    message_type: MessageType = "TEXT"
    attachments: list[Attachment] = []


class MuteUpdate(BaseModel):
    is_muted: Optional[bool] = None
