"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import validate_email, validate_phone

BookingStatus = Literal["PENDING", "CONFIRMED", "CANCELLED", "COMPLETED"]


class GuestInfo(BaseModel):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    email: str
    phone: str

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        return validate_phone(v)


class BookingCreate(BaseModel):
    """Schema for creating a booking"""

    propertyId: str
    checkIn: datetime
    checkOut: datetime
    guests: int = Field(..., ge=1, le=20)
    guestInfo: GuestInfo
    specialRequests: Optional[str] = Field(None, max_length=2000)


class BookingUpdate(BaseModel):
    """Schema for updating an existing booking"""

    status: Optional[BookingStatus] = None
    checkIn: Optional[datetime] = None
    checkOut: Optional[datetime] = None
    guests: Optional[int] = Field(None, ge=1, le=20)
    specialRequests: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_dates(self):
        if self.checkIn and self.checkOut and self.checkIn >= self.checkOut:
            raise ValueError("Check-out date must be after check-in date")
        return self


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
