"""
Field validators shared by the pydantic schemas and the hand-parsed routes.
Each raises ValueError with a user-facing message so pydantic can surface it
as a field error.
"""

import re
import uuid
from datetime import date, datetime, timezone
from typing import Optional, Union

EMAIL_RE = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$")
HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
UAE_COUNTRY_CODE = "971"


def validate_uuid(value: str) -> bool:
    try:
        return str(uuid.UUID(value)) == value.lower()
    except (ValueError, AttributeError, TypeError):
        return False


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164.

    Local UAE mobiles (``05XXXXXXXX``) get the +971 prefix and a leading
    ``00`` is treated as the international prefix; anything else must
    already carry a country code.
    """
    if not phone:
        return phone

    number = re.sub(r"\D", "", phone)
    if not phone.strip().startswith("+"):
        if number.startswith("00"):
            number = number[2:]
        elif number.startswith("0") and len(number) == 10:
            number = UAE_COUNTRY_CODE + number[1:]

    if not 8 <= len(number) <= 15:
        raise ValueError("Phone number must be in international format, e.g. +971501234567")
    return f"+{number}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """Lowercased, trimmed address; raises ValueError when malformed."""
    if not email:
        return email
    normalized = email.strip().lower()
    if not EMAIL_RE.match(normalized):
        raise ValueError("Invalid email format")
    return normalized


def validate_time_hhmm(value: str) -> str:
    if not value or not HHMM_RE.match(value):
        raise ValueError("Time must be in HH:MM format")
    return value


def to_naive_utc(value: Union[datetime, date]) -> datetime:
    """Convert an aware datetime (or a plain date) to a naive UTC datetime for storage"""
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
