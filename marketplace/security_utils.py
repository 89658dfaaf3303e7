"""
Credential and token helpers for the marketplace.

Sessions are HS256 JWTs holding ``{id, email}``. One-off links sent by
email (verification, password reset) use itsdangerous timed tokens, salted
with their purpose so a reset token can never verify an address.
"""

import logging
import os
import re
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

import bleach
from itsdangerous import BadData, SignatureExpired, URLSafeTimedSerializer
from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import JWT_EXPIRE_DAYS, SECRET_KEY

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
EMAIL_VERIFICATION_MAX_AGE = 24 * 3600
PASSWORD_RESET_MAX_AGE = 3600
MAX_FILENAME_LENGTH = 255

_password_hasher = CryptContext(schemes=["bcrypt"], deprecated="auto")
_unsafe_filename_chars = re.compile(r"[^\w\s.-]")


def hash_password(password: str) -> str:
    return _password_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    # Google-only accounts have no local hash
    if not hashed_password:
        return False
    try:
        return _password_hasher.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error(f"Unreadable password hash: {e}")
        return False


def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    issued = datetime.utcnow()
    claims = {
        "id": user_id,
        "email": email,
        "iat": issued,
        "exp": issued + (expires_delta or timedelta(days=JWT_EXPIRE_DAYS)),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """Decoded session claims, or None for a bad or expired token."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected session token: {e}")
        return None


def generate_timed_token(data: dict[str, Any], purpose: str) -> str:
    return URLSafeTimedSerializer(SECRET_KEY, salt=purpose).dumps(data)


def verify_timed_token(token: str, purpose: str, max_age: int) -> Optional[dict[str, Any]]:
    """
    Load a token minted by :func:`generate_timed_token` for the same purpose.

    Returns None when the link has expired, was tampered with, or was issued
    for a different purpose.
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY, salt=purpose)
    try:
        return serializer.loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info(f"Expired {purpose} link used")
    except BadData:
        logger.warning(f"Tampered or mismatched {purpose} link")
    return None


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Strip all HTML from user-supplied text (messages, reviews, descriptions)"""
    if value is None:
        return None
    return bleach.clean(value, tags=[], attributes={}, strip=True).strip()


def sanitize_filename(filename: str) -> str:
    """Reduce an uploaded file's name to a safe basename for object storage keys."""
    cleaned = _unsafe_filename_chars.sub("", os.path.basename(filename or ""))
    cleaned = cleaned.strip(". ").replace(" ", "_")
    if not cleaned:
        return f"file_{secrets.token_urlsafe(8)}"

    stem, ext = os.path.splitext(cleaned)
    return stem[: MAX_FILENAME_LENGTH - len(ext)] + ext
