import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .security_utils import verify_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str, db: Session) -> User:
    """Decode a session token and load the active user it belongs to"""
    payload = verify_access_token(token)
    if not payload or not payload.get("id"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = db.query(User).filter(User.id == payload["id"]).first()
    if not user:
        logger.warning(f"⚠️ Token references unknown user {payload.get('id')}")
        raise HTTPException(status_code=401, detail="User not found")

    if user.is_suspended or user.status == "suspended":
        raise HTTPException(status_code=401, detail="Account suspended")

    if not user.is_active or user.status == "deleted":
        raise HTTPException(status_code=401, detail="Account is inactive")

    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the Bearer session token"""
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access token required")

    user = resolve_user_from_token(credentials.credentials, db)
    logger.debug(f"✅ User authenticated: {user.email}")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Current user when a valid token is sent, otherwise None"""
    if not credentials or not credentials.credentials:
        return None
    try:
        return resolve_user_from_token(credentials.credentials, db)
    except HTTPException:
        return None


async def require_host(user: User = Depends(get_current_user)) -> User:
    if not user.is_host:
        logger.warning(f"⚠️ User {user.email} attempted to access a host-only route")
        raise HTTPException(status_code=403, detail="Host access required")
    return user


async def require_agent(user: User = Depends(get_current_user)) -> User:
    if not user.is_agent:
        logger.warning(f"⚠️ User {user.email} attempted to access an agent-only route")
        raise HTTPException(status_code=403, detail="Agent access required")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Admin tier: an agent whose email contains 'admin'"""
    if not user.is_admin:
        logger.warning(f"⚠️ User {user.email} attempted to access an admin route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
