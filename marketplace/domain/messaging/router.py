"""Messaging router - FastAPI endpoints for conversations and messages"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import ConversationCreate, MessageCreate, MuteUpdate
from .service import MessagingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messages"])


def get_messaging_service(db: Session = Depends(get_db)) -> MessagingService:
    """Dependency injection for MessagingService"""
    return MessagingService(db)


# ============================================================================
# CONVERSATIONS
# ============================================================================


@router.get("/conversations")
async def get_conversations(
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """All conversations of the current user, most recent first"""
    return {"success": True, "data": service.list_conversations(current_user)}


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=100),
    before: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return {"success": True, "data": service.get_conversation(current_user, conversation_id, limit, before)}


@router.post("/conversations")
async def create_conversation(
    data: ConversationCreate,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    conversation, existing = service.create_conversation(current_user, data)
    if existing:
        return {"success": True, "data": {"conversation_id": conversation.id, "existing": True}}
    return JSONResponse(
        status_code=201,
        content={"success": True, "data": {"conversation_id": conversation.id, "existing": False}},
    )


@router.put("/conversations/{conversation_id}/mute")
async def mute_conversation(
    conversation_id: str,
    data: Optional[MuteUpdate] = None,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    is_muted = service.set_mute(current_user, conversation_id, data.is_muted if data else None)
    return {
        "success": True,
        "data": {"is_muted": is_muted},
        "message": "Conversation muted" if is_muted else "Conversation unmuted",
    }


# ============================================================================
# MESSAGES
# ============================================================================


@router.post("/conversations/{conversation_id}/messages", status_code=201)
async def send_message(
    conversation_id: str,
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    message = await service.send_message(
        current_user,
        conversation_id,
        data.content,
        data.message_type,
        [a.model_dump() for a in data.attachments],
    )
    return {"success": True, "data": message}


@router.get("/users")
async def get_users(
    search: Optional[str] = Query(None),
    type: Optional[Literal["hosts", "agents", "guests"]] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """Users the caller can start a conversation with"""
    return {"success": True, "data": service.search_users(current_user, search, type, limit)}
