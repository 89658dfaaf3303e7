"""
Notification Routes
In-app notification inbox plus admin send, bulk and delivery statistics
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..models import Notification, User
from ..services.notification_service import NotificationService, serialize_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class AdminNotificationRequest(BaseModel):
    userId: Optional[str] = None
    title: Optional[str] = Field(None, max_length=255)
    message: Optional[str] = None
    type: str = "ADMIN"
    data: dict[str, Any] = {}
    actionUrl: Optional[str] = None
    actionText: Optional[str] = None
    sendEmail: bool = False
    sendSMS: bool = False


class BulkNotificationRequest(BaseModel):
    userIds: list[str] = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    type: str = "SYSTEM"
    data: dict[str, Any] = {}
    sendEmail: bool = False
    sendSMS: bool = False


def filtered(query, type: Optional[str], read: Optional[bool]):
    if type:
        query = query.filter(Notification.type == type)
    if read is not None:
        query = query.filter(Notification.is_read.is_(read))
    return query


def page_of(query, page: int, limit: int) -> tuple[list[Notification], dict]:
    total = query.count()
    rows = query.order_by(Notification.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return rows, {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit}


def counts_by_type(query) -> list[dict]:
    unread = func.sum(case((Notification.is_read.is_(False), 1), else_=0))
    rows = query.with_entities(Notification.type, func.count(Notification.id), unread).group_by(Notification.type)
    return [{"type": t, "count": count, "unread": int(unread_count or 0)} for t, count, unread_count in rows]


# ============================================================================
# USER INBOX
# ============================================================================


@router.get("")
async def list_notifications(
    type: Optional[str] = Query(None),
    read: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    mine = db.query(Notification).filter(Notification.user_id == current_user.id)
    notifications, pagination = page_of(filtered(mine, type, read), page, limit)
    unread_count = mine.filter(Notification.is_read.is_(False)).count()
    return {
        "success": True,
        "data": {
            "notifications": [serialize_notification(n) for n in notifications],
            "pagination": pagination,
            "unreadCount": unread_count,
        },
    }


@router.get("/stats")
async def notification_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    mine = db.query(Notification).filter(Notification.user_id == current_user.id)
    return {
        "success": True,
        "data": {
            "total": mine.count(),
            "totalUnread": mine.filter(Notification.is_read.is_(False)).count(),
            "byType": counts_by_type(mine),
        },
    }


@router.patch("/read-all")
async def mark_all_read(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True, Notification.read_at: datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return {"success": True, "message": "All notifications marked as read", "data": {"updated": updated}}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == current_user.id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return {"success": True, "data": serialize_notification(notification)}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == current_user.id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    db.delete(notification)
    db.commit()
    return {"success": True, "message": "Notification deleted"}


# ============================================================================
# ADMIN
# ============================================================================


@router.post("/admin/send")
async def admin_send_notification(
    data: AdminNotificationRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not data.userId or not data.title or not data.message:
        raise HTTPException(status_code=400, detail="userId, title and message are required")

    if not db.query(User).filter(User.id == data.userId).first():
        raise HTTPException(status_code=404, detail="User not found")

    notification = await NotificationService(db).create_notification(
        data.userId,
        data.title,
        data.message,
        data.type,
        data={**data.data, "sentBy": admin.id},
        action_url=data.actionUrl,
        action_text=data.actionText,
        send_email_flag=data.sendEmail,
        send_sms_flag=data.sendSMS,
    )
    logger.info(f"📤 Admin {admin.id} sent notification to {data.userId}")
    return {"success": True, "message": "Notification sent", "data": serialize_notification(notification)}


@router.post("/admin/bulk")
async def admin_bulk_notification(
    data: BulkNotificationRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user_ids = [uid for (uid,) in db.query(User.id).filter(User.id.in_(data.userIds))]
    notifications = await NotificationService(db).send_bulk(
        user_ids,
        data.title,
        data.message,
        data.type,
        data={**data.data, "sentBy": admin.id},
        send_email_flag=data.sendEmail,
        send_sms_flag=data.sendSMS,
    )
    return {
        "success": True,
        "message": f"Notification sent to {len(notifications)} users",
        "data": {"sent": len(notifications), "notifications": [serialize_notification(n) for n in notifications]},
    }


@router.get("/admin")
async def admin_list_notifications(
    type: Optional[str] = Query(None),
    read: Optional[bool] = Query(None),
    userId: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = filtered(db.query(Notification), type, read)
    if userId:
        query = query.filter(Notification.user_id == userId)
    notifications, pagination = page_of(query, page, limit)
    return {
        "success": True,
        "data": {"notifications": [serialize_notification(n) for n in notifications], "pagination": pagination},
    }


@router.get("/admin/stats")
async def admin_notification_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    query = db.query(Notification)
    since = datetime.utcnow() - timedelta(hours=24)
    return {
        "success": True,
        "data": {
            "total": query.count(),
            "unread": query.filter(Notification.is_read.is_(False)).count(),
            "recent24h": query.filter(Notification.created_at >= since).count(),
            "byType": counts_by_type(query),
            "delivery": {
                "emailsSent": query.filter(Notification.email_sent.is_(True)).count(),
                "smsSent": query.filter(Notification.sms_sent.is_(True)).count(),
                "pushSent": query.filter(Notification.push_sent.is_(True)).count(),
            },
        },
    }


@router.post("/admin/test")
async def admin_test_notification(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    notification = await NotificationService(db).create_notification(
        admin.id,
        "Test Notification",
        "This is a test notification from the admin panel.",
        "SYSTEM",
        data={"test": True},
    )
    return {"success": True, "message": "Test notification sent", "data": serialize_notification(notification)}
