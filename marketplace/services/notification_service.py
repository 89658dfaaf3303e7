"""
Notification Service
Persists in-app notifications and fans them out over email, SMS and the socket channel
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..email_service import EmailDeliveryError, send_email
from ..email_templates import notification_template
from ..models import Notification, User
from . import socket_service
from .twilio_service import send_sms

logger = logging.getLogger(__name__)

SMS_SIGNATURE = "UAE Rental Platform"


def serialize_notification(n: Notification) -> dict:
    return {
        "id": n.id,
        "userId": n.user_id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "data": n.data or {},
        "actionUrl": n.action_url,
        "actionText": n.action_text,
        "isRead": n.is_read,
        "readAt": n.read_at.isoformat() if n.read_at else None,
        "emailSent": n.email_sent,
        "smsSent": n.sms_sent,
        "pushSent": n.push_sent,
        "createdAt": n.created_at.isoformat() if n.created_at else None,
    }


def sms_text(user: User, message: str, notification_type: str, amount: Optional[float] = None) -> str:
    text = f"Hi {user.first_name}, {message}"
    if notification_type == "PAYMENT" and amount:
        text += f" Amount: {amount} AED"
    return f"{text} - {SMS_SIGNATURE}"


class NotificationService:
    """Create notifications and deliver them through every enabled channel"""

    def __init__(self, db: Session):
        self.db = db

    async def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str,
        data: Optional[dict[str, Any]] = None,
        action_url: Optional[str] = None,
        action_text: Optional[str] = None,
        send_email_flag: bool = False,
        send_sms_flag: bool = False,
        send_push: bool = True,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=notification_type,
            data=data or {},
            action_url=action_url,
            action_text=action_text,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)

        user = self.db.query(User).filter(User.id == user_id).first()
        if user:
            if send_email_flag and user.email:
                await self._deliver_email(notification, user)
            if send_sms_flag and user.phone:
                await self._deliver_sms(notification, user)

        if send_push:
            await socket_service.send_notification_to_user(user_id, serialize_notification(notification))
            notification.push_sent = True
            notification.push_sent_at = datetime.utcnow()
            self.db.commit()

        logger.info(f"✅ Notification {notification.type} created for user {user_id}")
        return notification

    async def _deliver_email(self, notification: Notification, user: User) -> None:
        subject, html, text = notification_template(
            notification.type,
            user.full_name,
            notification.message,
            notification.action_url,
            notification.action_text,
            (notification.data or {}).get("amount"),
        )
        try:
            sent = await send_email(user.email, subject, html, text)
        except EmailDeliveryError as e:
            logger.error(f"❌ Notification email failed for {notification.id}: {e}")
            return
        if sent:
            notification.email_sent = True
            notification.email_sent_at = datetime.utcnow()
            self.db.commit()

    async def _deliver_sms(self, notification: Notification, user: User) -> None:
        body = sms_text(user, notification.message, notification.type, (notification.data or {}).get("amount"))
        ok, error = await send_sms(
            self.db, user.id, user.phone, body, notification.type, "Notification", notification.id
        )
        if ok:
            notification.sms_sent = True
            notification.sms_sent_at = datetime.utcnow()
            self.db.commit()
        else:
            logger.warning(f"⚠️ Notification SMS not sent for {notification.id}: {error}")

    async def send_bulk(
        self, user_ids: list[str], title: str, message: str, notification_type: str = "SYSTEM", **kwargs
    ) -> list[Notification]:
        notifications = []
        for user_id in user_ids:
            notifications.append(await self.create_notification(user_id, title, message, notification_type, **kwargs))
        logger.info(f"📤 Bulk notification sent to {len(notifications)} users")
        return notifications

    # ============================================================================
    # BOOKINGS
    # ============================================================================

    async def booking_request(self, host_id: str, booking_id: str, guest_name: str, property_title: str):
        return await self.create_notification(
            host_id,
            "New Booking Request",
            f'{guest_name} wants to book your property "{property_title}".',
            "BOOKING",
            data={"bookingId": booking_id},
            action_url=f"/host/bookings/{booking_id}",
            action_text="Review Booking",
            send_email_flag=True,
            send_sms_flag=True,
        )

    async def booking_confirmation(self, guest_id: str, booking_id: str):
        return await self.create_notification(
            guest_id,
            "Booking Confirmed",
            "Your booking has been confirmed. We look forward to hosting you!",
            "BOOKING",
            data={"bookingId": booking_id},
            action_url=f"/bookings/{booking_id}",
            action_text="View Booking",
            send_email_flag=True,
            send_sms_flag=True,
        )

    async def booking_approved(self, guest_id: str, booking_id: str, property_title: str):
        return await self.create_notification(
            guest_id,
            "Booking Approved!",
            f'Your booking for "{property_title}" has been approved by the host.',
            "BOOKING",
            data={"bookingId": booking_id},
            action_url=f"/bookings/{booking_id}",
            action_text="View Booking",
            send_email_flag=True,
            send_sms_flag=True,
        )

    async def booking_declined(
        self, guest_id: str, booking_id: str, property_title: str, reason: Optional[str] = None
    ):
        message = f'Your booking for "{property_title}" has been declined.'
        if reason:
            message += f" Reason: {reason}"
        return await self.create_notification(
            guest_id,
            "Booking Declined",
            message,
            "BOOKING",
            data={"bookingId": booking_id, "reason": reason},
            action_url="/search",
            action_text="Find Another Property",
            send_email_flag=True,
        )

    # ============================================================================
    # PAYMENTS
    # ============================================================================

    async def payment_success(self, user_id: str, payment_id: str, amount: float):
        return await self.create_notification(
            user_id,
            "Payment Successful",
            "Your payment has been processed successfully.",
            "PAYMENT",
            data={"paymentId": payment_id, "amount": amount},
            action_url=f"/payments/{payment_id}",
            action_text="View Payment",
            send_email_flag=True,
            send_sms_flag=True,
        )

    async def payment_failed(self, user_id: str, payment_id: str, amount: float):
        return await self.create_notification(
            user_id,
            "Payment Failed",
            "Your payment could not be processed. Please try again or use a different payment method.",
            "PAYMENT",
            data={"paymentId": payment_id, "amount": amount},
            action_url=f"/payments/{payment_id}",
            action_text="Retry Payment",
            send_email_flag=True,
        )

    async def payment_received(self, host_id: str, amount: float, guest_name: str, property_title: str):
        return await self.create_notification(
            host_id,
            "Payment Received",
            f'You\'ve received a payment of AED {amount} from {guest_name} for "{property_title}".',
            "PAYMENT",
            data={"amount": amount},
            action_url="/host/earnings",
            action_text="View Earnings",
            send_email_flag=True,
        )

    # ============================================================================
    # REVIEWS AND MESSAGES
    # ============================================================================

    async def new_review(self, host_id: str, review_id: str, property_id: str, rating: int):
        return await self.create_notification(
            host_id,
            "New Review Received",
            f"You received a new {rating}-star review for your property.",
            "REVIEW",
            data={"reviewId": review_id, "propertyId": property_id, "rating": rating},
            action_url=f"/host/reviews/{review_id}",
            action_text="View Review",
            send_email_flag=True,
        )

    async def review_response(self, guest_id: str, review_id: str, property_title: str):
        return await self.create_notification(
            guest_id,
            "Host Responded to Your Review",
            f'The host of "{property_title}" responded to your review.',
            "REVIEW",
            data={"reviewId": review_id},
            action_url=f"/reviews/{review_id}",
            action_text="View Response",
        )

    async def new_message(self, recipient_id: str, conversation_id: str, sender_name: str):
        return await self.create_notification(
            recipient_id,
            "New Message",
            f"You have a new message from {sender_name}.",
            "MESSAGE",
            data={"conversationId": conversation_id},
            action_url=f"/messages?conversation={conversation_id}",
            action_text="View Message",
            send_email_flag=True,
        )

    # ============================================================================
    # PROPERTIES, KYC AND VIEWINGS
    # ============================================================================

    async def property_approved(self, host_id: str, property_id: str, property_title: str):
        return await self.create_notification(
            host_id,
            "Property Approved",
            f'Your property "{property_title}" has been approved and is now live.',
            "PROPERTY",
            data={"propertyId": property_id},
            action_url=f"/properties/{property_id}",
            action_text="View Property",
            send_email_flag=True,
        )

    async def property_rejected(
        self, host_id: str, property_id: str, property_title: str, reason: Optional[str] = None
    ):
        message = f'Your property "{property_title}" requires updates before it can go live.'
        if reason:
            message += f" Reason: {reason}"
        return await self.create_notification(
            host_id,
            "Property Requires Updates",
            message,
            "PROPERTY",
            data={"propertyId": property_id, "reason": reason},
            action_url=f"/host/properties/{property_id}/edit",
            action_text="Update Property",
            send_email_flag=True,
        )

    async def kyc_approved(self, user_id: str):
        return await self.create_notification(
            user_id,
            "Identity Verification Approved",
            "Your identity has been verified. You now have full access to the platform.",
            "KYC",
            action_url="/profile",
            action_text="View Profile",
            send_email_flag=True,
        )

    async def kyc_rejected(self, user_id: str, reason: Optional[str] = None):
        message = "Your identity verification requires updates."
        if reason:
            message += f" Reason: {reason}"
        return await self.create_notification(
            user_id,
            "Identity Verification Requires Updates",
            message,
            "KYC",
            data={"reason": reason},
            action_url="/profile/verification",
            action_text="Update Documents",
            send_email_flag=True,
        )

    async def viewing_request(
        self, agent_id: str, request_id: str, guest_name: str, property_title: str, date: str, time: str
    ):
        return await self.create_notification(
            agent_id,
            "New Viewing Request",
            f'{guest_name} has requested to view "{property_title}" on {date} at {time}.',
            "BOOKING",
            data={"viewingRequestId": request_id},
            action_url="/agent/dashboard?tab=viewing-requests",
            action_text="Review Request",
            send_email_flag=True,
        )
