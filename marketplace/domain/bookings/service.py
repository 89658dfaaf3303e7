"""Booking service - Business logic for reservations, pricing and cancellation"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_CURRENCY, SERVICE_FEE_RATE
from ...models import Booking, Property, User
from ...services import socket_service
from ...services.notification_service import NotificationService
from ...shared.validators import to_naive_utc
from ...utils.serializers import serialize_booking
from .repository import BookingRepository
from .schemas import BookingCreate, BookingUpdate

logger = logging.getLogger(__name__)

PAYMENT_DUE_HOURS = 24


def price_stay(prop: Property, check_in: datetime, check_out: datetime) -> dict:
    """
    Price a stay: nightly base, one cleaning fee and a 15% service fee on the base.

    Partial days count as a full night.
    """
    nights = math.ceil((check_out - check_in).total_seconds() / 86400)
    base_amount = nights * (prop.base_price or 0)
    cleaning_fee = prop.cleaning_fee or 0
    service_fee = round(base_amount * SERVICE_FEE_RATE)
    return {
        "nights": nights,
        "base_amount": base_amount,
        "cleaning_fee": cleaning_fee,
        "service_fee": service_fee,
        "total_amount": base_amount + cleaning_fee + service_fee,
    }


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    def get_booking_for_user(self, booking_id: str, user: User) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if user.id not in (booking.guest_id, booking.host_id):
            raise HTTPException(status_code=403, detail="Access denied to this booking")
        return booking

    def list_bookings(self, user: User, **filters) -> tuple[list[Booking], int]:
        return self.repo.get_user_bookings(self.db, user.id, **filters)

    def check_availability(self, property_id: str, check_in: datetime, check_out: datetime) -> dict:
        check_in, check_out = to_naive_utc(check_in), to_naive_utc(check_out)
        if check_in >= check_out:
            raise HTTPException(status_code=400, detail="Check-out date must be after check-in date")
        conflicts = self.repo.find_conflicts(self.db, property_id, check_in, check_out)
        return {
            "available": not conflicts,
            "conflictingBookings": [
                {"checkIn": b.check_in.isoformat(), "checkOut": b.check_out.isoformat(), "status": b.status}
                for b in conflicts
            ],
        }

    async def create_booking(self, data: BookingCreate, guest: User) -> Booking:
        check_in, check_out = to_naive_utc(data.checkIn), to_naive_utc(data.checkOut)

        if check_in >= check_out:
            raise HTTPException(status_code=400, detail="Check-out date must be after check-in date")
        if check_in <= datetime.utcnow():
            raise HTTPException(status_code=400, detail="Check-in date must be in the future")

        prop = self.repo.get_property(self.db, data.propertyId)
        if not prop:
            raise HTTPException(status_code=404, detail="Property not found")
        if not prop.is_active:
            raise HTTPException(status_code=400, detail="Property is not available")
        if data.guests > (prop.max_guests or 1):
            raise HTTPException(status_code=400, detail="Number of guests exceeds property limit")

        if self.repo.find_conflicts(self.db, prop.id, check_in, check_out):
            raise HTTPException(status_code=400, detail="Property is not available for selected dates")

        pricing = price_stay(prop, check_in, check_out)
        status = "CONFIRMED" if prop.is_instant_book else "PENDING"

        payments = [
            {
                "user_id": guest.id,
                "amount": pricing["total_amount"],
                "currency": DEFAULT_CURRENCY,
                "type": "BOOKING_PAYMENT",
                "method": "STRIPE",
                "status": "PENDING",
                "due_date": datetime.utcnow() + timedelta(hours=PAYMENT_DUE_HOURS),
            }
        ]
        if prop.security_deposit and prop.security_deposit > 0:
            payments.append(
                {
                    "user_id": guest.id,
                    "amount": prop.security_deposit,
                    "currency": DEFAULT_CURRENCY,
                    "type": "SECURITY_DEPOSIT",
                    "method": "STRIPE",
                    "status": "PENDING",
                    "due_date": check_in,
                }
            )

        booking = self.repo.create_booking(
            self.db,
            payments,
            property_id=prop.id,
            guest_id=guest.id,
            host_id=prop.host_id,
            check_in=check_in,
            check_out=check_out,
            guests=data.guests,
            status=status,
            guest_info=data.guestInfo.model_dump(),
            special_requests=data.specialRequests,
            **pricing,
        )
        logger.info(
            f"✅ Booking {booking.id} created: property={prop.id}, guest={guest.id}, "
            f"nights={pricing['nights']}, total={pricing['total_amount']} {DEFAULT_CURRENCY}, status={status}"
        )

        notifications = NotificationService(self.db)
        await notifications.booking_request(prop.host_id, booking.id, guest.full_name, prop.title)
        if status == "CONFIRMED":
            await notifications.booking_confirmation(guest.id, booking.id)

        await socket_service.send_booking_status_update(
            prop.host_id, {"bookingId": booking.id, "status": booking.status, "propertyId": prop.id}
        )
        return booking

    async def update_booking(self, booking_id: str, data: BookingUpdate, user: User) -> Booking:
        booking = self.get_booking_for_user(booking_id, user)
        is_host = user.id == booking.host_id
        prop = booking.property
        previous_status = booking.status

        if data.status and data.status != booking.status:
            if not is_host and data.status != "CANCELLED":
                raise HTTPException(status_code=403, detail="Only the host can change the booking status")
            booking.status = data.status
            if data.status == "CANCELLED":
                booking.cancelled_at = datetime.utcnow()
                booking.cancelled_by = user.id

        if data.checkIn or data.checkOut:
            check_in = to_naive_utc(data.checkIn) if data.checkIn else booking.check_in
            check_out = to_naive_utc(data.checkOut) if data.checkOut else booking.check_out
            if check_in >= check_out:
                raise HTTPException(status_code=400, detail="Check-out date must be after check-in date")
            if self.repo.find_conflicts(self.db, booking.property_id, check_in, check_out, booking.id):
                raise HTTPException(status_code=400, detail="Property is not available for selected dates")
            booking.check_in = check_in
            booking.check_out = check_out
            for field, value in price_stay(prop, check_in, check_out).items():
                setattr(booking, field, value)

        if data.guests is not None:
            if data.guests > (prop.max_guests or 1):
                raise HTTPException(status_code=400, detail="Number of guests exceeds property limit")
            booking.guests = data.guests

        if data.specialRequests is not None:
            booking.special_requests = data.specialRequests

        self.db.commit()
        self.db.refresh(booking)

        if booking.status != previous_status:
            await self._notify_status_change(booking, user)

        return booking

    async def _notify_status_change(self, booking: Booking, actor: User) -> None:
        notifications = NotificationService(self.db)
        title = booking.property.title if booking.property else "your property"

        if actor.id == booking.host_id:
            recipient_id = booking.guest_id
            if booking.status == "CONFIRMED":
                await notifications.booking_approved(booking.guest_id, booking.id, title)
            elif booking.status == "CANCELLED":
                await notifications.booking_declined(booking.guest_id, booking.id, title, booking.cancellation_reason)
            else:
                await notifications.create_notification(
                    booking.guest_id,
                    "Booking Updated",
                    f'Your booking for "{title}" is now {booking.status.lower()}.',
                    "BOOKING",
                    data={"bookingId": booking.id, "status": booking.status},
                    action_url=f"/bookings/{booking.id}",
                )
        else:
            recipient_id = booking.host_id
            await notifications.create_notification(
                booking.host_id,
                "Booking Cancelled",
                f'{actor.full_name} cancelled their booking for "{title}".',
                "BOOKING",
                data={"bookingId": booking.id, "status": booking.status},
                action_url=f"/host/bookings/{booking.id}",
                send_email_flag=True,
            )

        await socket_service.send_booking_status_update(
            recipient_id, {"bookingId": booking.id, "status": booking.status, "propertyId": booking.property_id}
        )

    async def cancel_booking(self, booking_id: str, user: User, reason: Optional[str] = None) -> Booking:
        booking = self.get_booking_for_user(booking_id, user)
        if booking.status in ("CANCELLED", "COMPLETED"):
            raise HTTPException(status_code=400, detail="Booking cannot be cancelled")

        booking.status = "CANCELLED"
        booking.cancellation_reason = reason or "Cancelled by user"
        booking.cancelled_at = datetime.utcnow()
        booking.cancelled_by = user.id
        cancelled_payments = self.repo.cancel_pending_payments(self.db, booking.id)
        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"🚫 Booking {booking.id} cancelled by {user.id} ({cancelled_payments} payments cancelled)")
        await self._notify_status_change(booking, user)
        return booking

    @staticmethod
    def to_dict(booking: Booking) -> dict:
        return serialize_booking(booking)
