"""Booking repository - Database operations for bookings and their payments"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ...models import Booking, Payment, Property

ACTIVE_BOOKING_STATUSES = ("PENDING", "CONFIRMED")


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: str) -> Optional[Booking]:
        return (
            db.query(Booking)
            .options(joinedload(Booking.property), joinedload(Booking.guest))
            .filter(Booking.id == booking_id)
            .first()
        )

    @staticmethod
    def get_property(db: Session, property_id: str) -> Optional[Property]:
        return db.query(Property).filter(Property.id == property_id).first()

    @staticmethod
    def get_user_bookings(
        db: Session,
        user_id: str,
        status: Optional[str] = None,
        property_id: Optional[str] = None,
        host_id: Optional[str] = None,
        guest_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        """Bookings where the user is the guest or the host, newest first"""
        query = db.query(Booking).filter(or_(Booking.guest_id == user_id, Booking.host_id == user_id))

        if status:
            query = query.filter(Booking.status == status)
        if property_id:
            query = query.filter(Booking.property_id == property_id)
        if host_id:
            query = query.filter(Booking.host_id == host_id)
        if guest_id:
            query = query.filter(Booking.guest_id == guest_id)
        if start_date:
            query = query.filter(Booking.created_at >= start_date)
        if end_date:
            query = query.filter(Booking.created_at <= end_date)

        total = query.count()
        bookings = (
            query.options(joinedload(Booking.property), joinedload(Booking.guest))
            .order_by(Booking.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return bookings, total

    @staticmethod
    def find_conflicts(
        db: Session,
        property_id: str,
        check_in: datetime,
        check_out: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> list[Booking]:
        """PENDING/CONFIRMED bookings whose stay overlaps [check_in, check_out)"""
        query = db.query(Booking).filter(
            Booking.property_id == property_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.check_in).all()

    @staticmethod
    def create_booking(db: Session, payments: list[dict], **booking_data) -> Booking:
        """Insert the booking and its payment rows in one commit"""
        booking = Booking(**booking_data)
        db.add(booking)
        db.flush()
        for payment_data in payments:
            db.add(Payment(booking_id=booking.id, **payment_data))
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def cancel_pending_payments(db: Session, booking_id: str) -> int:
        return (
            db.query(Payment)
            .filter(Payment.booking_id == booking_id, Payment.status == "PENDING")
            .update({Payment.status: "CANCELLED"}, synchronize_session=False)
        )
