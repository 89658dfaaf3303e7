"""
Host Routes
Payout summary derived from bookings and recorded payouts
"""

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import DEFAULT_CURRENCY, PLATFORM_FEE_RATE
from ..database import get_db
from ..models import Booking, Payout, Property, User
from ..utils.serializers import iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/host", tags=["Host"])

PAYOUT_EXPECTED_DAYS = 3


def net_of_fee(amount: float) -> float:
    return round((amount or 0) * (1 - PLATFORM_FEE_RATE), 2)


def platform_fee_for(payment) -> float:
    """Commission kept on a settled booking payment; deposits and refunds carry none."""
    if payment.type != "BOOKING_PAYMENT":
        return 0
    return round((payment.amount or 0) * PLATFORM_FEE_RATE, 2)


def empty_payout_summary() -> dict:
    return {
        "financial_summary": {
            "available_balance": 0,
            "pending_payout": 0,
            "total_paid_out": 0,
            "platform_fees": 0,
            "total_earnings": 0,
            "total_bookings": 0,
            "confirmed_bookings": 0,
            "completed_bookings": 0,
        },
        "payout_history": [],
        "bank_details": None,
    }


def derived_payout(booking: Booking, title: str, status: str) -> dict:
    stay = f"{booking.check_in.date().isoformat()} to {booking.check_out.date().isoformat()}"
    entry = {
        "id": f"{'payout' if status == 'COMPLETED' else 'pending'}-{booking.id}",
        "amount": net_of_fee(booking.total_amount),
        "currency": DEFAULT_CURRENCY,
        "status": status,
        "payout_method": "BANK_TRANSFER",
        "created_at": iso(booking.created_at),
        "booking_reference": booking.id,
        "property_title": title,
    }
    if status == "COMPLETED":
        entry["processed_at"] = iso(booking.created_at)
        entry["description"] = f"Payout for {title} ({stay})"
    else:
        entry["expected_date"] = iso(datetime.utcnow() + timedelta(days=PAYOUT_EXPECTED_DAYS))
        entry["description"] = f"Pending payout for {title} ({stay})"
    return entry


def recorded_payout(payout: Payout, titles: dict[str, str]) -> dict:
    booking = payout.booking
    title = titles.get(booking.property_id, "Property") if booking else "Property"
    return {
        "id": payout.id,
        "amount": payout.amount,
        "currency": payout.currency,
        "status": payout.status,
        "payout_method": payout.payout_method,
        "created_at": iso(payout.created_at),
        "processed_at": iso(payout.processed_at),
        "expected_date": iso(payout.expected_date),
        "booking_reference": payout.booking_id,
        "property_title": title,
        "description": payout.notes or f"Payout for {title}",
    }


def build_payout_summary(db: Session, host_id: str) -> dict:
    properties = db.query(Property).filter(Property.host_id == host_id).all()
    if not properties:
        return empty_payout_summary()

    titles = {p.id: p.title for p in properties}
    bookings = (
        db.query(Booking)
        .filter(Booking.property_id.in_(titles.keys()))
        .order_by(Booking.created_at.desc())
        .all()
    )
    payouts = db.query(Payout).filter(Payout.host_id == host_id).all()

    confirmed = [b for b in bookings if b.status == "CONFIRMED"]
    completed = [b for b in bookings if b.status == "COMPLETED"]
    confirmed_revenue = sum(b.total_amount or 0 for b in confirmed)
    completed_revenue = sum(b.total_amount or 0 for b in completed)

    total_paid_out = sum(p.amount for p in payouts if p.status == "COMPLETED")
    paid_booking_ids = {p.booking_id for p in payouts if p.booking_id}

    history = [recorded_payout(p, titles) for p in payouts]
    history += [
        derived_payout(b, titles.get(b.property_id, "Property"), "COMPLETED")
        for b in completed
        if b.id not in paid_booking_ids
    ]
    history += [derived_payout(b, titles.get(b.property_id, "Property"), "PROCESSING") for b in confirmed]
    history.sort(key=lambda entry: entry["created_at"] or "", reverse=True)

    return {
        "financial_summary": {
            "available_balance": round(net_of_fee(completed_revenue) - total_paid_out, 2),
            "pending_payout": net_of_fee(confirmed_revenue),
            "total_paid_out": round(total_paid_out, 2),
            "platform_fees": round((confirmed_revenue + completed_revenue) * PLATFORM_FEE_RATE, 2),
            "total_earnings": net_of_fee(confirmed_revenue + completed_revenue),
            "total_bookings": len(bookings),
            "confirmed_bookings": len(confirmed),
            "completed_bookings": len(completed),
        },
        "payout_history": history,
        "bank_details": None,
    }


@router.get("/payouts")
async def get_host_payouts(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "data": build_payout_summary(db, current_user.id)}
