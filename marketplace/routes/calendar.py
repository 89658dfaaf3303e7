"""
Calendar Routes
Host availability grid, date blocking, per-date pricing and monthly occupancy
"""

import calendar as pycalendar
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session, joinedload

from ..auth import require_host
from ..database import get_db
from ..models import Booking, CalendarBlock, CalendarPrice, Property, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["Calendar"])

GRID_CELLS = 42
CALENDAR_BOOKING_STATUSES = ("CONFIRMED", "PENDING", "COMPLETED")


class BlockDatesRequest(BaseModel):
    dates: list[date] = []
    reason: str = "Blocked by host"
    type: str = "BLOCKED"


class UnblockDatesRequest(BaseModel):
    dates: list[date] = []


class PricingRequest(BaseModel):
    dates: list[date] = []
    price: Optional[float] = None


def get_host_property(db: Session, property_id: str, user: User) -> Property:
    prop = db.query(Property).filter(Property.id == property_id, Property.host_id == user.id).first()
    if not prop:
        raise HTTPException(status_code=403, detail="Property not found or access denied")
    return prop


def require_dates(dates: list[date]) -> None:
    if not dates:
        raise HTTPException(status_code=400, detail="Dates array is required")


def resolve_month(year: Optional[int], month: Optional[int]) -> tuple[int, int]:
    """Month is 0-based (January = 0)"""
    today = datetime.utcnow().date()
    return (year if year is not None else today.year), (month if month is not None else today.month - 1)


def grid_start(first_of_month: date) -> date:
    """The Sunday on or before the first of the month"""
    return first_of_month - timedelta(days=(first_of_month.weekday() + 1) % 7)


def booking_dates(db: Session, property_id: str, start: date, end: date) -> list[Booking]:
    return (
        db.query(Booking)
        .options(joinedload(Booking.guest))
        .filter(
            Booking.property_id == property_id,
            Booking.status.in_(CALENDAR_BOOKING_STATUSES),
            Booking.check_in < datetime.combine(end + timedelta(days=1), datetime.min.time()),
            Booking.check_out >= datetime.combine(start, datetime.min.time()),
        )
        .all()
    )


def build_month_grid(
    prop: Property,
    year: int,
    month: int,
    bookings: list[Booking],
    blocks: dict[date, CalendarBlock],
    prices: dict[date, float],
    today: date,
) -> list[dict]:
    start = grid_start(date(year, month + 1, 1))
    cells = []
    for offset in range(GRID_CELLS):
        day = start + timedelta(days=offset)
        booking = next((b for b in bookings if b.check_in.date() <= day < b.check_out.date()), None)
        departing = next((b for b in bookings if b.check_out.date() == day), None)
        block = blocks.get(day)

        if booking:
            status = booking.status.lower()
        elif block:
            status = "blocked"
        else:
            status = None

        guest = booking.guest if booking else None
        cells.append(
            {
                "date": day.isoformat(),
                "isCurrentMonth": day.month == month + 1,
                "isToday": day == today,
                "isAvailable": not booking and not block and day >= today,
                "price": prices.get(day, prop.base_price),
                "bookingId": booking.id if booking else None,
                "guestName": f"{guest.first_name} {guest.last_name}" if guest else None,
                "status": status,
                "checkIn": bool(booking and booking.check_in.date() == day),
                "checkOut": departing is not None,
                "blockReason": block.reason if block else None,
            }
        )
    return cells


@router.get("/property/{property_id}")
async def get_property_calendar(
    property_id: str,
    year: Optional[int] = Query(None, ge=1970, le=2100),
    month: Optional[int] = Query(None, ge=0, le=11),
    current_user: User = Depends(require_host),
    db: Session = Depends(get_db),
):
    prop = get_host_property(db, property_id, current_user)
    year, month = resolve_month(year, month)

    start = grid_start(date(year, month + 1, 1))
    end = start + timedelta(days=GRID_CELLS - 1)

    bookings = booking_dates(db, prop.id, start, end)
    blocks = {
        b.date: b
        for b in db.query(CalendarBlock).filter(
            CalendarBlock.property_id == prop.id, CalendarBlock.date.between(start, end)
        )
    }
    prices = {
        p.date: p.price
        for p in db.query(CalendarPrice).filter(
            CalendarPrice.property_id == prop.id, CalendarPrice.date.between(start, end)
        )
    }

    return {
        "success": True,
        "data": {
            "property": {"id": prop.id, "title": prop.title, "basePrice": prop.base_price},
            "calendar": build_month_grid(prop, year, month, bookings, blocks, prices, datetime.utcnow().date()),
            "month": month,
            "year": year,
        },
    }


@router.post("/property/{property_id}/block")
async def block_dates(
    property_id: str,
    data: BlockDatesRequest,
    current_user: User = Depends(require_host),
    db: Session = Depends(get_db),
):
    require_dates(data.dates)
    prop = get_host_property(db, property_id, current_user)

    requested = sorted(set(data.dates))
    bookings = booking_dates(db, prop.id, requested[0], requested[-1])
    already_blocked = {
        d
        for (d,) in db.query(CalendarBlock.date).filter(
            CalendarBlock.property_id == prop.id, CalendarBlock.date.in_(requested)
        )
    }

    blocked = []
    for day in requested:
        if day in already_blocked:
            continue
        if any(b.check_in.date() <= day < b.check_out.date() for b in bookings):
            continue
        db.add(CalendarBlock(property_id=prop.id, date=day, reason=data.reason, type=data.type))
        blocked.append(day)
    db.commit()
    logger.info(f"📅 Blocked {len(blocked)} dates on property {prop.id}")

    return {
        "success": True,
        "message": f"{len(blocked)} dates blocked",
        "data": {
            "blocked": len(blocked),
            "skipped": len(requested) - len(blocked),
            "dates": [d.isoformat() for d in blocked],
        },
    }


@router.delete("/property/{property_id}/block")
async def unblock_dates(
    property_id: str,
    data: UnblockDatesRequest,
    current_user: User = Depends(require_host),
    db: Session = Depends(get_db),
):
    require_dates(data.dates)
    prop = get_host_property(db, property_id, current_user)

    unblocked = (
        db.query(CalendarBlock)
        .filter(CalendarBlock.property_id == prop.id, CalendarBlock.date.in_(data.dates))
        .delete(synchronize_session=False)
    )
    db.commit()
    return {"success": True, "message": f"{unblocked} dates unblocked", "data": {"unblocked": unblocked}}


@router.post("/property/{property_id}/pricing")
async def set_custom_pricing(
    property_id: str,
    data: PricingRequest,
    current_user: User = Depends(require_host),
    db: Session = Depends(get_db),
):
    require_dates(data.dates)
    if not data.price or data.price <= 0:
        raise HTTPException(status_code=400, detail="Valid price is required")
    prop = get_host_property(db, property_id, current_user)

    requested = sorted(set(data.dates))
    existing = {
        p.date: p
        for p in db.query(CalendarPrice).filter(
            CalendarPrice.property_id == prop.id, CalendarPrice.date.in_(requested)
        )
    }
    for day in requested:
        if day in existing:
            existing[day].price = data.price
        else:
            db.add(CalendarPrice(property_id=prop.id, date=day, price=data.price))
    db.commit()

    return {
        "success": True,
        "message": "Pricing updated",
        "data": {"dates": [d.isoformat() for d in requested], "price": data.price, "propertyId": prop.id},
    }


@router.get("/property/{property_id}/stats")
async def get_property_stats(
    property_id: str,
    year: Optional[int] = Query(None, ge=1970, le=2100),
    month: Optional[int] = Query(None, ge=0, le=11),
    current_user: User = Depends(require_host),
    db: Session = Depends(get_db),
):
    prop = get_host_property(db, property_id, current_user)
    year, month = resolve_month(year, month)

    days_in_month = pycalendar.monthrange(year, month + 1)[1]
    month_start = datetime(year, month + 1, 1)
    next_month = month_start + timedelta(days=days_in_month)

    bookings = (
        db.query(Booking)
        .filter(
            Booking.property_id == prop.id,
            Booking.status.in_(("CONFIRMED", "COMPLETED")),
            Booking.check_in >= month_start,
            Booking.check_in < next_month,
        )
        .all()
    )
    booked_days = sum(b.nights or 0 for b in bookings)

    return {
        "success": True,
        "data": {
            "month": month,
            "year": year,
            "totalEarnings": sum(b.total_amount or 0 for b in bookings),
            "totalBookings": len(bookings),
            "occupancyRate": round(booked_days / days_in_month * 100),
            "bookedDays": booked_days,
            "daysInMonth": days_in_month,
        },
    }
