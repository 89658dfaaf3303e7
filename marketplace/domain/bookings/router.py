"""Booking router - FastAPI endpoints for booking operations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...shared.validators import to_naive_utc
from ...utils.serializers import serialize_booking
from .schemas import BookingCancel, BookingCreate, BookingUpdate
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.get("")
async def get_bookings(
    status: Optional[str] = Query(None),
    propertyId: Optional[str] = Query(None),
    hostId: Optional[str] = Query(None),
    guestId: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings where the current user is the guest or the host"""
    bookings, total = service.list_bookings(
        current_user,
        status=status,
        property_id=propertyId,
        host_id=hostId,
        guest_id=guestId,
        start_date=to_naive_utc(startDate) if startDate else None,
        end_date=to_naive_utc(endDate) if endDate else None,
        limit=limit,
        offset=offset,
    )
    return {
        "success": True,
        "data": [serialize_booking(b) for b in bookings],
        "pagination": {"total": total, "limit": limit, "offset": offset, "hasMore": offset + len(bookings) < total},
    }


@router.get("/availability/{property_id}")
async def check_availability(
    property_id: str,
    checkIn: datetime = Query(...),
    checkOut: datetime = Query(...),
    service: BookingService = Depends(get_booking_service),
):
    return {"success": True, "data": service.check_availability(property_id, checkIn, checkOut)}


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.get_booking_for_user(booking_id, current_user)
    return {"success": True, "data": serialize_booking(booking)}


@router.post("", status_code=201)
async def create_booking(
    data: BookingCreate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.create_booking(data, current_user)
    return {"success": True, "data": serialize_booking(booking), "message": "Booking created successfully"}


@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.update_booking(booking_id, data, current_user)
    return {"success": True, "data": serialize_booking(booking), "message": "Booking updated successfully"}


@router.delete("/{booking_id}")
async def cancel_booking(
    booking_id: str,
    data: Optional[BookingCancel] = None,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.cancel_booking(booking_id, current_user, data.reason if data else None)
    return {"success": True, "data": serialize_booking(booking), "message": "Booking cancelled successfully"}
