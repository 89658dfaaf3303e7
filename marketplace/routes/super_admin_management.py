"""
Super Admin Management Routes
User, property, booking and viewing administration
"""

import logging
from datetime import datetime, timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..auth import require_admin
from ..database import get_db
from ..email_service import EmailDeliveryError, send_welcome_email
from ..models import Booking, Payment, Property, Review, User
from ..models_viewing import AgentAvailabilitySlot, Viewing
from ..security_utils import hash_password, sanitize_text
from ..services import socket_service
from ..services.notification_service import NotificationService
from ..shared.validators import validate_email
from ..utils.serializers import iso, serialize_booking, serialize_payment, serialize_profile, transform_property, user_summary
from .super_admin import pagination, range_start, record_admin_action, start_of_month, start_of_today
from .viewings import SLOT_RELEASING_STATUSES, VIEWING_STATUSES, serialize_viewing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/super-admin", tags=["Super Admin"])

ACTIVE_BOOKING_STATUSES = ("PENDING", "CONFIRMED")
BOOKING_STATUSES = ("PENDING", "CONFIRMED", "CANCELLED", "COMPLETED", "DISPUTED")
PROPERTY_SORT_FIELDS = {
    "created_at": Property.created_at,
    "title": Property.title,
    "base_price": Property.base_price,
    "rating": Property.rating,
}


class AdminUserCreate(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    is_host: bool = False
    is_agent: bool = False
    status: Literal["active", "suspended", "pending"] = "active"
    verification_level: str = "unverified"
    send_welcome_email: bool = False


class AdminUserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    is_host: Optional[bool] = None
    is_agent: Optional[bool] = None
    status: Optional[Literal["active", "suspended", "pending"]] = None
    verification_level: Optional[str] = None


class SuspendRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)
    duration: Optional[int] = Field(None, ge=1, le=3650)


class VerifyRequest(BaseModel):
    verification_level: str = "verified"
    approved: bool = True
    reason: Optional[str] = Field(None, max_length=1000)


class DeleteRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class AdminPropertyCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    property_type: Optional[str] = None
    listing_type: Optional[Literal["SHORT_TERM", "LONG_TERM"]] = None
    price_per_night: Optional[float] = Field(None, gt=0)
    price_per_month: Optional[float] = Field(None, gt=0)
    bedrooms: int = Field(0, ge=0)
    bathrooms: int = Field(0, ge=0)
    max_guests: int = Field(2, ge=1)
    area: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    emirate: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    amenities: list[str] = []
    images: list[str] = []
    host_id: Optional[str] = None
    is_featured: bool = False


class PropertyStatusUpdate(BaseModel):
    status: Literal["VERIFIED", "REJECTED", "PENDING"]
    reason: Optional[str] = Field(None, max_length=1000)


class BookingStatusUpdate(BaseModel):
    status: Literal["PENDING", "CONFIRMED", "CANCELLED", "COMPLETED", "DISPUTED"]
    reason: Optional[str] = Field(None, max_length=1000)


class DisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class EmergencyRequest(BaseModel):
    type: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=2000)
    priority: Literal["low", "medium", "high", "critical"] = "high"


class ViewingStatusRequest(BaseModel):
    status: str
    notes: Optional[str] = None


def admin_user(user: User) -> dict:
    data = serialize_profile(user)
    data.update(
        {
            "isActive": user.is_active,
            "isSuspended": user.is_suspended,
            "suspensionReason": user.suspension_reason,
            "suspensionDate": iso(user.suspension_date),
            "suspensionUntil": iso(user.suspension_until),
            "deletedAt": iso(user.deleted_at),
            "verifiedAt": iso(user.verified_at),
            "createdByAdmin": user.created_by_admin,
        }
    )
    return data


def admin_booking(booking: Booking) -> dict:
    data = serialize_booking(booking)
    data["host"] = user_summary(booking.host)
    data["disputeReason"] = booking.dispute_reason
    data["disputedAt"] = iso(booking.disputed_at)
    data["emergencyNotes"] = booking.emergency_notes or []
    return data


def get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_property_or_404(db: Session, property_id: str) -> Property:
    prop = db.query(Property).filter(Property.id == property_id).first()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


def get_booking_or_404(db: Session, booking_id: str) -> Booking:
    booking = (
        db.query(Booking)
        .options(joinedload(Booking.property), joinedload(Booking.guest), joinedload(Booking.host))
        .filter(Booking.id == booking_id)
        .first()
    )
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


# ============================================================================
# USERS
# ============================================================================


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    role: Optional[Literal["guest", "host", "agent"]] = Query(None),
    status: Optional[Literal["active", "suspended", "pending", "deleted"]] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(User)
    if role == "guest":
        query = query.filter(User.is_host.is_(False), User.is_agent.is_(False))
    elif role == "host":
        query = query.filter(User.is_host.is_(True))
    elif role == "agent":
        query = query.filter(User.is_agent.is_(True))
    if status:
        query = query.filter(User.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(User.first_name.ilike(pattern), User.last_name.ilike(pattern), User.email.ilike(pattern))
        )

    total = query.count()
    users = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    everyone = db.query(User).all()
    stats = {
        "total": len(everyone),
        "active": sum(1 for u in everyone if u.status == "active"),
        "suspended": sum(1 for u in everyone if u.status == "suspended"),
        "pending": sum(1 for u in everyone if u.status == "pending"),
        "deleted": sum(1 for u in everyone if u.status == "deleted"),
        "guests": sum(1 for u in everyone if not u.is_host and not u.is_agent),
        "hosts": sum(1 for u in everyone if u.is_host),
        "agents": sum(1 for u in everyone if u.is_agent),
        "verified": sum(1 for u in everyone if (u.verification_level or "").lower() == "verified"),
    }
    stats["unverified"] = stats["total"] - stats["verified"]

    return {
        "success": True,
        "data": {"users": [admin_user(u) for u in users], "pagination": pagination(page, limit, total), "stats": stats},
    }


@router.get("/users/{user_id}")
async def get_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    data = admin_user(user)
    data["counts"] = {
        "properties": db.query(Property).filter(Property.host_id == user.id).count(),
        "bookingsAsGuest": db.query(Booking).filter(Booking.guest_id == user.id).count(),
        "bookingsAsHost": db.query(Booking).filter(Booking.host_id == user.id).count(),
        "reviews": db.query(Review).filter(Review.guest_id == user.id).count(),
    }
    return {"success": True, "data": data}


@router.post("/users", status_code=201)
async def create_user(data: AdminUserCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if not (data.email and data.password and data.first_name and data.last_name):
        raise HTTPException(status_code=400, detail="Email, password, first name, and last name are required")

    try:
        email = validate_email(data.email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(data.password),
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        phone=data.phone,
        is_host=data.is_host,
        is_agent=data.is_agent,
        is_verified=True,
        is_active=data.status != "pending",
        is_suspended=data.status == "suspended",
        status=data.status,
        verification_level=data.verification_level.lower(),
        created_by_admin=True,
    )
    db.add(user)
    db.flush()
    record_admin_action(
        db,
        admin,
        "user_creation",
        user.id,
        {
            "email": email,
            "is_host": data.is_host,
            "is_agent": data.is_agent,
            "status": data.status,
            "send_welcome_email": data.send_welcome_email,
        },
    )
    db.commit()
    db.refresh(user)

    if data.send_welcome_email:
        try:
            await send_welcome_email(user.email, user.first_name)
        except EmailDeliveryError as e:
            logger.error(f"❌ Welcome email to {user.email} failed: {e}")

    return {"success": True, "data": admin_user(user), "message": "User created successfully"}


@router.put("/users/{user_id}")
async def update_user(
    user_id: str, data: AdminUserUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    user = get_user_or_404(db, user_id)
    updates = data.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in updates.items():
        setattr(user, field, value)
    if "status" in updates:
        user.is_suspended = updates["status"] == "suspended"
        user.is_active = updates["status"] != "pending"
    if "verification_level" in updates:
        user.verification_level = updates["verification_level"].lower()

    record_admin_action(db, admin, "user_update", user.id, {"updated_fields": sorted(updates)})
    db.commit()
    db.refresh(user)
    return {"success": True, "data": admin_user(user)}


@router.post("/users/{user_id}/suspend")
async def suspend_user(
    user_id: str,
    data: Optional[SuspendRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = data or SuspendRequest()
    user = get_user_or_404(db, user_id)
    if user.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot suspend your own account")

    now = datetime.utcnow()
    user.status = "suspended"
    user.is_suspended = True
    user.suspension_reason = data.reason
    user.suspension_date = now
    user.suspension_until = now + timedelta(days=data.duration) if data.duration else None

    record_admin_action(db, admin, "user_suspension", user.id, {"reason": data.reason, "duration": data.duration})
    db.commit()
    db.refresh(user)
    logger.info(f"🚫 User {user.email} suspended")
    return {"success": True, "data": admin_user(user)}


@router.post("/users/{user_id}/unsuspend")
async def unsuspend_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    user.status = "active"
    user.is_suspended = False
    user.suspension_reason = None
    user.suspension_date = None
    user.suspension_until = None

    record_admin_action(db, admin, "user_unsuspension", user.id)
    db.commit()
    db.refresh(user)
    return {"success": True, "data": admin_user(user)}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    data: Optional[DeleteRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    reason = data.reason if data else None
    user = get_user_or_404(db, user_id)
    if user.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    user.status = "deleted"
    user.is_active = False
    user.deleted_at = datetime.utcnow()
    user.deletion_reason = reason

    record_admin_action(db, admin, "user_deletion", user.id, {"reason": reason})
    db.commit()
    return {"success": True, "message": "User deleted successfully"}


@router.post("/users/{user_id}/verify")
async def verify_user(
    user_id: str,
    data: Optional[VerifyRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = data or VerifyRequest()
    user = get_user_or_404(db, user_id)
    if data.approved:
        user.verification_level = data.verification_level.lower()
        user.is_verified = True
        user.kyc_status = "approved"
        user.verified_at = datetime.utcnow()
        user.verified_by = admin.id
    else:
        user.kyc_status = "rejected"

    record_admin_action(
        db,
        admin,
        "user_verification" if data.approved else "user_verification_rejection",
        user.id,
        {"verification_level": user.verification_level, "reason": data.reason},
    )
    db.commit()
    db.refresh(user)

    notifications = NotificationService(db)
    if data.approved:
        await notifications.kyc_approved(user.id)
    else:
        await notifications.kyc_rejected(user.id, data.reason)
    return {"success": True, "data": admin_user(user)}


# ============================================================================
# PROPERTIES
# ============================================================================


@router.get("/properties")
async def list_properties(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    sortBy: str = Query("created_at"),
    sortOrder: Literal["asc", "desc"] = Query("desc"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Property).options(joinedload(Property.host))
    if status:
        query = query.filter(Property.verification_status == status)
    if type:
        query = query.filter(Property.type == type.upper())
    if location:
        pattern = f"%{location}%"
        query = query.filter(
            or_(Property.city.ilike(pattern), Property.emirate.ilike(pattern), Property.area.ilike(pattern))
        )
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Property.title.ilike(pattern), Property.description.ilike(pattern)))

    column = PROPERTY_SORT_FIELDS.get(sortBy, Property.created_at)
    query = query.order_by(column.asc() if sortOrder == "asc" else column.desc())

    total = query.count()
    properties = query.offset((page - 1) * limit).limit(limit).all()

    rows = []
    for prop in properties:
        row = transform_property(prop)
        row["owner"] = user_summary(prop.host)
        row["bookingsCount"] = db.query(Booking).filter(Booking.property_id == prop.id).count()
        row["reviewsCount"] = prop.review_count or 0
        row["statusReason"] = prop.status_reason
        rows.append(row)

    everything = db.query(Property.verification_status, Property.rental_type, Property.type).all()
    stats = {
        "total": len(everything),
        "active": sum(1 for s, _, _ in everything if s == "VERIFIED"),
        "pending": sum(1 for s, _, _ in everything if s == "PENDING"),
        "suspended": sum(1 for s, _, _ in everything if s == "REJECTED"),
        "deleted": sum(1 for s, _, _ in everything if s == "DELETED"),
        "shortTerm": sum(1 for _, r, _ in everything if r == "SHORT_TERM"),
        "longTerm": sum(1 for _, r, _ in everything if r == "LONG_TERM"),
        "apartments": sum(1 for _, _, t in everything if t == "APARTMENT"),
        "villas": sum(1 for _, _, t in everything if t == "VILLA"),
        "studios": sum(1 for _, _, t in everything if t == "STUDIO"),
    }

    return {
        "success": True,
        "data": {"properties": rows, "pagination": pagination(page, limit, total), "stats": stats},
    }


@router.post("/properties", status_code=201)
async def create_property(
    data: AdminPropertyCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    required = ("title", "description", "property_type", "listing_type", "city", "emirate", "host_id")
    if any(not getattr(data, field) for field in required):
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(required)}")

    host = db.query(User).filter(User.id == data.host_id).first()
    if not host:
        raise HTTPException(status_code=400, detail="Invalid host ID")
    if not host.is_host:
        raise HTTPException(status_code=400, detail="User is not registered as a host")
    if host.status != "active" or not host.is_active:
        raise HTTPException(status_code=400, detail="Host account is not active")

    if data.listing_type == "SHORT_TERM" and not data.price_per_night:
        raise HTTPException(status_code=400, detail="Price per night is required for short-term listings")
    if data.listing_type == "LONG_TERM" and not data.price_per_month:
        raise HTTPException(status_code=400, detail="Price per month is required for long-term listings")

    long_term = data.listing_type == "LONG_TERM"
    prop = Property(
        host_id=host.id,
        title=data.title.strip(),
        description=sanitize_text(data.description),
        type=data.property_type.upper(),
        rental_type=data.listing_type,
        base_price=data.price_per_night if not long_term else None,
        monthly_price=data.price_per_month if long_term else None,
        yearly_price=data.price_per_month * 12 if long_term else None,
        bedrooms=data.bedrooms,
        bathrooms=data.bathrooms,
        max_guests=data.max_guests,
        area=data.area,
        address=data.address,
        city=data.city,
        emirate=data.emirate,
        country=data.country or "UAE",
        latitude=data.latitude,
        longitude=data.longitude,
        amenities=data.amenities,
        images=data.images,
        is_featured=data.is_featured,
        verification_status="PENDING",
    )
    db.add(prop)
    db.flush()
    record_admin_action(
        db,
        admin,
        "property_creation",
        prop.id,
        {"title": prop.title, "listing_type": prop.rental_type, "city": prop.city, "emirate": prop.emirate},
    )
    db.commit()
    db.refresh(prop)

    row = transform_property(prop)
    row["owner"] = user_summary(host)
    return {"success": True, "data": row}


@router.put("/properties/{property_id}/status")
async def update_property_status(
    property_id: str,
    data: PropertyStatusUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    prop = get_property_or_404(db, property_id)
    prop.verification_status = data.status
    prop.status_reason = data.reason
    prop.status_updated_by = admin.id

    record_admin_action(db, admin, "property_status_change", prop.id, {"status": data.status, "reason": data.reason})
    db.commit()
    db.refresh(prop)

    notifications = NotificationService(db)
    if data.status == "VERIFIED":
        await notifications.property_approved(prop.host_id, prop.id, prop.title)
    elif data.status == "REJECTED":
        await notifications.property_rejected(prop.host_id, prop.id, prop.title, data.reason)

    return {"success": True, "data": transform_property(prop)}


@router.delete("/properties/{property_id}")
async def delete_property(
    property_id: str,
    data: Optional[DeleteRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    reason = (data.reason if data else None) or "Deleted by admin"
    prop = get_property_or_404(db, property_id)

    active = (
        db.query(Booking)
        .filter(Booking.property_id == prop.id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .count()
    )
    if active:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete property with active bookings. Please cancel or complete all bookings first.",
        )

    prop.verification_status = "DELETED"
    prop.status_reason = reason
    prop.status_updated_by = admin.id
    prop.is_active = False
    prop.deleted_at = datetime.utcnow()

    record_admin_action(db, admin, "property_deletion", prop.id, {"reason": reason})
    db.commit()
    return {"success": True, "message": "Property deleted successfully"}


# ============================================================================
# BOOKINGS
# ============================================================================


@router.get("/bookings")
async def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    dateRange: Optional[str] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Booking).options(
        joinedload(Booking.property), joinedload(Booking.guest), joinedload(Booking.host)
    )
    if status:
        query = query.filter(Booking.status == status)
    if dateRange:
        query = query.filter(Booking.created_at >= range_start(dateRange, default="30d"))
    if search:
        pattern = f"%{search}%"
        query = (
            query.join(User, Booking.guest_id == User.id)
            .join(Property, Booking.property_id == Property.id)
            .filter(
                or_(
                    Booking.id.ilike(pattern),
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                    User.email.ilike(pattern),
                    Property.title.ilike(pattern),
                )
            )
        )

    total = query.count()
    bookings = query.order_by(Booking.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    everything = db.query(Booking).options(joinedload(Booking.property)).all()
    today = start_of_today()
    month_start = start_of_month()
    stats = {status_name.lower(): sum(1 for b in everything if b.status == status_name) for status_name in BOOKING_STATUSES}
    stats.update(
        {
            "total": len(everything),
            "todayBookings": sum(1 for b in everything if b.created_at and b.created_at >= today),
            "monthlyRevenue": round(
                sum(
                    b.total_amount or 0
                    for b in everything
                    if b.status in ("CONFIRMED", "COMPLETED") and b.created_at and b.created_at >= month_start
                ),
                2,
            ),
            "shortTerm": sum(1 for b in everything if b.property and b.property.rental_type == "SHORT_TERM"),
            "longTerm": sum(1 for b in everything if b.property and b.property.rental_type == "LONG_TERM"),
        }
    )

    return {
        "success": True,
        "data": {
            "bookings": [admin_booking(b) for b in bookings],
            "pagination": pagination(page, limit, total),
            "stats": stats,
        },
    }


@router.get("/bookings/disputes/active")
async def list_active_disputes(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    disputes = (
        db.query(Booking)
        .options(joinedload(Booking.property), joinedload(Booking.guest), joinedload(Booking.host))
        .filter(Booking.status == "DISPUTED")
        .order_by(Booking.disputed_at.desc())
        .all()
    )
    return {"success": True, "data": [admin_booking(b) for b in disputes]}


@router.get("/bookings/emergencies/active")
async def list_active_emergencies(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    bookings = (
        db.query(Booking)
        .options(joinedload(Booking.property), joinedload(Booking.guest), joinedload(Booking.host))
        .filter(Booking.status.in_(("PENDING", "CONFIRMED", "DISPUTED")))
        .order_by(Booking.updated_at.desc())
        .all()
    )
    return {"success": True, "data": [admin_booking(b) for b in bookings if b.emergency_notes]}


@router.get("/bookings/{booking_id}")
async def get_booking(booking_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    booking = get_booking_or_404(db, booking_id)
    data = admin_booking(booking)
    payments = db.query(Payment).filter(Payment.booking_id == booking.id).order_by(Payment.created_at.desc()).all()
    review = db.query(Review).filter(Review.booking_id == booking.id).first()
    data["payments"] = [serialize_payment(p, include_booking=False) for p in payments]
    data["review"] = (
        {"id": review.id, "overallRating": review.overall_rating, "comment": review.comment} if review else None
    )
    return {"success": True, "data": data}


@router.put("/bookings/{booking_id}/status")
async def update_booking_status(
    booking_id: str,
    data: BookingStatusUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    booking = get_booking_or_404(db, booking_id)
    previous = booking.status
    booking.status = data.status
    if data.status == "CANCELLED":
        booking.cancelled_at = datetime.utcnow()
        booking.cancelled_by = admin.id
        booking.cancellation_reason = data.reason or "Cancelled by admin"

    record_admin_action(
        db, admin, "booking_status_change", booking.id, {"from": previous, "to": data.status, "reason": data.reason}
    )
    db.commit()
    db.refresh(booking)

    await socket_service.send_booking_status_update(
        booking.guest_id, {"bookingId": booking.id, "status": booking.status}
    )
    return {"success": True, "data": admin_booking(booking)}


@router.post("/bookings/{booking_id}/dispute")
async def open_dispute(
    booking_id: str,
    data: DisputeRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    booking = get_booking_or_404(db, booking_id)
    booking.status = "DISPUTED"
    booking.dispute_reason = data.reason
    booking.disputed_at = datetime.utcnow()

    record_admin_action(db, admin, "booking_dispute", booking.id, {"reason": data.reason})
    db.commit()
    db.refresh(booking)
    logger.warning(f"⚠️ Booking {booking.id} marked as disputed")
    return {"success": True, "data": admin_booking(booking)}


@router.post("/bookings/{booking_id}/emergency")
async def log_emergency(
    booking_id: str,
    data: EmergencyRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    booking = get_booking_or_404(db, booking_id)
    note = {
        "type": data.type,
        "description": data.description,
        "priority": data.priority,
        "reportedBy": admin.id,
        "reportedAt": iso(datetime.utcnow()),
    }
    booking.emergency_notes = [*(booking.emergency_notes or []), note]

    record_admin_action(db, admin, "emergency_response", booking.id, note)
    db.commit()
    db.refresh(booking)
    logger.warning(f"🚨 {data.priority} emergency logged on booking {booking.id}: {data.type}")
    return {"success": True, "data": admin_booking(booking)}


# ============================================================================
# VIEWINGS
# ============================================================================


@router.get("/viewings")
async def list_viewings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    agentId: Optional[str] = Query(None),
    propertyId: Optional[str] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Viewing)
    if status:
        query = query.filter(Viewing.status == status)
    if agentId:
        query = query.filter(Viewing.agent_id == agentId)
    if propertyId:
        query = query.filter(Viewing.property_id == propertyId)

    total = query.count()
    viewings = (
        query.order_by(Viewing.scheduled_date.desc(), Viewing.scheduled_time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    statuses = [s for (s,) in db.query(Viewing.status)]
    stats = {
        "total": len(statuses),
        "scheduled": statuses.count("scheduled"),
        "completed": statuses.count("completed"),
        "cancelled": statuses.count("cancelled"),
        "noShow": statuses.count("no_show"),
    }

    return {
        "success": True,
        "data": {
            "viewings": [serialize_viewing(v) for v in viewings],
            "pagination": pagination(page, limit, total),
            "stats": stats,
        },
    }


@router.put("/viewings/{viewing_id}/status")
async def update_viewing_status(
    viewing_id: str,
    data: ViewingStatusRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if data.status not in VIEWING_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    viewing = db.query(Viewing).filter(Viewing.id == viewing_id).first()
    if not viewing:
        raise HTTPException(status_code=404, detail="Viewing not found")

    viewing.status = data.status
    if data.notes:
        viewing.notes = data.notes
    if data.status in SLOT_RELEASING_STATUSES:
        db.query(AgentAvailabilitySlot).filter(AgentAvailabilitySlot.booking_id == viewing.id).update(
            {AgentAvailabilitySlot.is_booked: False, AgentAvailabilitySlot.booking_id: None},
            synchronize_session=False,
        )

    record_admin_action(db, admin, "viewing_status_change", viewing.id, {"status": data.status})
    db.commit()
    db.refresh(viewing)
    return {"success": True, "data": serialize_viewing(viewing)}
