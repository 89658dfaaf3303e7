"""
Viewing Management Routes
Listing view tracking, agent availability, scheduled viewings, feedback and public viewing requests
"""

import logging
from datetime import date, datetime, timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_agent
from ..database import get_db
from ..email_service import EmailDeliveryError, send_viewing_confirmed_email, send_viewing_rejected_email
from ..models import Booking, Property, User
from ..models_viewing import AgentAvailabilitySlot, PropertyView, Viewing, ViewingFeedback, ViewingRequest
from ..rate_limiter import get_client_ip
from ..services.notification_service import NotificationService
from ..shared.validators import validate_email, validate_phone, validate_time_hhmm
from ..utils.serializers import iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/viewing-management", tags=["Viewings"])

VIEWING_STATUSES = ("scheduled", "confirmed", "in_progress", "completed", "cancelled", "no_show", "rescheduled")
SLOT_RELEASING_STATUSES = ("cancelled", "completed")
CALENDAR_DEFAULT_DAYS = 30


class TrackViewRequest(BaseModel):
    propertyId: str
    viewType: str = "online"
    durationSeconds: int = Field(0, ge=0)
    deviceInfo: Optional[str] = Field(None, max_length=500)
    referrerSource: Optional[str] = Field(None, max_length=255)
    pageViews: int = Field(1, ge=0)
    imagesViewed: int = Field(0, ge=0)
    contactFormOpened: bool = False
    phoneNumberRevealed: bool = False


class ScheduleViewingRequest(BaseModel):
    propertyId: str
    agentId: Optional[str] = None
    clientId: Optional[str] = None
    scheduledDate: date
    scheduledTime: str
    durationMinutes: int = Field(60, ge=5, le=480)
    viewingType: str = "in_person"
    clientName: Optional[str] = None
    clientPhone: Optional[str] = None
    clientEmail: Optional[str] = None
    notes: Optional[str] = None
    specialRequirements: Optional[str] = None

    @field_validator("scheduledTime")
    @classmethod
    def check_time(cls, v):
        return validate_time_hhmm(v)


class TimeSlot(BaseModel):
    startTime: str
    endTime: str
    isAvailable: bool = True
    notes: Optional[str] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def check_time(cls, v):
        return validate_time_hhmm(v)


class AvailabilityRequest(BaseModel):
    slot_date: Optional[date] = Field(None, alias="date")
    timeSlots: Optional[list[TimeSlot]] = None


class ViewingStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class ViewingFeedbackCreate(BaseModel):
    clientRating: Optional[int] = Field(None, ge=1, le=5)
    clientFeedback: Optional[str] = None
    clientInterestLevel: Optional[Literal["low", "medium", "high"]] = None
    agentNotes: Optional[str] = None
    propertyConditionNotes: Optional[str] = None
    followUpRequired: bool = False
    followUpDate: Optional[date] = None
    nextAction: Optional[str] = Field(None, max_length=255)
    bookingLikelihood: Optional[int] = Field(None, ge=0, le=100)


class ViewingRequestCreate(BaseModel):
    propertyId: Optional[str] = None
    propertyTitle: Optional[str] = None
    guestName: Optional[str] = None
    guestEmail: Optional[str] = None
    guestPhone: Optional[str] = None
    requestedDate: Optional[date] = None
    requestedTime: Optional[str] = None
    message: Optional[str] = Field(None, max_length=2000)
    agentId: Optional[str] = None


class ViewingRequestUpdate(BaseModel):
    status: str


def require_self(agent_id: str, user: User) -> None:
    if agent_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")


def period_start(period: int) -> datetime:
    return datetime.utcnow() - timedelta(days=period)


def serialize_viewing(viewing: Viewing) -> dict:
    return {
        "id": viewing.id,
        "propertyId": viewing.property_id,
        "agentId": viewing.agent_id,
        "clientId": viewing.client_id,
        "scheduledDate": iso(viewing.scheduled_date),
        "scheduledTime": viewing.scheduled_time,
        "durationMinutes": viewing.duration_minutes,
        "viewingType": viewing.viewing_type,
        "clientName": viewing.client_name,
        "clientPhone": viewing.client_phone,
        "clientEmail": viewing.client_email,
        "notes": viewing.notes,
        "specialRequirements": viewing.special_requirements,
        "status": viewing.status,
        "createdAt": iso(viewing.created_at),
        "updatedAt": iso(viewing.updated_at),
    }


def serialize_slot(slot: AgentAvailabilitySlot) -> dict:
    return {
        "id": slot.id,
        "agentId": slot.agent_id,
        "date": iso(slot.date),
        "startTime": slot.start_time,
        "endTime": slot.end_time,
        "isAvailable": slot.is_available,
        "isBooked": slot.is_booked,
        "bookingId": slot.booking_id,
        "notes": slot.notes,
    }


def serialize_viewing_request(req: ViewingRequest) -> dict:
    return {
        "id": req.id,
        "propertyId": req.property_id,
        "propertyTitle": req.property_title,
        "guestName": req.guest_name,
        "guestEmail": req.guest_email,
        "guestPhone": req.guest_phone,
        "requestedDate": iso(req.requested_date),
        "requestedTime": req.requested_time,
        "status": req.status,
        "message": req.message,
        "createdAt": iso(req.created_at),
    }


def property_brief(prop: Optional[Property]) -> dict:
    if not prop:
        return {"id": None, "title": None, "address": "", "images": []}
    address = ", ".join(p for p in (prop.address, prop.city, prop.emirate) if p)
    return {"id": prop.id, "title": prop.title, "address": address, "images": prop.images or []}


# ============================================================================
# VIEW TRACKING AND ANALYTICS
# ============================================================================


@router.post("/track-view")
async def track_view(
    data: TrackViewRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prop = db.query(Property).filter(Property.id == data.propertyId).first()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")

    view = PropertyView(
        property_id=prop.id,
        viewer_id=current_user.id,
        agent_id=prop.host_id,
        view_type=data.viewType,
        duration_seconds=data.durationSeconds,
        device_info=data.deviceInfo,
        referrer_source=data.referrerSource,
        ip_address=get_client_ip(request),
        page_views=data.pageViews,
        images_viewed=data.imagesViewed,
        contact_form_opened=data.contactFormOpened,
        phone_number_revealed=data.phoneNumberRevealed,
    )
    db.add(view)
    db.commit()
    db.refresh(view)
    return {"success": True, "data": {"id": view.id, "propertyId": view.property_id, "agentId": view.agent_id}}


@router.get("/analytics/summary/{agent_id}")
async def agent_analytics_summary(
    agent_id: str,
    period: int = Query(30, ge=1, le=365),
    current_user: User = Depends(require_agent),
    db: Session = Depends(get_db),
):
    require_self(agent_id, current_user)
    since = period_start(period)

    viewings = (
        db.query(Viewing).filter(Viewing.agent_id == agent_id, Viewing.scheduled_date >= since.date()).all()
    )
    views = db.query(PropertyView).filter(PropertyView.agent_id == agent_id, PropertyView.view_date >= since).all()

    total_viewings = len(viewings)
    completed = sum(1 for v in viewings if v.status == "completed")
    cancelled = sum(1 for v in viewings if v.status in ("cancelled", "no_show"))
    total_views = len(views)

    return {
        "success": True,
        "data": {
            "totalViewings": total_viewings,
            "completedViewings": completed,
            "cancelledViewings": cancelled,
            "completionRate": round(completed / total_viewings * 100) if total_viewings else 0,
            "totalPropertyViews": total_views,
            "uniqueViewers": len({v.viewer_id for v in views if v.viewer_id}),
            "conversionRate": round(total_viewings / total_views * 100, 2) if total_views else 0,
            "period": period,
        },
    }


@router.get("/analytics/{property_id}")
async def property_view_analytics(
    property_id: str,
    period: int = Query(30, ge=1, le=365),
    current_user: User = Depends(require_agent),
    db: Session = Depends(get_db),
):
    since = period_start(period)
    views = (
        db.query(PropertyView)
        .filter(PropertyView.property_id == property_id, PropertyView.view_date >= since)
        .order_by(PropertyView.view_date.desc())
        .all()
    )
    viewings = (
        db.query(Viewing).filter(Viewing.property_id == property_id, Viewing.scheduled_date >= since.date()).all()
    )

    total_views = len(views)
    daily_views: dict[str, int] = {}
    for v in views:
        day = v.view_date.date().isoformat() if v.view_date else "unknown"
        daily_views[day] = daily_views.get(day, 0) + 1

    scheduled = len(viewings)
    return {
        "success": True,
        "data": {
            "totalViews": total_views,
            "uniqueViewers": len({v.viewer_id for v in views if v.viewer_id}),
            "avgDuration": round(sum(v.duration_seconds or 0 for v in views) / total_views) if total_views else 0,
            "contactFormOpens": sum(1 for v in views if v.contact_form_opened),
            "phoneReveals": sum(1 for v in views if v.phone_number_revealed),
            "scheduledViewings": scheduled,
            "completedViewings": sum(1 for v in viewings if v.status == "completed"),
            "conversionRate": round(scheduled / total_views * 100, 2) if total_views else 0,
            "dailyViews": daily_views,
            "period": period,
        },
    }


# ============================================================================
# SCHEDULED VIEWINGS
# ============================================================================


@router.post("/schedule-viewing")
async def schedule_viewing(
    data: ScheduleViewingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prop = db.query(Property).filter(Property.id == data.propertyId).first()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")

    if data.agentId and not db.query(User.id).filter(User.id == data.agentId).first():
        raise HTTPException(status_code=404, detail="Agent not found")
    if data.clientId and not db.query(User.id).filter(User.id == data.clientId).first():
        raise HTTPException(status_code=404, detail="Client not found")

    agent_id = data.agentId or prop.host_id
    viewing = Viewing(
        property_id=prop.id,
        agent_id=agent_id,
        client_id=data.clientId or current_user.id,
        scheduled_date=data.scheduledDate,
        scheduled_time=data.scheduledTime,
        duration_minutes=data.durationMinutes,
        viewing_type=data.viewingType,
        client_name=data.clientName or current_user.full_name,
        client_phone=data.clientPhone or current_user.phone,
        client_email=data.clientEmail or current_user.email,
        notes=data.notes,
        special_requirements=data.specialRequirements,
        status="scheduled",
    )
    db.add(viewing)
    db.flush()

    db.query(AgentAvailabilitySlot).filter(
        AgentAvailabilitySlot.agent_id == agent_id,
        AgentAvailabilitySlot.date == data.scheduledDate,
        AgentAvailabilitySlot.start_time == data.scheduledTime,
    ).update({AgentAvailabilitySlot.is_booked: True, AgentAvailabilitySlot.booking_id: viewing.id}, synchronize_session=False)
    db.commit()
    db.refresh(viewing)
    logger.info(f"📅 Viewing {viewing.id} scheduled for property {prop.id} on {data.scheduledDate}")

    return {"success": True, "data": serialize_viewing(viewing), "message": "Viewing scheduled successfully"}


@router.get("/calendar/{agent_id}")
async def agent_calendar(
    agent_id: str,
    startDate: Optional[date] = Query(None),
    endDate: Optional[date] = Query(None),
    current_user: User = Depends(require_agent),
    db: Session = Depends(get_db),
):
    require_self(agent_id, current_user)
    start = startDate or datetime.utcnow().date()
    end = endDate or start + timedelta(days=CALENDAR_DEFAULT_DAYS)

    viewings = (
        db.query(Viewing)
        .filter(Viewing.agent_id == agent_id, Viewing.scheduled_date >= start, Viewing.scheduled_date <= end)
        .all()
    )
    events = [
        {
            "id": v.id,
            "title": f"Property Viewing - {v.property.title if v.property else 'Property'}",
            "type": "viewing",
            "date": v.scheduled_date.isoformat(),
            "time": v.scheduled_time,
            "duration": v.duration_minutes,
            "status": v.status,
            "property": property_brief(v.property),
            "client": {"id": v.client_id, "name": v.client_name, "phone": v.client_phone, "email": v.client_email},
            "notes": v.notes,
            "specialRequirements": v.special_requirements,
            "viewingType": v.viewing_type,
        }
        for v in viewings
    ]

    range_start = datetime.combine(start, datetime.min.time())
    range_end = datetime.combine(end + timedelta(days=1), datetime.min.time())
    bookings = (
        db.query(Booking)
        .join(Property, Booking.property_id == Property.id)
        .filter(
            Property.host_id == agent_id,
            Booking.status.in_(("PENDING", "CONFIRMED", "COMPLETED")),
            (
                (Booking.check_in >= range_start) & (Booking.check_in < range_end)
                | (Booking.check_out >= range_start) & (Booking.check_out < range_end)
            ),
        )
        .all()
    )
    for b in bookings:
        guest = b.guest
        for event_type, moment in (("check_in", b.check_in), ("check_out", b.check_out)):
            if not range_start <= moment < range_end:
                continue
            label = "Check-in" if event_type == "check_in" else "Check-out"
            events.append(
                {
                    "id": f"{b.id}-{event_type}",
                    "title": f"{label} - {b.property.title if b.property else 'Property'}",
                    "type": event_type,
                    "date": moment.date().isoformat(),
                    "time": moment.strftime("%H:%M"),
                    "duration": 60,
                    "status": b.status.lower(),
                    "property": property_brief(b.property),
                    "client": {
                        "id": b.guest_id,
                        "name": guest.full_name if guest else "",
                        "phone": guest.phone if guest else None,
                        "email": guest.email if guest else None,
                    },
                    "booking": {
                        "checkIn": iso(b.check_in),
                        "checkOut": iso(b.check_out),
                        "totalAmount": b.total_amount,
                        "status": b.status,
                    },
                }
            )

    events.sort(key=lambda e: (e["date"], e["time"] or "00:00"))
    return {"success": True, "data": events}


@router.put("/viewing/{viewing_id}/status")
async def update_viewing_status(
    viewing_id: str,
    data: ViewingStatusUpdate,
    current_user: User = Depends(require_agent),
    db: Session = Depends(get_db),
):
    if data.status not in VIEWING_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    viewing = db.query(Viewing).filter(Viewing.id == viewing_id, Viewing.agent_id == current_user.id).first()
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
    db.commit()
    db.refresh(viewing)

    return {"success": True, "data": serialize_viewing(viewing), "message": f"Viewing {data.status} successfully"}


@router.post("/viewing/{viewing_id}/feedback")
async def add_viewing_feedback(
    viewing_id: str,
    data: ViewingFeedbackCreate,
    current_user: User = Depends(require_agent),
    db: Session = Depends(get_db),
):
    viewing = db.query(Viewing).filter(Viewing.id == viewing_id, Viewing.agent_id == current_user.id).first()
    if not viewing:
        raise HTTPException(status_code=404, detail="Viewing not found")

    feedback = ViewingFeedback(
        viewing_id=viewing.id,
        client_rating=data.clientRating,
        client_feedback=data.clientFeedback,
        client_interest_level=data.clientInterestLevel,
        agent_notes=data.agentNotes,
        property_condition_notes=data.propertyConditionNotes,
        follow_up_required=data.followUpRequired,
        follow_up_date=data.followUpDate,
        next_action=data.nextAction,
        booking_likelihood=data.bookingLikelihood,
    )
    db.add(feedback)
    db.commit()
    db.refresh(feedback)

    return {
        "success": True,
        "data": {
            "id": feedback.id,
            "viewingId": feedback.viewing_id,
            "clientRating": feedback.client_rating,
            "clientInterestLevel": feedback.client_interest_level,
            "followUpRequired": feedback.follow_up_required,
            "bookingLikelihood": feedback.booking_likelihood,
            "createdAt": iso(feedback.created_at),
        },
        "message": "Feedback added successfully",
    }


# ============================================================================
# AGENT AVAILABILITY
# ============================================================================


@router.get("/availability/{agent_id}")
async def get_agent_availability(
    agent_id: str,
    date: Optional[date] = Query(None),
    current_user: User = Depends(require_agent),
    db: Session = Depends(get_db),
):
    require_self(agent_id, current_user)
    target = date or datetime.utcnow().date()
    slots = (
        db.query(AgentAvailabilitySlot)
        .filter(AgentAvailabilitySlot.agent_id == agent_id, AgentAvailabilitySlot.date == target)
        .order_by(AgentAvailabilitySlot.start_time)
        .all()
    )
    return {"success": True, "data": [serialize_slot(s) for s in slots]}


@router.post("/availability/{agent_id}")
async def set_agent_availability(
    agent_id: str,
    data: AvailabilityRequest,
    current_user: User = Depends(require_agent),
    db: Session = Depends(get_db),
):
    require_self(agent_id, current_user)
    if not data.slot_date or data.timeSlots is None:
        raise HTTPException(status_code=400, detail="Date and time slots are required")

    db.query(AgentAvailabilitySlot).filter(
        AgentAvailabilitySlot.agent_id == agent_id, AgentAvailabilitySlot.date == data.slot_date
    ).delete(synchronize_session=False)

    slots = [
        AgentAvailabilitySlot(
            agent_id=agent_id,
            date=data.slot_date,
            start_time=slot.startTime,
            end_time=slot.endTime,
            is_available=slot.isAvailable,
            notes=slot.notes,
        )
        for slot in data.timeSlots
    ]
    db.add_all(slots)
    db.commit()

    return {
        "success": True,
        "data": [serialize_slot(s) for s in sorted(slots, key=lambda s: s.start_time)],
        "message": "Availability updated successfully",
    }


# ============================================================================
# PUBLIC VIEWING REQUESTS
# ============================================================================


@router.post("/viewing-requests")
async def create_viewing_request(data: ViewingRequestCreate, db: Session = Depends(get_db)):
    required = (data.propertyId, data.guestName, data.guestEmail, data.guestPhone, data.requestedDate, data.requestedTime)
    if not all(required):
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        guest_email = validate_email(data.guestEmail)
        guest_phone = validate_phone(data.guestPhone)
        requested_time = validate_time_hhmm(data.requestedTime)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    prop = db.query(Property).filter(Property.id == data.propertyId).first()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")

    viewing_request = ViewingRequest(
        property_id=prop.id,
        property_title=data.propertyTitle or prop.title,
        guest_name=data.guestName.strip(),
        guest_email=guest_email,
        guest_phone=guest_phone,
        requested_date=data.requestedDate,
        requested_time=requested_time,
        message=data.message or "",
        agent_id=data.agentId or prop.host_id,
        status="pending",
    )
    db.add(viewing_request)
    db.commit()
    db.refresh(viewing_request)
    logger.info(f"📨 Viewing request {viewing_request.id} for property {prop.id}")

    await NotificationService(db).viewing_request(
        viewing_request.agent_id,
        viewing_request.id,
        viewing_request.guest_name,
        viewing_request.property_title,
        viewing_request.requested_date.isoformat(),
        viewing_request.requested_time,
    )

    return {
        "success": True,
        "data": serialize_viewing_request(viewing_request),
        "message": "Viewing request submitted successfully",
    }


@router.get("/viewing-requests/{agent_id}")
async def list_viewing_requests(
    agent_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_self(agent_id, current_user)
    requests = (
        db.query(ViewingRequest)
        .filter(ViewingRequest.agent_id == agent_id)
        .order_by(ViewingRequest.created_at.desc())
        .all()
    )
    return {"success": True, "data": [serialize_viewing_request(r) for r in requests]}


@router.put("/viewing-requests/{request_id}")
async def respond_to_viewing_request(
    request_id: str,
    data: ViewingRequestUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if data.status not in ("confirmed", "rejected"):
        raise HTTPException(status_code=400, detail="Invalid status")

    viewing_request = (
        db.query(ViewingRequest)
        .filter(ViewingRequest.id == request_id, ViewingRequest.agent_id == current_user.id)
        .first()
    )
    if not viewing_request:
        raise HTTPException(status_code=404, detail="Viewing request not found")

    viewing_request.status = data.status
    db.commit()
    db.refresh(viewing_request)

    title = viewing_request.property_title or "the property"
    try:
        if data.status == "confirmed":
            await send_viewing_confirmed_email(
                viewing_request.guest_email,
                viewing_request.guest_name,
                title,
                viewing_request.requested_date.isoformat(),
                viewing_request.requested_time,
            )
        else:
            await send_viewing_rejected_email(viewing_request.guest_email, viewing_request.guest_name, title)
    except EmailDeliveryError as e:
        logger.error(f"❌ Viewing request email failed for {viewing_request.id}: {e}")

    return {
        "success": True,
        "data": serialize_viewing_request(viewing_request),
        "message": f"Viewing request {data.status} successfully",
    }
