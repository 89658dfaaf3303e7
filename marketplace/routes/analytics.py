"""
Analytics Routes
Admin platform metrics, event tracking and the host dashboard
"""

import logging
from datetime import date, datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_optional_user, require_admin
from ..database import get_db
from ..models import User
from ..rate_limiter import get_client_ip
from ..services.analytics_service import AnalyticsService, DateRange, default_range

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


class TrackEventRequest(BaseModel):
    eventType: Optional[str] = None
    data: dict[str, Any] = {}
    sessionId: Optional[str] = None


def get_analytics_service(db: Session = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)


def analytics_range(
    startDate: Optional[date] = Query(None),
    endDate: Optional[date] = Query(None),
) -> DateRange:
    start = datetime.combine(startDate, datetime.min.time()) if startDate else None
    end = datetime.combine(endDate, datetime.max.time()) if endDate else None
    window = default_range(start, end)
    if window.start > window.end:
        raise HTTPException(status_code=400, detail="startDate must be before endDate")
    return window


def range_payload(window: DateRange) -> dict:
    return {"startDate": window.start.isoformat(), "endDate": window.end.isoformat()}


# ============================================================================
# ADMIN METRICS
# ============================================================================


@router.get("/dashboard")
async def get_dashboard(
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    metrics = service.get_dashboard_metrics(window)
    return {"success": True, "data": {**metrics, "dateRange": range_payload(window)}}


@router.get("/revenue")
async def get_revenue(
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_revenue_metrics(window)}


@router.get("/bookings")
async def get_bookings(
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_booking_metrics(window)}


@router.get("/users")
async def get_users(
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_user_metrics(window)}


@router.get("/properties")
async def get_properties(
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_property_metrics(window)}


@router.get("/payments")
async def get_payments(
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_payment_metrics(window)}


@router.get("/regional")
async def get_regional(
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_regional_metrics(window)}


@router.get("/top-properties")
async def get_top_properties(
    limit: int = Query(10, ge=1, le=100),
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_top_properties(window, limit)}


@router.get("/revenue-chart")
async def get_revenue_chart(
    period: Literal["daily", "weekly", "monthly"] = Query("daily"),
    window: DateRange = Depends(analytics_range),
    admin: User = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_revenue_chart(window, period)}


# ============================================================================
# TRACKING AND HOST DASHBOARD
# ============================================================================


@router.post("/track")
async def track_event(
    data: TrackEventRequest,
    request: Request,
    current_user: Optional[User] = Depends(get_optional_user),
    service: AnalyticsService = Depends(get_analytics_service),
):
    if not data.eventType:
        raise HTTPException(status_code=400, detail="Event type is required")

    event = service.track_event(
        data.eventType,
        data=data.data,
        user_id=current_user.id if current_user else None,
        session_id=data.sessionId,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {"success": True, "data": {"id": event.id, "eventType": event.event_type}}


@router.get("/host")
async def get_host_dashboard(
    current_user: User = Depends(get_current_user),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return {"success": True, "data": service.get_host_analytics(current_user.id)}
