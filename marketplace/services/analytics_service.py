"""
Analytics Service
Platform and host metrics aggregated from bookings, payments, users, properties and reviews
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, NamedTuple, Optional

from sqlalchemy.orm import Session

from ..models import AnalyticsEvent, Booking, Payment, Property, Review, User
from ..models_viewing import PropertyView
from ..utils.serializers import iso

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 30
HOST_TREND_MONTHS = 6
REVENUE_PAYMENT_TYPES = ("BOOKING_PAYMENT", "SECURITY_DEPOSIT")
OCCUPYING_STATUSES = ("CONFIRMED", "COMPLETED")


class DateRange(NamedTuple):
    start: datetime
    end: datetime

    @property
    def days(self) -> int:
        return max((self.end - self.start).days, 1)

    def previous(self) -> "DateRange":
        length = self.end - self.start
        return DateRange(self.start - length, self.start)

    def contains(self, value: Optional[datetime]) -> bool:
        return value is not None and self.start <= value <= self.end


def default_range(start: Optional[datetime] = None, end: Optional[datetime] = None) -> DateRange:
    end = end or datetime.utcnow()
    start = start or end - timedelta(days=DEFAULT_RANGE_DAYS)
    return DateRange(start, end)


def pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0


def growth(current: float, previous: float) -> float:
    return round((current - previous) / previous * 100, 2) if previous else 0


def average(values: list[float], digits: int = 2) -> float:
    return round(sum(values) / len(values), digits) if values else 0


def month_key(value: datetime) -> str:
    return f"{value.year}-{value.month:02d}"


def shift_month(value: date, months: int) -> date:
    total = value.year * 12 + value.month - 1 + months
    return date(total // 12, total % 12 + 1, 1)


def nights_within(booking: Booking, window: DateRange) -> int:
    """Booked nights of a stay that fall inside the window"""
    start = max(booking.check_in, window.start)
    end = min(booking.check_out, window.end)
    if end <= start:
        return 0
    return max((end.date() - start.date()).days, 0)


class AnalyticsService:
    """Read-only aggregations used by the admin analytics and host dashboards"""

    def __init__(self, db: Session):
        self.db = db

    # ============================================================================
    # LOADERS
    # ============================================================================

    def _completed_payments(self, window: DateRange) -> list[Payment]:
        return (
            self.db.query(Payment)
            .filter(
                Payment.status == "COMPLETED",
                Payment.type.in_(REVENUE_PAYMENT_TYPES),
                Payment.paid_at >= window.start,
                Payment.paid_at <= window.end,
            )
            .all()
        )

    def _bookings_created(self, window: DateRange) -> list[Booking]:
        return (
            self.db.query(Booking)
            .filter(Booking.created_at >= window.start, Booking.created_at <= window.end)
            .all()
        )

    def _occupying_bookings(self, window: DateRange, property_ids: Optional[list[str]] = None) -> list[Booking]:
        query = self.db.query(Booking).filter(
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.check_in < window.end,
            Booking.check_out > window.start,
        )
        if property_ids is not None:
            query = query.filter(Booking.property_id.in_(property_ids))
        return query.all()

    # ============================================================================
    # PLATFORM METRICS
    # ============================================================================

    def get_dashboard_metrics(self, window: DateRange) -> dict[str, Any]:
        return {
            "revenue": self.get_revenue_metrics(window),
            "bookings": self.get_booking_metrics(window),
            "users": self.get_user_metrics(window),
            "properties": self.get_property_metrics(window),
            "payments": self.get_payment_metrics(window),
            "regional": self.get_regional_metrics(window),
        }

    def get_revenue_metrics(self, window: DateRange) -> dict[str, Any]:
        current = self._completed_payments(window)
        previous = self._completed_payments(window.previous())

        now = datetime.utcnow()
        month_start = datetime(now.year, now.month, 1)
        monthly = self._completed_payments(DateRange(month_start, now))

        completed_bookings = [b for b in self._bookings_created(window) if b.status == "COMPLETED"]
        total_revenue = sum(p.amount for p in current)

        return {
            "totalRevenue": round(total_revenue, 2),
            "monthlyRevenue": round(sum(p.amount for p in monthly), 2),
            "revenueGrowth": growth(total_revenue, sum(p.amount for p in previous)),
            "averageBookingValue": average([b.total_amount for b in completed_bookings]),
            "platformFee": round(sum(p.platform_fee or 0 for p in current), 2),
        }

    def get_booking_metrics(self, window: DateRange) -> dict[str, Any]:
        bookings = self._bookings_created(window)
        previous_count = len(self._bookings_created(window.previous()))

        completed = [b for b in bookings if b.status == "COMPLETED"]
        return {
            "totalBookings": len(bookings),
            "completedBookings": len(completed),
            "cancelledBookings": sum(1 for b in bookings if b.status == "CANCELLED"),
            "pendingBookings": sum(1 for b in bookings if b.status == "PENDING"),
            "bookingGrowth": growth(len(bookings), previous_count),
            "conversionRate": pct(len(completed), len(bookings)),
            "averageStayDuration": average([b.nights for b in completed]),
        }

    def get_user_metrics(self, window: DateRange) -> dict[str, Any]:
        users = self.db.query(User).filter(User.is_active.is_(True)).all()
        previous = window.previous()

        new_users = sum(1 for u in users if window.contains(u.created_at))
        previous_new = sum(1 for u in users if previous.contains(u.created_at))
        active_users = len({b.guest_id for b in self._bookings_created(window)})
        host_count = sum(1 for u in users if u.is_host)

        return {
            "totalUsers": len(users),
            "activeUsers": active_users,
            "newUsers": new_users,
            "userGrowth": growth(new_users, previous_new),
            "hostCount": host_count,
            "guestCount": len(users) - host_count,
            "userRetentionRate": pct(active_users, len(users)),
        }

    def get_property_metrics(self, window: DateRange) -> dict[str, Any]:
        properties = self.db.query(Property).filter(Property.is_active.is_(True)).all()
        previous = window.previous()

        active_ids = [p.id for p in properties if p.verification_status == "VERIFIED"]
        ratings = [r for (r,) in self.db.query(Review.overall_rating)]
        booked_nights = sum(nights_within(b, window) for b in self._occupying_bookings(window, active_ids))

        new_properties = sum(1 for p in properties if window.contains(p.created_at))
        previous_new = sum(1 for p in properties if previous.contains(p.created_at))

        return {
            "totalProperties": len(properties),
            "activeListings": len(active_ids),
            "verifiedProperties": self.db.query(Property).filter(Property.verification_status == "VERIFIED").count(),
            "averageRating": average(ratings),
            "occupancyRate": pct(booked_nights, len(active_ids) * window.days),
            "propertyGrowth": growth(new_properties, previous_new),
        }

    def get_payment_metrics(self, window: DateRange) -> dict[str, Any]:
        payments = (
            self.db.query(Payment)
            .filter(Payment.created_at >= window.start, Payment.created_at <= window.end)
            .all()
        )
        total = len(payments)
        successful = [p for p in payments if p.status == "COMPLETED"]

        processing_hours = [
            (p.paid_at - p.created_at).total_seconds() / 3600 for p in successful if p.paid_at and p.created_at
        ]

        by_method: dict[str, dict] = defaultdict(lambda: {"count": 0, "amount": 0.0})
        for p in payments:
            stats = by_method[p.method or "unknown"]
            stats["count"] += 1
            stats["amount"] += p.amount or 0

        return {
            "totalProcessed": round(sum(p.amount or 0 for p in payments), 2),
            "successfulPayments": len(successful),
            "failedPayments": sum(1 for p in payments if p.status == "FAILED"),
            "pendingPayments": sum(1 for p in payments if p.status == "PENDING"),
            "refundAmount": round(sum(p.refunded_amount or 0 for p in payments), 2),
            "successRate": pct(len(successful), total),
            "averageProcessingTime": average(processing_hours),
            "paymentMethodBreakdown": [
                {
                    "method": method,
                    "count": stats["count"],
                    "amount": round(stats["amount"], 2),
                    "percentage": pct(stats["count"], total),
                }
                for method, stats in by_method.items()
            ],
        }

    def get_regional_metrics(self, window: DateRange) -> list[dict[str, Any]]:
        properties = self.db.query(Property).filter(Property.is_active.is_(True)).all()
        by_emirate: dict[str, list[Property]] = defaultdict(list)
        for prop in properties:
            by_emirate[prop.emirate or "Unknown"].append(prop)

        users_by_emirate: dict[str, int] = defaultdict(int)
        for (emirate,) in self.db.query(User.emirate).filter(User.emirate.isnot(None)):
            users_by_emirate[emirate] += 1

        previous = window.previous()
        regions = []
        for emirate, props in by_emirate.items():
            ids = [p.id for p in props]
            bookings = self.db.query(Booking).filter(Booking.property_id.in_(ids)).all()
            completed_now = [b for b in bookings if b.status == "COMPLETED" and window.contains(b.created_at)]
            completed_before = [b for b in bookings if b.status == "COMPLETED" and previous.contains(b.created_at)]
            ratings = [r for (r,) in self.db.query(Review.overall_rating).filter(Review.property_id.in_(ids))]
            booked_nights = sum(
                nights_within(b, window)
                for b in bookings
                if b.status in OCCUPYING_STATUSES and b.check_in < window.end and b.check_out > window.start
            )
            revenue = sum(b.total_amount or 0 for b in completed_now)

            regions.append(
                {
                    "emirate": emirate,
                    "bookings": len(completed_now),
                    "revenue": round(revenue, 2),
                    "properties": len(props),
                    "users": users_by_emirate.get(emirate, 0),
                    "averageRating": average(ratings),
                    "occupancyRate": pct(booked_nights, len(props) * window.days),
                    "growth": growth(revenue, sum(b.total_amount or 0 for b in completed_before)),
                }
            )

        regions.sort(key=lambda r: r["revenue"], reverse=True)
        return regions

    def get_top_properties(self, window: DateRange, limit: int = 10) -> list[dict[str, Any]]:
        bookings = [b for b in self._bookings_created(window) if b.status == "COMPLETED"]
        grouped: dict[str, list[Booking]] = defaultdict(list)
        for b in bookings:
            grouped[b.property_id].append(b)
        if not grouped:
            return []

        properties = self.db.query(Property).filter(Property.id.in_(grouped.keys())).all()
        ranked = [
            {
                "id": prop.id,
                "title": prop.title,
                "emirate": prop.emirate,
                "bookings": len(grouped[prop.id]),
                "revenue": round(sum(b.total_amount or 0 for b in grouped[prop.id]), 2),
                "rating": prop.rating or 0,
            }
            for prop in properties
        ]
        ranked.sort(key=lambda p: p["revenue"], reverse=True)
        return ranked[:limit]

    def get_revenue_chart(self, window: DateRange, period: str = "daily") -> list[dict[str, Any]]:
        def bucket(value: datetime) -> str:
            if period == "monthly":
                return month_key(value)
            if period == "weekly":
                week_start = value.date() - timedelta(days=(value.weekday() + 1) % 7)
                return week_start.isoformat()
            return value.date().isoformat()

        buckets: dict[str, dict] = {}
        cursor = window.start
        while cursor <= window.end:
            buckets.setdefault(bucket(cursor), {"revenue": 0.0, "bookings": 0})
            cursor += timedelta(days=1)

        for payment in self._completed_payments(window):
            entry = buckets.setdefault(bucket(payment.paid_at), {"revenue": 0.0, "bookings": 0})
            entry["revenue"] += payment.amount or 0
        for booking in self._bookings_created(window):
            entry = buckets.setdefault(bucket(booking.created_at), {"revenue": 0.0, "bookings": 0})
            entry["bookings"] += 1

        return [
            {"date": key, "revenue": round(value["revenue"], 2), "bookings": value["bookings"]}
            for key, value in sorted(buckets.items())
        ]

    def track_event(
        self,
        event_type: str,
        data: Optional[dict] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AnalyticsEvent:
        event = AnalyticsEvent(
            event_type=event_type,
            data=data or {},
            user_id=user_id,
            session_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        logger.debug(f"📊 Tracked {event_type} event")
        return event

    # ============================================================================
    # HOST DASHBOARD
    # ============================================================================

    def get_host_analytics(self, host_id: str) -> dict[str, Any]:
        properties = self.db.query(Property).filter(Property.host_id == host_id).all()
        ids = [p.id for p in properties]
        titles = {p.id: p.title for p in properties}

        bookings = self.db.query(Booking).filter(Booking.property_id.in_(ids)).all() if ids else []
        reviews = (
            self.db.query(Review).filter(Review.property_id.in_(ids)).order_by(Review.created_at.desc()).all()
            if ids
            else []
        )
        completed = [b for b in bookings if b.status == "COMPLETED"]
        total_earnings = round(sum(b.total_amount or 0 for b in completed), 2)
        average_rating = average([r.overall_rating for r in reviews])

        now = datetime.utcnow()
        this_month = month_key(now)
        last_month = month_key(datetime.combine(shift_month(now.date(), -1), datetime.min.time()))
        revenue_by_month: dict[str, float] = defaultdict(float)
        for b in completed:
            if b.created_at:
                revenue_by_month[month_key(b.created_at)] += b.total_amount or 0

        trend_months = [
            month_key(datetime.combine(shift_month(now.date(), -i), datetime.min.time()))
            for i in range(HOST_TREND_MONTHS - 1, -1, -1)
        ]
        counts_by_month: dict[str, int] = defaultdict(int)
        for b in bookings:
            if b.created_at:
                counts_by_month[month_key(b.created_at)] += 1

        last_30 = default_range()
        active_count = sum(1 for p in properties if p.is_active)
        booked_nights = sum(nights_within(b, last_30) for b in self._occupying_bookings(last_30, ids)) if ids else 0

        per_guest: dict[str, int] = defaultdict(int)
        for b in bookings:
            per_guest[b.guest_id] += 1

        top_performing = sorted(
            (
                {
                    "id": p.id,
                    "title": p.title,
                    "bookings": sum(1 for b in completed if b.property_id == p.id),
                    "revenue": round(sum(b.total_amount or 0 for b in completed if b.property_id == p.id), 2),
                    "rating": p.rating or 0,
                }
                for p in properties
            ),
            key=lambda p: p["revenue"],
            reverse=True,
        )[:5]

        recent_views = (
            self.db.query(PropertyView)
            .filter(PropertyView.property_id.in_(ids))
            .order_by(PropertyView.view_date.desc())
            .limit(10)
            .all()
            if ids
            else []
        )

        this_month_revenue = round(revenue_by_month.get(this_month, 0), 2)
        last_month_revenue = round(revenue_by_month.get(last_month, 0), 2)

        return {
            "overview": {
                "totalProperties": len(properties),
                "activeProperties": active_count,
                "totalBookings": len(bookings),
                "totalEarnings": total_earnings,
                "averageRating": average_rating,
                "responseRate": pct(sum(1 for r in reviews if r.host_response), len(reviews)),
                "occupancyRate": pct(booked_nights, active_count * last_30.days),
            },
            "bookings": {
                "confirmed": sum(1 for b in bookings if b.status == "CONFIRMED"),
                "pending": sum(1 for b in bookings if b.status == "PENDING"),
                "completed": len(completed),
                "cancelled": sum(1 for b in bookings if b.status == "CANCELLED"),
                "monthlyTrend": [
                    {
                        "month": m,
                        "count": counts_by_month.get(m, 0),
                        "revenue": round(revenue_by_month.get(m, 0), 2),
                    }
                    for m in trend_months
                ],
            },
            "revenue": {
                "thisMonth": this_month_revenue,
                "lastMonth": last_month_revenue,
                "growth": growth(this_month_revenue, last_month_revenue),
                "totalEarnings": total_earnings,
                "averageBookingValue": average([b.total_amount for b in completed]),
                "monthlyChart": [
                    {"month": m, "amount": round(revenue_by_month.get(m, 0), 2)} for m in trend_months
                ],
            },
            "properties": {
                "topPerforming": top_performing,
                "recentViews": [
                    {
                        "propertyId": v.property_id,
                        "propertyTitle": titles.get(v.property_id, ""),
                        "viewerId": v.viewer_id,
                        "viewType": v.view_type,
                        "viewedAt": iso(v.view_date),
                    }
                    for v in recent_views
                ],
            },
            "guests": {
                "totalGuests": len(per_guest),
                "repeatGuests": sum(1 for count in per_guest.values() if count > 1),
                "averageStayDuration": average([b.nights for b in completed]),
                "guestSatisfaction": average_rating,
                "recentReviews": [
                    {
                        "id": r.id,
                        "guestName": r.guest.full_name if r.guest else "Anonymous",
                        "rating": r.overall_rating,
                        "comment": r.comment,
                        "propertyTitle": titles.get(r.property_id, ""),
                        "date": iso(r.created_at),
                    }
                    for r in reviews[:5]
                ],
            },
        }
