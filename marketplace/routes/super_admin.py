"""
Super Admin Routes
Platform overview, activity feed, finance (transactions and payouts) and operational alerts.
User, property, booking and viewing management live in super_admin_management.py.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..auth import require_admin
from ..database import get_db
from ..models import AdminAction, Booking, Payment, Payout, Property, User
from ..services import stripe_service
from ..services.notification_service import NotificationService
from ..utils.serializers import iso, serialize_payment, user_summary
from .host import PAYOUT_EXPECTED_DAYS, net_of_fee, platform_fee_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/super-admin", tags=["Super Admin"])

DATE_RANGE_DAYS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90, "1y": 365}
REVENUE_PAYMENT_TYPES = ("BOOKING_PAYMENT", "SECURITY_DEPOSIT")
HIGH_VALUE_BOOKING = 5000
PROPERTY_REVIEW_SLA_HOURS = 48
TOP_LOCATIONS = 6


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=1000)


class PayoutActionRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)
    reason: Optional[str] = Field(None, max_length=1000)


# ============================================================================
# SHARED HELPERS
# ============================================================================


def record_admin_action(
    db: Session, admin: User, action_type: str, target_id: Optional[str], details: Optional[dict] = None
) -> AdminAction:
    """Add an audit row; committed together with the change it describes"""
    action = AdminAction(admin_id=admin.id, action_type=action_type, target_id=target_id, details=details or {})
    db.add(action)
    logger.info(f"🛡️ Admin {admin.email} performed {action_type} on {target_id}")
    return action


def range_start(date_range: str, default: str = "7d") -> datetime:
    days = DATE_RANGE_DAYS.get(date_range, DATE_RANGE_DAYS[default])
    return datetime.utcnow() - timedelta(days=days)


def start_of_today() -> datetime:
    now = datetime.utcnow()
    return datetime(now.year, now.month, now.day)


def start_of_month() -> datetime:
    now = datetime.utcnow()
    return datetime(now.year, now.month, 1)


def growth_pct(current: int, previous: int) -> float:
    return round((current - previous) / previous * 100, 2) if previous else 0


def pagination(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "totalPages": (total + limit - 1) // limit}


def serialize_payout(payout: Payout) -> dict[str, Any]:
    return {
        "id": payout.id,
        "hostId": payout.host_id,
        "bookingId": payout.booking_id,
        "amount": payout.amount,
        "currency": payout.currency,
        "status": payout.status,
        "payoutMethod": payout.payout_method,
        "notes": payout.notes,
        "processedBy": payout.processed_by,
        "processedAt": iso(payout.processed_at),
        "expectedDate": iso(payout.expected_date),
        "createdAt": iso(payout.created_at),
        "host": user_summary(payout.host),
    }


def serialize_transaction(payment: Payment) -> dict[str, Any]:
    data = serialize_payment(payment, include_booking=False)
    data["platformFee"] = payment.platform_fee or 0
    data["relatedPaymentId"] = payment.related_payment_id
    data["reviewedBy"] = payment.reviewed_by
    data["reviewNote"] = payment.review_note
    data["user"] = user_summary(payment.user)
    return data


def get_payment_or_404(db: Session, payment_id: str) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return payment


def get_payout_or_404(db: Session, payout_id: str) -> Payout:
    payout = db.query(Payout).filter(Payout.id == payout_id).first()
    if not payout:
        raise HTTPException(status_code=404, detail="Payout not found")
    return payout


# ============================================================================
# OVERVIEW
# ============================================================================


@router.get("/stats")
async def get_platform_stats(
    dateRange: str = Query("7d"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    start = range_start(dateRange)
    previous_start = start - (datetime.utcnow() - start)
    today = start_of_today()

    def created_between(rows, lower, upper=None):
        return sum(1 for r in rows if r.created_at and r.created_at >= lower and (upper is None or r.created_at < upper))

    users = db.query(User).all()
    properties = db.query(Property).all()
    bookings = db.query(Booking).all()

    earning = [b for b in bookings if b.status in ("CONFIRMED", "COMPLETED") and b.created_at and b.created_at >= start]

    emirates = Counter(u.emirate for u in users if u.emirate)
    cities = Counter(u.city for u in users if u.city)

    stats = {
        "users": {
            "total": len(users),
            "guests": sum(1 for u in users if not u.is_host and not u.is_agent),
            "hosts": sum(1 for u in users if u.is_host),
            "agents": sum(1 for u in users if u.is_agent),
            "activeToday": sum(1 for u in users if u.last_login_at and u.last_login_at >= today),
            "newToday": created_between(users, today),
            "growth": growth_pct(created_between(users, start), created_between(users, previous_start, start)),
        },
        "properties": {
            "total": len(properties),
            "active": sum(1 for p in properties if p.verification_status == "VERIFIED" and p.is_active),
            "pending": sum(1 for p in properties if p.verification_status == "PENDING"),
            "suspended": sum(1 for p in properties if p.verification_status == "REJECTED"),
            "newToday": created_between(properties, today),
            "growth": growth_pct(
                created_between(properties, start), created_between(properties, previous_start, start)
            ),
        },
        "bookings": {
            "total": len(bookings),
            "confirmed": sum(1 for b in bookings if b.status == "CONFIRMED"),
            "pending": sum(1 for b in bookings if b.status == "PENDING"),
            "cancelled": sum(1 for b in bookings if b.status == "CANCELLED"),
            "revenue": round(sum(b.total_amount or 0 for b in earning), 2),
        },
        "locations": {
            "emirates": [{"name": name, "users": count} for name, count in emirates.most_common(TOP_LOCATIONS)],
            "cities": [{"name": name, "users": count} for name, count in cities.most_common(TOP_LOCATIONS)],
        },
    }
    return {"success": True, "data": stats}


@router.get("/activity")
async def get_recent_activity(
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    activities = []

    for user in db.query(User).order_by(User.created_at.desc()).limit(limit):
        activities.append(
            {
                "id": f"user-{user.id}",
                "type": "user_registered",
                "description": f"New {'host' if user.is_host else 'guest'} registration: {user.full_name}",
                "timestamp": iso(user.created_at),
                "severity": "low",
                "user": user.full_name,
            }
        )

    for prop in db.query(Property).order_by(Property.created_at.desc()).limit(limit):
        activities.append(
            {
                "id": f"property-{prop.id}",
                "type": "property_listed",
                "description": f"New property listed: {prop.title}",
                "timestamp": iso(prop.created_at),
                "severity": "low",
                "amount": prop.base_price or 0,
            }
        )

    recent_bookings = (
        db.query(Booking).options(joinedload(Booking.guest)).order_by(Booking.created_at.desc()).limit(limit)
    )
    for booking in recent_bookings:
        guest_name = booking.guest.full_name if booking.guest else "Unknown Guest"
        activities.append(
            {
                "id": f"booking-{booking.id}",
                "type": "booking_created",
                "description": f"New booking by {guest_name}",
                "timestamp": iso(booking.created_at),
                "severity": "medium" if (booking.total_amount or 0) > HIGH_VALUE_BOOKING else "low",
                "amount": booking.total_amount,
            }
        )

    activities.sort(key=lambda a: a["timestamp"] or "", reverse=True)
    return {"success": True, "data": activities[:limit]}


# ============================================================================
# FINANCE
# ============================================================================


@router.get("/financial")
async def get_financial_overview(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    dateRange: str = Query("30d"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    start = range_start(dateRange, default="30d")
    in_range = db.query(Payment).filter(Payment.created_at >= start).all()

    query = db.query(Payment).options(joinedload(Payment.user)).filter(Payment.created_at >= start)
    if type:
        query = query.filter(Payment.type == type)
    if status:
        query = query.filter(Payment.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.join(User, Payment.user_id == User.id).filter(
            or_(
                Payment.id.ilike(pattern),
                Payment.stripe_payment_id.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
    total = query.count()
    transactions = query.order_by(Payment.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    payouts = db.query(Payout).options(joinedload(Payout.host)).order_by(Payout.created_at.desc()).all()

    revenue = [p for p in in_range if p.status == "COMPLETED" and p.type in REVENUE_PAYMENT_TYPES]
    month_start = start_of_month()
    total_revenue = sum(p.amount for p in revenue)

    methods: dict[str, dict] = defaultdict(lambda: {"count": 0, "amount": 0.0})
    for p in revenue:
        methods[p.method]["count"] += 1
        methods[p.method]["amount"] += p.amount
    top_methods = sorted(
        ({"method": m, "count": s["count"], "amount": round(s["amount"], 2)} for m, s in methods.items()),
        key=lambda m: m["amount"],
        reverse=True,
    )

    stats = {
        "totalRevenue": round(total_revenue, 2),
        "monthlyRevenue": round(
            sum(p.amount for p in revenue if p.paid_at and p.paid_at >= month_start), 2
        ),
        "totalPayouts": round(sum(p.amount for p in payouts if p.status == "COMPLETED"), 2),
        "pendingPayouts": round(sum(p.amount for p in payouts if p.status in ("PENDING", "PROCESSING")), 2),
        "platformFees": round(sum(p.platform_fee or 0 for p in revenue), 2),
        "refundsIssued": round(
            sum(p.amount for p in in_range if p.type == "REFUND" and p.status == "COMPLETED"), 2
        ),
        "transactionCount": len(in_range),
        "averageTransactionValue": round(total_revenue / len(revenue), 2) if revenue else 0,
        "topPaymentMethods": top_methods,
    }

    return {
        "success": True,
        "data": {
            "transactions": [serialize_transaction(p) for p in transactions],
            "payouts": [serialize_payout(p) for p in payouts[:limit]],
            "stats": stats,
            "pagination": pagination(page, limit, total),
        },
    }


@router.post("/transactions/{payment_id}/approve")
async def approve_transaction(
    payment_id: str,
    data: Optional[ReasonRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = data or ReasonRequest()
    payment = get_payment_or_404(db, payment_id)
    if payment.status not in ("PENDING", "PROCESSING"):
        raise HTTPException(status_code=400, detail=f"Cannot approve a {payment.status.lower()} transaction")

    payment.status = "COMPLETED"
    payment.paid_at = datetime.utcnow()
    payment.reviewed_by = admin.id
    payment.platform_fee = platform_fee_for(payment)
    payment.review_note = data.reason
    record_admin_action(db, admin, "transaction_approval", payment.id, {"reason": data.reason})
    db.commit()
    db.refresh(payment)

    return {"success": True, "message": "Transaction approved successfully", "data": serialize_transaction(payment)}


@router.post("/transactions/{payment_id}/reject")
async def reject_transaction(
    payment_id: str,
    data: Optional[ReasonRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = data or ReasonRequest()
    payment = get_payment_or_404(db, payment_id)
    if payment.status not in ("PENDING", "PROCESSING"):
        raise HTTPException(status_code=400, detail=f"Cannot reject a {payment.status.lower()} transaction")

    payment.status = "FAILED"
    payment.reviewed_by = admin.id
    payment.review_note = data.reason
    record_admin_action(db, admin, "transaction_rejection", payment.id, {"reason": data.reason})
    db.commit()
    db.refresh(payment)

    await NotificationService(db).payment_failed(payment.user_id, payment.id, payment.amount)

    return {"success": True, "message": "Transaction rejected successfully", "data": serialize_transaction(payment)}


@router.post("/transactions/{payment_id}/refund")
async def refund_transaction(
    payment_id: str,
    data: Optional[RefundRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = data or RefundRequest()
    payment = get_payment_or_404(db, payment_id)
    if payment.status != "COMPLETED" or payment.type == "REFUND":
        raise HTTPException(status_code=400, detail="Only completed payments can be refunded")

    refundable = round(payment.amount - (payment.refunded_amount or 0), 2)
    amount = round(data.amount if data.amount is not None else refundable, 2)
    if amount <= 0 or amount > refundable:
        raise HTTPException(status_code=400, detail=f"Refund amount must be between 0 and {refundable}")

    stripe_refund_id = None
    if payment.stripe_payment_intent:
        refund = await stripe_service.create_refund(payment.stripe_payment_intent, amount, data.reason)
        stripe_refund_id = refund.get("id")

    now = datetime.utcnow()
    refund_payment = Payment(
        booking_id=payment.booking_id,
        user_id=payment.user_id,
        amount=amount,
        currency=payment.currency,
        type="REFUND",
        method=payment.method,
        status="COMPLETED",
        paid_at=now,
        refund_reason=data.reason,
        related_payment_id=payment.id,
        stripe_payment_id=stripe_refund_id,
        reviewed_by=admin.id,
    )
    db.add(refund_payment)

    payment.refunded_amount = round((payment.refunded_amount or 0) + amount, 2)
    payment.refund_reason = data.reason
    if payment.refunded_amount >= payment.amount:
        payment.status = "REFUNDED"

    record_admin_action(
        db, admin, "transaction_refund", payment.id, {"amount": amount, "reason": data.reason, "stripeRefundId": stripe_refund_id}
    )
    db.commit()
    db.refresh(payment)
    db.refresh(refund_payment)
    logger.info(f"💸 Refunded {amount} {payment.currency} on payment {payment.id}")

    return {
        "success": True,
        "message": "Refund processed successfully",
        "data": {"original": serialize_transaction(payment), "refund": serialize_transaction(refund_payment)},
    }


@router.post("/payouts/generate")
async def generate_payouts(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    paid_booking_ids = {b for (b,) in db.query(Payout.booking_id).filter(Payout.booking_id.isnot(None))}
    completed = db.query(Booking).filter(Booking.status == "COMPLETED").all()
    expected = datetime.utcnow() + timedelta(days=PAYOUT_EXPECTED_DAYS)

    created = []
    for booking in completed:
        if booking.id in paid_booking_ids:
            continue
        payout = Payout(
            host_id=booking.host_id,
            booking_id=booking.id,
            amount=net_of_fee(booking.total_amount),
            status="PENDING",
            expected_date=expected,
        )
        db.add(payout)
        created.append(payout)

    record_admin_action(db, admin, "payout_generation", None, {"count": len(created)})
    db.commit()
    for payout in created:
        db.refresh(payout)

    return {
        "success": True,
        "message": f"{len(created)} payouts generated",
        "data": {"generated": len(created), "payouts": [serialize_payout(p) for p in created]},
    }


def transition_payout(
    db: Session, admin: User, payout_id: str, allowed: tuple[str, ...], target: str, action_type: str, data: PayoutActionRequest
) -> Payout:
    payout = get_payout_or_404(db, payout_id)
    if payout.status not in allowed:
        raise HTTPException(
            status_code=400, detail=f"Cannot move a {payout.status.lower()} payout to {target.lower()}"
        )

    payout.status = target
    note = data.notes or data.reason
    if note:
        payout.notes = note
    if target == "COMPLETED":
        payout.processed_at = datetime.utcnow()
        payout.processed_by = admin.id
    record_admin_action(db, admin, action_type, payout.id, {"notes": data.notes, "reason": data.reason})
    db.commit()
    db.refresh(payout)
    return payout


@router.post("/payouts/{payout_id}/process")
async def process_payout(
    payout_id: str,
    data: Optional[PayoutActionRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = data or PayoutActionRequest()
    payout = transition_payout(db, admin, payout_id, ("PENDING",), "COMPLETED", "payout_processed", data)
    return {"success": True, "message": "Payout processed successfully", "data": serialize_payout(payout)}


@router.post("/payouts/{payout_id}/cancel")
async def cancel_payout(
    payout_id: str,
    data: Optional[PayoutActionRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = data or PayoutActionRequest()
    payout = transition_payout(db, admin, payout_id, ("PENDING", "PROCESSING"), "CANCELLED", "payout_cancelled", data)
    return {"success": True, "message": "Payout cancelled successfully", "data": serialize_payout(payout)}


@router.post("/payouts/{payout_id}/retry")
async def retry_payout(
    payout_id: str,
    data: Optional[PayoutActionRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = data or PayoutActionRequest()
    payout = transition_payout(db, admin, payout_id, ("FAILED", "CANCELLED"), "PENDING", "payout_retried", data)
    return {"success": True, "message": "Payout queued for retry", "data": serialize_payout(payout)}


# ============================================================================
# ALERTS
# ============================================================================


@router.get("/alerts")
async def get_alerts(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    now = datetime.utcnow()
    alerts = []

    overdue = (
        db.query(Payment)
        .filter(Payment.status.in_(("PENDING", "PROCESSING")), Payment.due_date.isnot(None), Payment.due_date < now)
        .all()
    )
    if overdue:
        alerts.append(
            {
                "id": "overdue-payments",
                "type": "warning",
                "category": "payments",
                "message": f"{len(overdue)} payments are past their due date",
                "count": len(overdue),
                "amount": round(sum(p.amount for p in overdue), 2),
                "targetIds": [p.id for p in overdue],
            }
        )

    stale_cutoff = now - timedelta(hours=PROPERTY_REVIEW_SLA_HOURS)
    stale = (
        db.query(Property)
        .filter(Property.verification_status == "PENDING", Property.created_at < stale_cutoff)
        .all()
    )
    if stale:
        alerts.append(
            {
                "id": "stale-property-reviews",
                "type": "warning",
                "category": "properties",
                "message": f"{len(stale)} properties have been waiting for review for more than {PROPERTY_REVIEW_SLA_HOURS} hours",
                "count": len(stale),
                "targetIds": [p.id for p in stale],
            }
        )

    disputed = db.query(Booking).filter(Booking.status == "DISPUTED").all()
    if disputed:
        alerts.append(
            {
                "id": "disputed-bookings",
                "type": "error",
                "category": "bookings",
                "message": f"{len(disputed)} bookings are in dispute",
                "count": len(disputed),
                "targetIds": [b.id for b in disputed],
            }
        )

    failed = db.query(Payout).filter(Payout.status == "FAILED").all()
    if failed:
        alerts.append(
            {
                "id": "failed-payouts",
                "type": "error",
                "category": "payouts",
                "message": f"{len(failed)} host payouts have failed",
                "count": len(failed),
                "amount": round(sum(p.amount for p in failed), 2),
                "targetIds": [p.id for p in failed],
            }
        )

    for alert in alerts:
        alert["timestamp"] = iso(now)
        alert["resolved"] = False

    return {"success": True, "data": alerts}
