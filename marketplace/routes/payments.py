"""
Payment Routes
Saved payment methods, payment history, Stripe Checkout, check payments and the Stripe webhook
"""

import json
import logging
import re
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import STRIPE_WEBHOOK_SECRET
from ..database import get_db
from ..models import Booking, Payment, PaymentMethod, User
from ..rate_limiter import create_rate_limiter
from ..services import socket_service, stripe_service
from ..services.notification_service import NotificationService
from ..utils.serializers import iso, serialize_payment
from ..webhook_security import verify_stripe_webhook
from .host import platform_fee_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])

rate_limit_stripe_webhook = create_rate_limiter(
    limit=100,
    window_seconds=60,
    key_prefix="webhook_stripe",
    use_ip=False,
)


class PaymentMethodCreate(BaseModel):
    type: Literal["card", "bank_transfer"]
    cardNumber: Optional[str] = None
    expiryMonth: Optional[int] = Field(None, ge=1, le=12)
    expiryYear: Optional[int] = Field(None, ge=2000, le=2100)
    holderName: Optional[str] = Field(None, max_length=255)
    bankName: Optional[str] = Field(None, max_length=255)
    accountNumber: Optional[str] = None
    isDefault: bool = False

    @field_validator("cardNumber", "accountNumber")
    @classmethod
    def strip_spaces(cls, v):
        return re.sub(r"[\s-]", "", v) if v else v

    @model_validator(mode="after")
    def check_type_fields(self):
        if self.type == "card":
            if not self.cardNumber or not re.fullmatch(r"\d{13,19}", self.cardNumber):
                raise ValueError("Card number must be 13-19 digits")
            if not (self.expiryMonth and self.expiryYear and self.holderName):
                raise ValueError("Card expiry and holder name are required")
        else:
            if not self.bankName or not self.accountNumber or len(self.accountNumber) < 4:
                raise ValueError("Bank name and account number are required")
        return self


class CheckPaymentRequest(BaseModel):
    checkNumber: str = Field(..., min_length=1, max_length=50)
    bankName: str = Field(..., min_length=1, max_length=100)
    checkDate: str = Field(..., min_length=1, max_length=20)


def detect_card_brand(number: str) -> str:
    if number.startswith("4"):
        return "visa"
    if re.match(r"^(5[1-5]|2(2[2-9]|[3-6]\d|7[01]|720))", number):
        return "mastercard"
    if re.match(r"^3[47]", number):
        return "amex"
    if re.match(r"^(6011|65)", number):
        return "discover"
    return "unknown"


def serialize_method(method: PaymentMethod) -> dict:
    return {
        "id": method.id,
        "type": method.type,
        "last4": method.last4,
        "brand": method.brand,
        "expiryMonth": method.expiry_month,
        "expiryYear": method.expiry_year,
        "holderName": method.holder_name,
        "bankName": method.bank_name,
        "isDefault": method.is_default,
        "createdAt": iso(method.created_at),
    }


def get_user_payment(db: Session, payment_id: str, user: User) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id, Payment.user_id == user.id).first()
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


def get_user_method(db: Session, method_id: str, user: User) -> PaymentMethod:
    method = (
        db.query(PaymentMethod).filter(PaymentMethod.id == method_id, PaymentMethod.user_id == user.id).first()
    )
    if not method:
        raise HTTPException(status_code=404, detail="Payment method not found")
    return method


def clear_default_methods(db: Session, user_id: str, keep_id: Optional[str] = None) -> None:
    query = db.query(PaymentMethod).filter(PaymentMethod.user_id == user_id, PaymentMethod.is_default.is_(True))
    if keep_id:
        query = query.filter(PaymentMethod.id != keep_id)
    query.update({PaymentMethod.is_default: False}, synchronize_session=False)


# ============================================================================
# STRIPE WEBHOOK
# ============================================================================


async def handle_checkout_completed(db: Session, session: dict) -> None:
    payment_id = (session.get("metadata") or {}).get("paymentId")
    payment = db.query(Payment).filter(Payment.id == payment_id).first() if payment_id else None
    if not payment:
        payment = db.query(Payment).filter(Payment.stripe_payment_id == session.get("id")).first()
    if not payment:
        logger.warning(f"⚠️ Checkout session {session.get('id')} has no matching payment")
        return

    payment.status = "COMPLETED"
    payment.stripe_payment_intent = session.get("payment_intent")
    payment.paid_at = datetime.utcnow()
    payment.platform_fee = platform_fee_for(payment)

    booking: Optional[Booking] = payment.booking
    if booking and payment.type == "BOOKING_PAYMENT" and booking.status == "PENDING":
        booking.status = "CONFIRMED"
        logger.info(f"✅ Booking {booking.id} confirmed by payment {payment.id}")
    db.commit()
    logger.info(f"✅ Payment {payment.id} completed via Stripe")

    notifications = NotificationService(db)
    await notifications.payment_success(payment.user_id, payment.id, payment.amount)
    if booking:
        guest = payment.user
        await notifications.payment_received(
            booking.host_id,
            payment.amount,
            guest.full_name if guest else "A guest",
            booking.property.title if booking.property else "your property",
        )
    await socket_service.send_payment_status_update(
        payment.user_id,
        {"paymentId": payment.id, "status": payment.status, "bookingId": payment.booking_id},
    )


def handle_checkout_expired(db: Session, session: dict) -> None:
    payment_id = (session.get("metadata") or {}).get("paymentId")
    query = db.query(Payment)
    payment = (
        query.filter(Payment.id == payment_id).first()
        if payment_id
        else query.filter(Payment.stripe_payment_id == session.get("id")).first()
    )
    if payment and payment.status == "PROCESSING":
        payment.status = "PENDING"
        db.commit()
        logger.info(f"⚠️ Checkout expired, payment {payment.id} back to PENDING")


@router.post("/webhook/stripe", dependencies=[Depends(rate_limit_stripe_webhook)])
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    raw_body = await verify_stripe_webhook(request, STRIPE_WEBHOOK_SECRET)

    try:
        event = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="Invalid webhook payload") from e

    event_type = event.get("type")
    session = (event.get("data") or {}).get("object") or {}
    logger.info(f"📥 Stripe event {event_type}")

    if event_type == "checkout.session.completed":
        await handle_checkout_completed(db, session)
    elif event_type == "checkout.session.expired":
        handle_checkout_expired(db, session)
    else:
        logger.debug(f"Unhandled Stripe event type: {event_type}")

    return {"received": True}


# ============================================================================
# PAYMENT METHODS
# ============================================================================


@router.get("/methods")
async def list_payment_methods(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    methods = (
        db.query(PaymentMethod)
        .filter(PaymentMethod.user_id == current_user.id)
        .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at.desc())
        .all()
    )
    return {"success": True, "data": [serialize_method(m) for m in methods]}


@router.post("/methods", status_code=201)
async def add_payment_method(
    data: PaymentMethodCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    has_methods = db.query(PaymentMethod).filter(PaymentMethod.user_id == current_user.id).count() > 0
    is_default = data.isDefault or not has_methods

    if data.type == "card":
        method = PaymentMethod(
            user_id=current_user.id,
            type="card",
            last4=data.cardNumber[-4:],
            brand=detect_card_brand(data.cardNumber),
            expiry_month=data.expiryMonth,
            expiry_year=data.expiryYear,
            holder_name=data.holderName,
            is_default=is_default,
        )
    else:
        method = PaymentMethod(
            user_id=current_user.id,
            type="bank_transfer",
            last4=data.accountNumber[-4:],
            bank_name=data.bankName,
            holder_name=data.holderName,
            is_default=is_default,
        )

    if is_default:
        clear_default_methods(db, current_user.id)
    db.add(method)
    db.commit()
    db.refresh(method)
    return {"success": True, "message": "Payment method added successfully", "data": serialize_method(method)}


@router.delete("/methods/{method_id}")
async def delete_payment_method(
    method_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    method = get_user_method(db, method_id, current_user)
    db.delete(method)
    db.commit()
    return {"success": True, "message": "Payment method deleted successfully"}


@router.put("/methods/{method_id}/default")
async def set_default_payment_method(
    method_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    method = get_user_method(db, method_id, current_user)
    clear_default_methods(db, current_user.id, keep_id=method.id)
    method.is_default = True
    db.commit()
    db.refresh(method)
    return {"success": True, "message": "Default payment method updated", "data": serialize_method(method)}


# ============================================================================
# PAYMENTS
# ============================================================================


@router.get("")
async def list_payments(
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Payment).filter(Payment.user_id == current_user.id)
    if status:
        query = query.filter(Payment.status == status)
    if type:
        query = query.filter(Payment.type == type)
    if method:
        query = query.filter(Payment.method == method)

    total = query.count()
    payments = query.order_by(Payment.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    now = datetime.utcnow()
    all_payments = db.query(Payment).filter(Payment.user_id == current_user.id).all()
    summary = {
        "totalAmount": sum(p.amount for p in all_payments),
        "paidAmount": sum(p.amount for p in all_payments if p.status == "COMPLETED"),
        "pendingAmount": sum(p.amount for p in all_payments if p.status in ("PENDING", "PROCESSING")),
        "overdueAmount": sum(
            p.amount for p in all_payments if p.status == "PENDING" and p.due_date and p.due_date < now
        ),
        "totalPayments": len(all_payments),
    }

    return {
        "success": True,
        "data": {
            "payments": [serialize_payment(p) for p in payments],
            "summary": summary,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": (total + limit - 1) // limit,
            },
        },
    }


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payment = get_user_payment(db, payment_id, current_user)
    return {"success": True, "data": serialize_payment(payment)}


@router.post("/{payment_id}/stripe-payment")
async def create_stripe_payment(
    payment_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payment = get_user_payment(db, payment_id, current_user)
    if payment.status != "PENDING":
        raise HTTPException(status_code=400, detail="Payment is not pending")

    booking = payment.booking
    title = booking.property.title if booking and booking.property else "UAE Rental"
    label = "Security deposit" if payment.type == "SECURITY_DEPOSIT" else "Booking payment"
    session = await stripe_service.create_checkout_session(payment, f"{label} - {title}")

    payment.stripe_payment_id = session.get("id")
    payment.stripe_payment_url = session.get("url")
    payment.method = "STRIPE"
    payment.status = "PROCESSING"
    db.commit()

    return {"success": True, "data": {"sessionId": session.get("id"), "url": session.get("url")}}


@router.post("/{payment_id}/check-payment")
async def submit_check_payment(
    payment_id: str,
    data: CheckPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payment = get_user_payment(db, payment_id, current_user)
    if payment.status != "PENDING":
        raise HTTPException(status_code=400, detail="Payment is not pending")

    payment.method = "CHECK"
    payment.status = "PROCESSING"
    payment.check_number = data.checkNumber
    payment.check_bank = data.bankName
    payment.check_date = data.checkDate
    db.commit()
    db.refresh(payment)
    logger.info(f"🧾 Check payment submitted for {payment.id}")

    return {"success": True, "message": "Check payment submitted for review", "data": serialize_payment(payment)}
