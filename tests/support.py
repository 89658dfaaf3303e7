"""Row factories and request helpers shared by the API tests."""

from __future__ import annotations

import time
from datetime import datetime, timedelta

from marketplace.models import Booking, Payment, Property, User
from marketplace.security_utils import create_access_token, hash_password
from marketplace.webhook_security import compute_hmac_sha256

TEST_PASSWORD = "Password123!"


def make_user(db, email: str, **overrides) -> User:
    fields = {
        "email": email,
        "password_hash": hash_password(TEST_PASSWORD),
        "first_name": "Test",
        "last_name": "User",
        "is_verified": True,
    }
    fields.update(overrides)
    user = User(**fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_property(db, host: User, **overrides) -> Property:
    fields = {
        "host_id": host.id,
        "title": "Marina View Apartment",
        "description": "Two bedroom apartment with a marina view",
        "type": "APARTMENT",
        "rental_type": "SHORT_TERM",
        "emirate": "Dubai",
        "city": "Dubai Marina",
        "area": "Marina",
        "bedrooms": 2,
        "bathrooms": 2,
        "max_guests": 4,
        "base_price": 500.0,
        "cleaning_fee": 100.0,
        "amenities": ["wifi", "pool"],
        "images": [],
        "house_rules": [],
        "verification_status": "VERIFIED",
        "is_active": True,
    }
    fields.update(overrides)
    prop = Property(**fields)
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


def make_booking(db, prop: Property, guest: User, days_ahead: int = 10, nights: int = 3, **overrides) -> Booking:
    check_in = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=days_ahead)
    base_amount = (prop.base_price or 0) * nights
    fields = {
        "property_id": prop.id,
        "guest_id": guest.id,
        "host_id": prop.host_id,
        "check_in": check_in,
        "check_out": check_in + timedelta(days=nights),
        "guests": 2,
        "nights": nights,
        "base_amount": base_amount,
        "cleaning_fee": prop.cleaning_fee or 0,
        "service_fee": 0,
        "total_amount": base_amount + (prop.cleaning_fee or 0),
        "status": "PENDING",
        "emergency_notes": [],
    }
    fields.update(overrides)
    booking = Booking(**fields)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def make_payment(db, booking: Booking, **overrides) -> Payment:
    fields = {
        "booking_id": booking.id,
        "user_id": booking.guest_id,
        "amount": booking.total_amount,
        "currency": "AED",
        "type": "BOOKING_PAYMENT",
        "method": "STRIPE",
        "status": "PENDING",
    }
    fields.update(overrides)
    payment = Payment(**fields)
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


def stripe_signature(secret: str, payload: bytes, timestamp: int | None = None) -> str:
    """Stripe-Signature header value as Stripe would send it for ``payload``."""
    timestamp = timestamp or int(time.time())
    return f"t={timestamp},v1={compute_hmac_sha256(secret, f'{timestamp}.'.encode() + payload)}"
