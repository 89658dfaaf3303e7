"""
Stripe REST client
Checkout Sessions for guest payments and refunds for admin finance
"""

import logging
from typing import Any, Optional

import httpx
from fastapi import HTTPException

from ..config import CLIENT_URL, STRIPE_SECRET_KEY
from ..models import Payment

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"


def is_stripe_enabled() -> bool:
    return bool(STRIPE_SECRET_KEY)


async def _post(path: str, data: dict[str, Any]) -> dict:
    """Form-encoded POST to the Stripe API; raises 502 on any failure"""
    if not STRIPE_SECRET_KEY:
        logger.error("❌ STRIPE_SECRET_KEY not configured")
        raise HTTPException(status_code=503, detail="Payment processing is not configured")

    try:
        logger.info(f"📤 Stripe POST {path}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{STRIPE_API_BASE}{path}",
                data=data,
                auth=(STRIPE_SECRET_KEY, ""),
                timeout=20.0,
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Stripe request failed: {e}")
        raise HTTPException(status_code=502, detail="Payment provider unavailable") from e

    logger.info(f"📡 Stripe response status: {response.status_code}")
    if response.status_code >= 400:
        try:
            message = response.json().get("error", {}).get("message")
        except ValueError:
            message = None
        logger.error(f"❌ Stripe error {response.status_code}: {message}")
        raise HTTPException(status_code=502, detail="Payment provider request failed")

    return response.json()


async def create_checkout_session(payment: Payment, product_name: str) -> dict:
    """
    Create a hosted Checkout Session for a single payment.

    Returns:
        The Stripe session object (id, url, ...)
    """
    data = {
        "mode": "payment",
        "payment_method_types[0]": "card",
        "line_items[0][quantity]": "1",
        "line_items[0][price_data][currency]": "aed",
        "line_items[0][price_data][unit_amount]": str(round(payment.amount * 100)),
        "line_items[0][price_data][product_data][name]": product_name,
        "success_url": f"{CLIENT_URL}/payments/{payment.id}?success=true",
        "cancel_url": f"{CLIENT_URL}/payments/{payment.id}?cancelled=true",
        "metadata[paymentId]": payment.id,
        "metadata[bookingId]": payment.booking_id or "",
        "metadata[userId]": payment.user_id,
    }
    session = await _post("/checkout/sessions", data)
    logger.info(f"✅ Checkout session {session.get('id')} created for payment {payment.id}")
    return session


async def create_refund(payment_intent: str, amount: float, reason: Optional[str] = None) -> dict:
    data = {"payment_intent": payment_intent, "amount": str(round(amount * 100))}
    if reason:
        data["metadata[reason]"] = reason
    refund = await _post("/refunds", data)
    logger.info(f"✅ Stripe refund {refund.get('id')} created for {payment_intent}")
    return refund
