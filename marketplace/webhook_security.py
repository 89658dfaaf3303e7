"""
Webhook Security Module

Signature verification for inbound Stripe webhooks:
- Constant-time signature comparison
- Timestamp validation against replayed deliveries
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """Check a unix timestamp is no older than max_age seconds"""
    if not timestamp:
        return False

    try:
        age = abs(int(time.time()) - int(timestamp))
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def parse_stripe_signature_header(header: str) -> tuple[Optional[str], list[str]]:
    """Split 't=...,v1=...,v1=...' into the timestamp and every v1 signature"""
    timestamp = None
    signatures = []
    for item in header.split(","):
        if "=" not in item:
            continue
        name, value = item.strip().split("=", 1)
        if name == "t":
            timestamp = value
        elif name == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(payload: bytes, signature_header: str, secret: str) -> bool:
    """
    Verify a Stripe-Signature header against the raw request body.

    Stripe signs "{t}.{payload}" with HMAC-SHA256, and the header may carry
    several v1 signatures while secrets are being rolled.
    """
    if not signature_header or not secret:
        return False

    timestamp, signatures = parse_stripe_signature_header(signature_header)
    if not timestamp or not signatures:
        logger.warning("🚫 Stripe webhook invalid signature format")
        return False

    if not verify_timestamp(timestamp):
        return False

    signed_payload = timestamp.encode("utf-8") + b"." + payload
    expected_signature = compute_hmac_sha256(secret, signed_payload)

    if any(constant_time_compare(expected_signature, sig) for sig in signatures):
        return True

    logger.warning("🚫 Stripe webhook signature mismatch")
    return False


async def verify_stripe_webhook(request: Request, secret: Optional[str]) -> bytes:
    """
    Read the raw body and verify its Stripe signature.

    Returns:
        The raw body bytes

    Raises:
        HTTPException(400) when the signature is missing or invalid
    """
    raw_body = await request.body()
    signature_header = request.headers.get("Stripe-Signature", "")

    logger.debug("📥 Stripe webhook received")

    if not secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=400, detail="Webhook signature verification failed")

    if not verify_stripe_signature(raw_body, signature_header, secret):
        raise HTTPException(status_code=400, detail="Webhook signature verification failed")

    logger.debug("✅ Stripe webhook signature verified")
    return raw_body
