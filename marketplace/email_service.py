"""
Email Service using the SendGrid v3 Mail Send API
"""

import logging
from typing import Optional, Union

import httpx

from .config import CLIENT_URL, SENDGRID_API_KEY, SENDGRID_FROM_EMAIL, SENDGRID_FROM_NAME
from .email_templates import (
    email_verification_template,
    password_reset_template,
    viewing_confirmed_template,
    viewing_rejected_template,
    welcome_template,
)

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailDeliveryError(Exception):
    """Raised when SendGrid rejects or fails a send"""


def is_email_enabled() -> bool:
    return bool(SENDGRID_API_KEY)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    text_content: Optional[str] = None,
) -> bool:
    """
    Send an email through SendGrid

    Returns:
        True when SendGrid accepted the message, False when email is disabled

    Raises:
        EmailDeliveryError: when the API call fails
    """
    if not is_email_enabled():
        logger.warning(f"⚠️ SendGrid API key not set - email '{subject}' not sent")
        return False

    recipients = [to] if isinstance(to, str) else to
    content = []
    if text_content:
        content.append({"type": "text/plain", "value": text_content})
    content.append({"type": "text/html", "value": html_content})

    payload = {
        "personalizations": [{"to": [{"email": r} for r in recipients]}],
        "from": {"email": SENDGRID_FROM_EMAIL, "name": SENDGRID_FROM_NAME},
        "subject": subject,
        "content": content,
    }

    try:
        logger.info(f"📤 Sending email via SendGrid to: {recipients}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                SENDGRID_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {SENDGRID_API_KEY}"},
                timeout=10.0,
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailDeliveryError(f"Failed to send email: {e}") from e

    if response.status_code not in (200, 202):
        logger.error(f"❌ SendGrid API error {response.status_code}: {response.text[:200]}")
        raise EmailDeliveryError(f"SendGrid returned HTTP {response.status_code}")

    logger.info(f"✅ Email sent successfully via SendGrid: {subject}")
    return True


# ============================================
# Pre-built emails for account and viewing flows
# ============================================


async def send_email_verification(to: str, first_name: str, token: str) -> bool:
    verification_url = f"{CLIENT_URL}/verify-email?token={token}"
    html, text = email_verification_template(first_name, verification_url)
    return await send_email(to, "Verify Your Email - UAE Rental Platform", html, text)


async def send_password_reset_email(to: str, first_name: str, token: str) -> bool:
    reset_url = f"{CLIENT_URL}/reset-password?token={token}"
    html, text = password_reset_template(first_name, reset_url)
    return await send_email(to, "Password Reset - UAE Rental Platform", html, text)


async def send_welcome_email(to: str, first_name: str) -> bool:
    html, text = welcome_template(first_name, f"{CLIENT_URL}/login")
    return await send_email(to, "Welcome to UAE Rental Platform", html, text)


async def send_viewing_confirmed_email(
    to: str, guest_name: str, property_title: str, date: str, time: str
) -> bool:
    html, text = viewing_confirmed_template(guest_name, property_title, date, time)
    return await send_email(to, "Viewing Request Confirmed - UAE Rental Platform", html, text)


async def send_viewing_rejected_email(to: str, guest_name: str, property_title: str) -> bool:
    html, text = viewing_rejected_template(guest_name, property_title)
    return await send_email(to, "Viewing Request Update - UAE Rental Platform", html, text)
