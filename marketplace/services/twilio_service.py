"""
Platform SMS through the Twilio REST API.

The marketplace sends from one platform number; every attempt, delivered or
not, leaves a row in ``sms_logs`` so support can answer "did the guest get
the text?".
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER
from ..models_sms import SmsLog

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
TWILIO_TIMEOUT = 10.0


def is_sms_enabled() -> bool:
    return bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER)


def _describe_failure(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    message = payload.get("message") or f"HTTP {response.status_code}"
    code = payload.get("code")
    return f"[{code}] {message}" if code else message


async def send_sms(
    db: Session,
    user_id: Optional[str],
    to_phone: str,
    message_body: str,
    message_type: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
) -> tuple[bool, Optional[str]]:
    """
    Text ``to_phone`` (E.164) and record the attempt.

    ``message_type`` is the notification type that produced the text;
    ``entity_type``/``entity_id`` point back at the row it concerns.

    Returns:
        (sent, error) where error is None on success
    """
    if not is_sms_enabled():
        logger.debug("Twilio not configured, skipping SMS")
        return False, "SMS disabled"
    if not to_phone:
        return False, "No phone number provided"
    if not to_phone.startswith("+"):
        logger.warning(f"Refusing non E.164 number {to_phone}")
        return False, "Phone number must be in E.164 format (e.g., +971501234567)"

    log = SmsLog(
        user_id=user_id,
        to_phone=to_phone,
        message_body=message_body,
        message_type=message_type,
        entity_type=entity_type,
        entity_id=entity_id,
        status="failed",
    )
    error: Optional[str] = None

    try:
        async with httpx.AsyncClient(timeout=TWILIO_TIMEOUT) as client:
            response = await client.post(
                TWILIO_MESSAGES_URL.format(sid=TWILIO_ACCOUNT_SID),
                auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
                data={"To": to_phone, "From": TWILIO_PHONE_NUMBER, "Body": message_body},
            )
    except httpx.HTTPError as e:
        error = str(e)
    else:
        if response.is_success:
            log.status = "sent"
            log.twilio_message_sid = response.json().get("sid")
        else:
            error = _describe_failure(response)

    log.error_message = error
    db.add(log)
    db.commit()

    if error:
        logger.error(f"❌ {message_type} SMS to {to_phone} failed: {error}")
        return False, error
    logger.info(f"✅ {message_type} SMS sent to {to_phone} (SID: {log.twilio_message_sid})")
    return True, None
