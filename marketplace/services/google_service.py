"""Google Sign-In ID token validation via the tokeninfo endpoint"""

import logging

import httpx
from fastapi import HTTPException

from ..config import GOOGLE_CLIENT_ID

logger = logging.getLogger(__name__)

TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"


async def verify_google_id_token(id_token: str) -> dict:
    """
    Validate a Google ID token and return its claims.

    Raises:
        HTTPException 503 when Google Sign-In is not configured,
        401 when the token is rejected, 502 when Google is unreachable
    """
    if not GOOGLE_CLIENT_ID:
        raise HTTPException(status_code=503, detail="Google Sign-In is not configured")

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(TOKENINFO_URL, params={"id_token": id_token}, timeout=10.0)
    except httpx.HTTPError as e:
        logger.error(f"❌ Google tokeninfo request failed: {e}")
        raise HTTPException(status_code=502, detail="Google verification unavailable") from e

    if response.status_code != 200:
        logger.warning(f"⚠️ Google rejected ID token: HTTP {response.status_code}")
        raise HTTPException(status_code=401, detail="Invalid Google token")

    claims = response.json()
    if claims.get("aud") != GOOGLE_CLIENT_ID:
        logger.warning("⚠️ Google ID token audience mismatch")
        raise HTTPException(status_code=401, detail="Invalid Google token")

    email_verified = str(claims.get("email_verified", "")).lower()
    if not claims.get("email") or email_verified != "true":
        raise HTTPException(status_code=401, detail="Google account email is not verified")

    return claims
