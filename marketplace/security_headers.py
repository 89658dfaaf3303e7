"""
Response hardening for the marketplace API.

Every JSON response leaving the API carries the same hardening header set
(tightened for a backend that never renders HTML).
Paths such as /health and the interactive docs are left untouched so health checks
and Swagger UI keep working.
"""

import logging
from typing import Callable, Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .config import ENVIRONMENT

logger = logging.getLogger(__name__)

HSTS_VALUE = "max-age=31536000; includeSubDomains; preload"

API_CSP_DIRECTIVES = (
    ("default-src", "'none'"),
    ("frame-ancestors", "'none'"),
    ("img-src", "'self' data: https:"),
    ("connect-src", "'self'"),
    ("base-uri", "'none'"),
    ("form-action", "'self'"),
)

DISABLED_BROWSER_FEATURES = ("accelerometer", "camera", "geolocation", "gyroscope", "microphone", "payment", "usb")


def build_listing_api_headers(production: bool) -> dict[str, str]:
    """Header map applied to every hardened response."""
    headers = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "X-Permitted-Cross-Domain-Policies": "none",
        "Content-Security-Policy": "; ".join(f"{name} {value}" for name, value in API_CSP_DIRECTIVES),
        "Permissions-Policy": ", ".join(f"{feature}=()" for feature in DISABLED_BROWSER_FEATURES),
    }
    if production:
        headers["Strict-Transport-Security"] = HSTS_VALUE
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exclude_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.exclude_prefixes = tuple(exclude_paths or ())
        self.hardening = build_listing_api_headers(ENVIRONMENT.lower() == "production")
        logger.debug("Security headers enabled (%d headers, %d exempt paths)", len(self.hardening), len(self.exclude_prefixes))

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        if self.exclude_prefixes and request.url.path.startswith(self.exclude_prefixes):
            return response

        response.headers.update(self.hardening)
        # Routes that opt into caching set their own Cache-Control
        response.headers.setdefault("Cache-Control", "no-store")
        return response
