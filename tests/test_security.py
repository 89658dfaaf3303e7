from __future__ import annotations

import asyncio
import time

import pytest
import redis
from fastapi import HTTPException
from starlette.requests import Request

from marketplace import rate_limiter
from marketplace.security_utils import (
    generate_timed_token,
    sanitize_filename,
    sanitize_text,
    verify_timed_token,
)
from marketplace.webhook_security import verify_stripe_signature
from support import stripe_signature

# ---------------------------------------------------------------------------
# Application envelope
# ---------------------------------------------------------------------------


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"
    assert "X-Frame-Options" not in response.headers


def test_security_headers_on_api_routes(client, db) -> None:
    response = client.get("/api/properties")

    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"] == "no-store"
    assert "default-src 'none'" in response.headers["Content-Security-Policy"]


def test_unknown_route_uses_error_envelope(client) -> None:
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found"}


def test_validation_errors_list_fields(client, db) -> None:
    response = client.post("/api/auth/login", json={})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert {d["field"] for d in body["details"]} >= {"email", "password"}


def test_missing_token_is_401(client, db) -> None:
    response = client.get("/api/bookings")

    assert response.status_code == 401
    assert response.json()["error"] == "Access token required"


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def make_request(ip: str = "10.0.0.1", forwarded: str | None = None) -> Request:
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": (ip, 5000)})


@pytest.fixture()
def limiter_state(monkeypatch):
    monkeypatch.setattr(rate_limiter, "memory_cache", {})
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)

    def unreachable():
        raise redis.ConnectionError("down")

    monkeypatch.setattr(rate_limiter, "get_redis_client", unreachable)


def test_check_rate_limit_counts_in_memory(limiter_state) -> None:
    results = [rate_limiter.check_rate_limit("test:key", 2, 60)[0] for _ in range(3)]

    assert results == [True, True, False]


def test_rate_limiter_rejects_with_retry_after(limiter_state) -> None:
    limiter = rate_limiter.create_rate_limiter(1, 60, key_prefix="unit")
    request = make_request()

    asyncio.run(limiter(request))
    assert request.state.rate_limit_remaining == 0

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(limiter(make_request()))
    assert exc_info.value.status_code == 429
    assert int(exc_info.value.headers["Retry-After"]) <= 60

    asyncio.run(limiter(make_request(ip="10.0.0.2")))


def test_client_ip_prefers_forwarded_header() -> None:
    assert rate_limiter.get_client_ip(make_request(forwarded="203.0.113.9, 10.0.0.1")) == "203.0.113.9"
    assert rate_limiter.get_client_ip(make_request()) == "10.0.0.1"


# ---------------------------------------------------------------------------
# Signatures and sanitizing
# ---------------------------------------------------------------------------


def test_stripe_signature_verification() -> None:
    payload = b'{"type":"checkout.session.completed"}'
    header = stripe_signature("whsec_test", payload)

    assert verify_stripe_signature(payload, header, "whsec_test")
    assert not verify_stripe_signature(payload, header, "whsec_other")
    assert not verify_stripe_signature(b"{}", header, "whsec_test")

    stale = stripe_signature("whsec_test", payload, timestamp=int(time.time()) - 3600)
    assert not verify_stripe_signature(payload, stale, "whsec_test")


def test_timed_tokens_are_bound_to_purpose() -> None:
    token = generate_timed_token({"email": "guest@example.com"}, "email-verification")

    assert verify_timed_token(token, "email-verification", 60) == {"email": "guest@example.com"}
    assert verify_timed_token(token, "password-reset", 60) is None


def test_sanitize_helpers() -> None:
    assert sanitize_text("  <script>alert(1)</script>Hello <b>there</b> ") == "alert(1)Hello there"
    assert sanitize_text(None) is None
    assert sanitize_filename("../../etc/pass wd.jpg") == "pass_wd.jpg"
    assert sanitize_filename("???").startswith("file_")
