"""
Fixed-window request limiting for the marketplace API.

Each process keeps its own counters in memory and periodically writes them
to Redis, so a fresh worker (or a restarted one) picks up where the fleet
left off. Redis being down never blocks a request: counting simply stays
local until it comes back.
"""

import logging
import os
import time
from dataclasses import dataclass
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

GLOBAL_LIMIT = 1000
AUTH_LIMIT = 20
WINDOW_15_MIN = 15 * 60

REDIS_SYNC_SECONDS = 10
SWEEP_SECONDS = 60
REDIS_RECONNECT_BACKOFF = 30
REDIS_TIMEOUTS = {"socket_connect_timeout": 5, "socket_timeout": 5, "health_check_interval": 30}


@dataclass
class Window:
    count: int
    resets_at: int
    synced_at: int = 0

    def remaining_seconds(self, now: int) -> int:
        return max(0, self.resets_at - now)


redis_client: Optional[redis.Redis] = None
_reconnect_not_before = 0.0

memory_cache: dict[str, Window] = {}
_lock = Lock()
_last_sweep = 0


def _connect() -> redis.Redis:
    url = os.getenv("REDIS_URL")
    if url:
        logger.info(f"📡 Connecting to Redis via REDIS_URL ({url.rsplit('@', 1)[-1]})")
        return redis.from_url(url, decode_responses=True, **REDIS_TIMEOUTS)

    host = os.getenv("REDIS_HOST", "localhost")
    port = int(os.getenv("REDIS_PORT", "6379"))
    logger.info(f"📡 Connecting to Redis at {host}:{port}")
    return redis.Redis(
        host=host,
        port=port,
        db=int(os.getenv("REDIS_DB", "0")),
        password=os.getenv("REDIS_PASSWORD"),
        ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
        decode_responses=True,
        **REDIS_TIMEOUTS,
    )


def get_redis_client() -> redis.Redis:
    """
    Shared Redis connection used by the limiter and the response cache.

    Raises ``redis.RedisError`` when Redis cannot be reached; after a failure
    no reconnect is attempted for REDIS_RECONNECT_BACKOFF seconds.
    """
    global redis_client, _reconnect_not_before

    if redis_client is not None:
        return redis_client
    if time.time() < _reconnect_not_before:
        raise redis.ConnectionError("Redis unavailable (backing off)")

    try:
        client = _connect()
        client.ping()
    except redis.RedisError as e:
        _reconnect_not_before = time.time() + REDIS_RECONNECT_BACKOFF
        logger.warning(f"⚠️ Redis unreachable: {e}")
        raise

    logger.info("✅ Redis connected")
    redis_client = client
    return redis_client


def _sweep_expired(now: int) -> None:
    global _last_sweep
    if now - _last_sweep < SWEEP_SECONDS:
        return
    _last_sweep = now
    stale = [key for key, window in memory_cache.items() if now >= window.resets_at]
    for key in stale:
        memory_cache.pop(key, None)
    if stale:
        logger.debug(f"🧹 Dropped {len(stale)} expired rate limit windows")


def _open_window(key: str, window_seconds: int, now: int, client: Optional[redis.Redis]) -> Window:
    window = Window(count=0, resets_at=now + window_seconds, synced_at=now)
    if client is None:
        return window
    try:
        stored, ttl = client.get(key), client.ttl(key)
    except redis.RedisError as e:
        logger.warning(f"⚠️ Could not read {key} from Redis, counting locally: {e}")
        return window
    if stored and ttl > 0:
        window.count = int(stored)
        window.resets_at = now + ttl
    return window


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """Count one hit against ``key``.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    now = int(time.time())

    with _lock:
        _sweep_expired(now)
        window = memory_cache.get(key)
        if window is None:
            window = memory_cache[key] = _open_window(key, window_seconds, now, client)
        elif now >= window.resets_at:
            window.count, window.resets_at, window.synced_at = 0, now + window_seconds, 0

        allowed = window.count < limit
        if allowed:
            window.count += 1
        ttl = window.remaining_seconds(now)

        if client is not None and now - window.synced_at >= REDIS_SYNC_SECONDS:
            try:
                client.set(key, window.count, ex=max(ttl, 1))
                window.synced_at = now
            except redis.RedisError as e:
                logger.warning(f"⚠️ Could not push {key} to Redis: {e}")

        return allowed, window.count, ttl


def get_client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For when behind the load balancer, else the peer address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True):
    """
    Build a FastAPI dependency enforcing ``limit`` requests per ``window_seconds``.

    Example:
        payment_rate_limit = create_rate_limiter(limit=30, window_seconds=900, key_prefix="payments")

        @router.post("/create-intent", dependencies=[Depends(payment_rate_limit)])
        async def create_payment_intent(...):
            ...
    """

    async def rate_limiter(request: Request):
        if not RATE_LIMIT_ENABLED:
            return

        try:
            client = get_redis_client()
        except redis.RedisError:
            client = None

        key = f"{key_prefix}:{get_client_ip(request) if use_ip else 'global'}"
        allowed, count, ttl = check_rate_limit(key, limit, window_seconds, client)
        if not allowed:
            logger.warning(f"🚫 Rate limit hit for {key} ({count}/{limit})")
            raise HTTPException(
                status_code=429,
                detail="Too many requests, please try again later.",
                headers={"Retry-After": str(ttl)},
            )

        request.state.rate_limit_limit = limit
        request.state.rate_limit_remaining = limit - count
        request.state.rate_limit_reset = int(time.time()) + ttl

    return rate_limiter


global_rate_limit = create_rate_limiter(GLOBAL_LIMIT, WINDOW_15_MIN, key_prefix="api")
auth_rate_limit = create_rate_limiter(AUTH_LIMIT, WINDOW_15_MIN, key_prefix="auth")
