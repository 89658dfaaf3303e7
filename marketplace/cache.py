"""
Read-through cache for the few marketplace aggregates that are expensive to
recompute on every request: the popular-search ranking and per-host review
statistics. Values are stored as JSON in the same Redis instance the rate
limiter uses. When Redis is down every lookup is a miss and every write is a
no-op, so callers never need their own fallback.
"""

import json
import logging
from typing import Any, Callable, Optional, TypeVar

import redis

from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "marketplace"
POPULAR_SEARCHES_TTL = 600
HOST_REVIEW_STATS_TTL = 300


class Cache:
    def __init__(self, prefix: str = KEY_PREFIX):
        self.prefix = prefix
        self.redis_client = None

    def _get_client(self):
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except redis.RedisError as e:
                logger.debug(f"Redis cache unavailable: {e}")
                return None
        return self.redis_client

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _guarded(self, action: str, key: str, fn: Callable[[Any], T], fallback: T) -> T:
        client = self._get_client()
        if client is None:
            return fallback
        try:
            return fn(client)
        except (redis.RedisError, ValueError, TypeError) as e:
            logger.error(f"❌ Cache {action} failed for {key}: {e}")
            return fallback

    def get(self, key: str) -> Optional[Any]:
        raw = self._guarded("get", key, lambda c: c.get(self._key(key)), None)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Store ``value`` as JSON for ``ttl`` seconds."""
        payload = json.dumps(value, default=str)
        return self._guarded("set", key, lambda c: bool(c.setex(self._key(key), ttl, payload)), False)

    def delete(self, key: str) -> bool:
        return self._guarded("delete", key, lambda c: c.delete(self._key(key)) > 0, False)


cache = Cache()


def popular_searches_key() -> str:
    return "popular_searches"


def host_review_stats_key(host_id: str) -> str:
    return f"host_review_stats:{host_id}"


def invalidate_host_review_stats(host_id: str) -> bool:
    """Drop cached review stats after a review is created or answered"""
    return cache.delete(host_review_stats_key(host_id))
