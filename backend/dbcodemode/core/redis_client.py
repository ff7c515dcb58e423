"""
Shared Redis client for the code-mode rate limiter.

One lazily created client per process; ``None`` when Redis is disabled
(``CACHE_ENABLED=False``) or unreachable, in which case callers fall back
to in-memory state.
"""

import logging
import threading

import redis

from dbcodemode.core.config import settings

_LOG = logging.getLogger(__name__)

_lock = threading.Lock()
_client: "redis.Redis | None" = None
_tried = False


def get_redis() -> "redis.Redis | None":
    """Return the shared Redis client (bytes responses) or ``None``."""
    global _client, _tried
    if _tried:
        return _client
    with _lock:
        if _tried:
            return _client
        _tried = True
        _client = _create_client()
        return _client


def _create_client() -> "redis.Redis | None":
    if not settings.CACHE_ENABLED:
        return None
    try:
        r = redis.Redis.from_url(settings.redis_url, decode_responses=False)
        r.ping()
        return r
    except Exception as e:
        _LOG.debug("Redis unavailable: %s", e)
        return None


def reset() -> None:
    """Forget the cached client so the next call reconnects (tests, reload)."""
    global _client, _tried
    with _lock:
        _client = None
        _tried = False
