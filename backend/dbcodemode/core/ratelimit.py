"""
Code-mode rate limiting: check_rate_limit, rate_limit_remaining.

Sliding window: N executions per minute per key (client id).
Redis (preferred) or in-memory fallback. Uses FLOW_CONTROL_RATE_LIMIT_ENABLED.

Fail-open: when Redis raises, check_rate_limit returns True (allow).
"""

import logging
import threading
import time

from dbcodemode.core.config import settings
from dbcodemode.core.redis_client import get_redis

_LOG = logging.getLogger(__name__)

_REDIS_KEY_PREFIX = "ratelimit:codemode:"
WINDOW_SECONDS = 60.0
_memory: dict[str, list[float]] = {}
_memory_lock = threading.Lock()
_memory_last_gc: float = 0.0
_MEMORY_GC_INTERVAL = 60.0


def _check_redis(key: str, limit: int, window_sec: float, r: "redis.Redis") -> bool:  # type: ignore[name-defined]
    k = _REDIS_KEY_PREFIX + key
    now = time.time()
    cutoff = now - window_sec
    try:
        pipe = r.pipeline(transaction=False)
        pipe.zremrangebyscore(k, "-inf", cutoff)
        pipe.zcard(k)
        results = pipe.execute()
        n = results[1]
        if n >= limit:
            return False
        pipe2 = r.pipeline(transaction=False)
        pipe2.zadd(k, {f"{now}": now})
        pipe2.expire(k, int(window_sec) + 1)
        pipe2.execute()
        return True
    except Exception as e:
        _LOG.warning("rate limit redis error for %s: %s", key, e)
        return True  # fail-open


def _count_redis(key: str, window_sec: float, r: "redis.Redis") -> int:  # type: ignore[name-defined]
    k = _REDIS_KEY_PREFIX + key
    try:
        return int(r.zcount(k, time.time() - window_sec, "+inf"))
    except Exception as e:
        _LOG.warning("rate limit redis error for %s: %s", key, e)
        return 0


def _gc_memory(force: bool = False) -> None:
    """Remove empty or fully-expired keys from in-memory store."""
    global _memory_last_gc
    now = time.time()
    if not force and (now - _memory_last_gc) < _MEMORY_GC_INTERVAL:
        return
    _memory_last_gc = now
    cutoff = now - WINDOW_SECONDS
    dead = [k for k, v in _memory.items() if not v or v[-1] <= cutoff]
    for k in dead:
        _memory.pop(k, None)


def _check_memory(key: str, limit: int, window_sec: float) -> bool:
    now = time.time()
    cutoff = now - window_sec
    with _memory_lock:
        arr = [t for t in _memory.get(key, []) if t > cutoff]
        if len(arr) >= limit:
            _memory[key] = arr
            return False
        arr.append(now)
        _memory[key] = arr
        _gc_memory()
        return True


def _count_memory(key: str, window_sec: float) -> int:
    cutoff = time.time() - window_sec
    with _memory_lock:
        return sum(1 for t in _memory.get(key, []) if t > cutoff)


def check_rate_limit(key: str, limit: int | None) -> bool:
    """
    Rate limit by key. True = allow, False = over limit.

    - If limit is None or <= 0: always True (no limit).
    - If FLOW_CONTROL_RATE_LIMIT_ENABLED is False: always True (kill switch).
    - Redis sorted set when available, else in-memory timestamps
      (not shared across processes).
    """
    if not settings.FLOW_CONTROL_RATE_LIMIT_ENABLED:
        return True
    if limit is None or limit <= 0:
        return True
    if not key or not isinstance(key, str):
        return True
    r = get_redis()
    if r is not None:
        return _check_redis(key, limit, WINDOW_SECONDS, r)
    return _check_memory(key, limit, WINDOW_SECONDS)


def rate_limit_remaining(key: str, limit: int) -> int:
    """Executions still allowed for *key* in the current window."""
    r = get_redis()
    used = (
        _count_redis(key, WINDOW_SECONDS, r)
        if r is not None
        else _count_memory(key, WINDOW_SECONDS)
    )
    return max(0, limit - used)


def cleanup_rate_limits() -> None:
    """Drop expired in-memory windows now (Redis keys expire on their own)."""
    with _memory_lock:
        _gc_memory(force=True)
