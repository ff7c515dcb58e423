"""
Connection pool for MySQL targets.

Reuses connections per target to avoid open/close on every operation.
Includes health-check on checkout, max-age eviction, and thread-safe
singleton initialisation. Shared by every code-mode session exactly as by
direct tool use.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, NamedTuple

from dbcodemode.core.config import settings

from .connect import MySQLTarget, connect

_log = logging.getLogger(__name__)

_PING_IDLE_THRESHOLD = 30.0  # only ping connections idle longer than this (seconds)


class _PoolEntry(NamedTuple):
    conn: Any
    created_at: float  # time.monotonic() when the connection was opened
    last_used: float   # time.monotonic() when last returned to pool


class PoolManager:
    """Per-target connection pool with health-check and max-age."""

    def __init__(self) -> None:
        self._pools: dict[str, list[_PoolEntry]] = {}
        self._opened_at: dict[int, float] = {}
        self._lock = threading.Lock()
        self._pool_size: int = settings.EXTERNAL_DB_POOL_SIZE
        self._max_age: float = float(settings.EXTERNAL_DB_POOL_MAX_AGE_SEC)

    def get_connection(self, target: MySQLTarget | None = None) -> Any:
        """Get a healthy connection for *target* (from pool or freshly opened)."""
        target = target or MySQLTarget.from_settings()
        now = time.monotonic()
        while True:
            entry = self._pop(target.key)
            if entry is None:
                break
            if self._is_expired(entry):
                self._discard(entry.conn)
                continue
            idle_sec = now - entry.last_used
            if idle_sec > _PING_IDLE_THRESHOLD and not self._is_alive(entry.conn):
                self._discard(entry.conn)
                continue
            try:
                entry.conn.rollback()
            except Exception:
                self._discard(entry.conn)
                continue
            return entry.conn

        conn = connect(target)
        with self._lock:
            self._opened_at[id(conn)] = time.monotonic()
        return conn

    def release(self, conn: Any, target: MySQLTarget | None = None) -> None:
        """Return a connection to the pool (or close it if the pool is full)."""
        target = target or MySQLTarget.from_settings()
        try:
            conn.rollback()
        except Exception:
            self._discard(conn)
            return

        with self._lock:
            pool = self._pools.setdefault(target.key, [])
            if len(pool) < self._pool_size:
                now = time.monotonic()
                created_at = self._opened_at.get(id(conn), now)
                pool.append(_PoolEntry(conn=conn, created_at=created_at, last_used=now))
                return

        self._discard(conn)

    @contextmanager
    def connection(self, target: MySQLTarget | None = None) -> Iterator[Any]:
        """Checkout/release as a context manager; broken connections are not pooled."""
        conn = self.get_connection(target)
        try:
            yield conn
        except Exception:
            self._discard(conn)
            raise
        else:
            self.release(conn, target)

    def dispose(self) -> None:
        """Close all pooled connections."""
        with self._lock:
            entries = [e for pool in self._pools.values() for e in pool]
            self._pools.clear()
        for e in entries:
            self._discard(e.conn)

    def stats(self) -> dict[str, int]:
        """Return pool statistics for monitoring."""
        with self._lock:
            total = sum(len(p) for p in self._pools.values())
            return {
                "targets": len(self._pools),
                "idle_connections": total,
            }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pop(self, key: str) -> _PoolEntry | None:
        with self._lock:
            pool = self._pools.get(key)
            if pool:
                return pool.pop()
        return None

    def _is_expired(self, entry: _PoolEntry) -> bool:
        return (time.monotonic() - entry.created_at) > self._max_age

    @staticmethod
    def _is_alive(conn: Any) -> bool:
        """Lightweight ping: attempt a no-op query to detect broken connections."""
        try:
            cur = conn.cursor()
            cur.execute("SELECT 1")
            cur.close()
            return True
        except Exception:
            return False

    def _discard(self, conn: Any) -> None:
        with self._lock:
            self._opened_at.pop(id(conn), None)
        try:
            conn.close()
        except Exception as e:
            _log.debug("closing pooled connection failed: %s", e)


_pool_manager: PoolManager | None = None
_pool_lock = threading.Lock()


def get_pool_manager() -> PoolManager:
    """Return the singleton PoolManager (thread-safe double-checked locking)."""
    global _pool_manager
    if _pool_manager is None:
        with _pool_lock:
            if _pool_manager is None:
                _pool_manager = PoolManager()
    return _pool_manager
