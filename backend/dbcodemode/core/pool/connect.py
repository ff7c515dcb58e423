"""
pymysql connection helpers for the target MySQL server.

The target comes from settings (MYSQL_*) unless a MySQLTarget is passed.
"""

from dataclasses import dataclass
from typing import Any

import pymysql

from dbcodemode.core.config import settings


@dataclass(frozen=True)
class MySQLTarget:
    host: str
    port: int
    user: str
    password: str
    database: str

    @property
    def key(self) -> str:
        return f"{self.user}@{self.host}:{self.port}/{self.database}"

    @classmethod
    def from_settings(cls) -> "MySQLTarget":
        return cls(
            host=settings.MYSQL_HOST,
            port=settings.MYSQL_PORT,
            user=settings.MYSQL_USER,
            password=settings.MYSQL_PASSWORD,
            database=settings.MYSQL_DATABASE,
        )


def connect(target: MySQLTarget | None = None) -> Any:
    """Open a new pymysql connection (autocommit off; callers commit writes)."""
    target = target or MySQLTarget.from_settings()
    if not target.host:
        raise ValueError("MySQL target must provide host")
    return pymysql.connect(
        host=target.host,
        port=int(target.port),
        user=target.user,
        password=target.password or "",
        database=target.database or None,
        connect_timeout=settings.EXTERNAL_DB_CONNECT_TIMEOUT,
        autocommit=False,
    )


def execute(conn: Any, sql: str, params: dict | list | tuple | None = None) -> Any:
    """
    Execute SQL and return the cursor. Caller uses cursor_to_dicts(cursor) or cursor.rowcount.

    When EXTERNAL_DB_STATEMENT_TIMEOUT is set, max_execution_time is applied
    for this statement and reset afterwards.
    """
    timeout_sec = settings.EXTERNAL_DB_STATEMENT_TIMEOUT
    use_timeout = timeout_sec is not None and timeout_sec > 0

    if use_timeout:
        cur_set = conn.cursor()
        try:
            cur_set.execute("SET SESSION max_execution_time = %s", (int(timeout_sec * 1000),))
        finally:
            cur_set.close()

    cur = conn.cursor()
    try:
        if params is not None:
            cur.execute(sql, params)
        else:
            cur.execute(sql)
    finally:
        if use_timeout:
            try:
                cur_reset = conn.cursor()
                cur_reset.execute("SET SESSION max_execution_time = 0")
                cur_reset.close()
            except pymysql.MySQLError:
                pass

    return cur


def cursor_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert cursor result to list of dicts."""
    desc = cursor.description
    if not desc:
        return []
    names = [d[0] for d in desc]
    return [dict(zip(names, row, strict=True)) for row in cursor.fetchall()]
