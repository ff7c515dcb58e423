"""
Core tool group: readQuery, writeQuery, listTables, describeTable.

Handlers are blocking (pymysql) and run in a worker thread via
OperationDescriptor.invoke. Each owns its input validation through a
pydantic model.
"""

import logging
import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

from dbcodemode.core.pool import cursor_to_dicts, execute, get_pool_manager
from dbcodemode.core.registry import OperationDescriptor, RequestContext, ToolRegistry

_log = logging.getLogger(__name__)

GROUP = "core"

_READ_PREFIX_RE = re.compile(r"^\s*(SELECT|SHOW|DESCRIBE|DESC|EXPLAIN|WITH)\b", re.IGNORECASE)
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_$]+(\.[A-Za-z0-9_$]+)?$")


def _quote_identifier(name: str) -> str:
    return ".".join(f"`{part}`" for part in name.split("."))


class ReadQueryInput(BaseModel):
    sql: str = Field(min_length=1)
    params: list[Any] | None = None

    @field_validator("sql")
    @classmethod
    def _must_be_read(cls, v: str) -> str:
        if not _READ_PREFIX_RE.match(v):
            raise ValueError("readQuery only accepts SELECT, SHOW, DESCRIBE, EXPLAIN or WITH statements")
        return v


class WriteQueryInput(BaseModel):
    sql: str = Field(min_length=1)
    params: list[Any] | None = None

    @field_validator("sql")
    @classmethod
    def _must_not_be_read(cls, v: str) -> str:
        if _READ_PREFIX_RE.match(v):
            raise ValueError("writeQuery does not accept read statements; use readQuery")
        return v


class ListTablesInput(BaseModel):
    database: str | None = None

    @field_validator("database")
    @classmethod
    def _valid_database(cls, v: str | None) -> str | None:
        if v is not None and not _IDENTIFIER_RE.match(v):
            raise ValueError(f"Invalid database name: {v}")
        return v


class DescribeTableInput(BaseModel):
    table: str = Field(min_length=1)

    @field_validator("table")
    @classmethod
    def _valid_table(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"Invalid table name: {v}")
        return v


def read_query(params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
    """Run a read-only statement and return its rows."""
    with get_pool_manager().connection() as conn:
        cur = execute(conn, params["sql"], params.get("params"))
        try:
            rows = cursor_to_dicts(cur)
        finally:
            cur.close()
    _log.debug("readQuery %s returned %d rows", context.request_id, len(rows))
    return {"rows": rows, "rowCount": len(rows)}


def write_query(params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
    """Run an INSERT/UPDATE/DELETE/DDL statement and commit it."""
    with get_pool_manager().connection() as conn:
        cur = execute(conn, params["sql"], params.get("params"))
        try:
            affected = cur.rowcount
            last_id = cur.lastrowid
        finally:
            cur.close()
        conn.commit()
    _log.debug("writeQuery %s affected %s rows", context.request_id, affected)
    return {"rowsAffected": affected, "lastInsertId": last_id or None}


def list_tables(params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
    """List tables and views of a database (the connection's default when omitted)."""
    sql = (
        "SELECT TABLE_NAME AS name, TABLE_TYPE AS type, ENGINE AS engine, "
        "TABLE_ROWS AS `rows` FROM information_schema.TABLES "
        "WHERE TABLE_SCHEMA = COALESCE(%s, DATABASE()) ORDER BY TABLE_NAME"
    )
    with get_pool_manager().connection() as conn:
        cur = execute(conn, sql, (params.get("database"),))
        try:
            tables = cursor_to_dicts(cur)
        finally:
            cur.close()
    return {"tables": tables, "count": len(tables)}


def describe_table(params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
    """Column definitions of a table."""
    table = params["table"]
    with get_pool_manager().connection() as conn:
        cur = execute(conn, f"SHOW FULL COLUMNS FROM {_quote_identifier(table)}")
        try:
            columns = [
                {
                    "name": c.get("Field"),
                    "type": c.get("Type"),
                    "nullable": c.get("Null") == "YES",
                    "key": c.get("Key") or None,
                    "default": c.get("Default"),
                    "extra": c.get("Extra") or None,
                    "comment": c.get("Comment") or None,
                }
                for c in cursor_to_dicts(cur)
            ]
        finally:
            cur.close()
    return {"table": table, "columns": columns}


DESCRIPTORS: tuple[OperationDescriptor, ...] = (
    OperationDescriptor(
        name="mysql_read_query",
        group=GROUP,
        handler=read_query,
        input_schema=ReadQueryInput,
        description="Execute a read-only SQL query.",
    ),
    OperationDescriptor(
        name="mysql_write_query",
        group=GROUP,
        handler=write_query,
        input_schema=WriteQueryInput,
        description="Execute a write SQL statement and commit.",
    ),
    OperationDescriptor(
        name="mysql_list_tables",
        group=GROUP,
        handler=list_tables,
        input_schema=ListTablesInput,
        description="List tables in a database.",
    ),
    OperationDescriptor(
        name="mysql_describe_table",
        group=GROUP,
        handler=describe_table,
        input_schema=DescribeTableInput,
        description="Describe a table's columns.",
    ),
)


def register(registry: ToolRegistry) -> None:
    for d in DESCRIPTORS:
        registry.register(d)
