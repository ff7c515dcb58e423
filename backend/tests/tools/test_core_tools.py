"""Unit tests for the core tool group (pool and cursor mocked, no MySQL)."""

import asyncio
from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from dbcodemode.core.config import settings
from dbcodemode.core.registry import RequestContext
from dbcodemode.engines.codemode.binding import CapabilityBinding
from dbcodemode.tools import build_registry
from dbcodemode.tools import core as core_tools


def _cursor(description=None, rows=(), rowcount=0, lastrowid=None) -> MagicMock:
    cur = MagicMock()
    cur.description = description
    cur.fetchall.return_value = list(rows)
    cur.rowcount = rowcount
    cur.lastrowid = lastrowid
    return cur


@pytest.fixture
def conn():
    conn = MagicMock()
    manager = MagicMock()

    @contextmanager
    def _connection(target=None):
        yield conn

    manager.connection.side_effect = _connection
    with (
        patch("dbcodemode.tools.core.get_pool_manager", return_value=manager),
        patch.object(settings, "EXTERNAL_DB_STATEMENT_TIMEOUT", None),
    ):
        yield conn


def test_registry_contains_core_tools() -> None:
    registry = build_registry()
    names = [d.name for d in registry.descriptors()]
    assert names == [
        "mysql_read_query",
        "mysql_write_query",
        "mysql_list_tables",
        "mysql_describe_table",
    ]
    assert set(registry.by_group()) == {"core"}


def test_read_query(conn: MagicMock) -> None:
    conn.cursor.return_value = _cursor([("id",), ("name",)], [(1, "a")])
    out = core_tools.read_query({"sql": "SELECT id, name FROM t", "params": None}, RequestContext())
    assert out == {"rows": [{"id": 1, "name": "a"}], "rowCount": 1}
    conn.commit.assert_not_called()


def test_write_query_commits(conn: MagicMock) -> None:
    conn.cursor.return_value = _cursor(rowcount=3, lastrowid=0)
    out = core_tools.write_query({"sql": "UPDATE t SET a = %s", "params": [1]}, RequestContext())
    assert out == {"rowsAffected": 3, "lastInsertId": None}
    conn.commit.assert_called_once()


def test_list_tables_uses_default_database(conn: MagicMock) -> None:
    cur = _cursor([("name",), ("type",), ("engine",), ("rows",)], [("users", "BASE TABLE", "InnoDB", 10)])
    conn.cursor.return_value = cur
    out = core_tools.list_tables({"database": None}, RequestContext())
    assert out["count"] == 1
    assert out["tables"][0]["name"] == "users"
    sql, params = cur.execute.call_args.args
    assert "information_schema.TABLES" in sql
    assert params == (None,)


def test_describe_table_quotes_identifier(conn: MagicMock) -> None:
    desc = [("Field",), ("Type",), ("Null",), ("Key",), ("Default",), ("Extra",), ("Comment",)]
    cur = _cursor(desc, [("id", "int", "NO", "PRI", None, "auto_increment", "")])
    conn.cursor.return_value = cur
    out = core_tools.describe_table({"table": "shop.users"}, RequestContext())
    assert cur.execute.call_args.args[0] == "SHOW FULL COLUMNS FROM `shop`.`users`"
    assert out["columns"] == [
        {
            "name": "id",
            "type": "int",
            "nullable": False,
            "key": "PRI",
            "default": None,
            "extra": "auto_increment",
            "comment": None,
        }
    ]


@pytest.mark.parametrize(
    ("model", "params"),
    [
        (core_tools.ReadQueryInput, {"sql": "DELETE FROM t"}),
        (core_tools.WriteQueryInput, {"sql": "SELECT 1"}),
        (core_tools.DescribeTableInput, {"table": "users; DROP TABLE x"}),
        (core_tools.ListTablesInput, {"database": "a b"}),
    ],
)
def test_input_validation(model, params) -> None:
    with pytest.raises(ValidationError):
        model.model_validate(params)


def test_binding_over_core_tools(conn: MagicMock) -> None:
    conn.cursor.return_value = _cursor([("1",)], [(1,)])
    binding = CapabilityBinding(build_registry(), excluded_groups=(), tool_prefix="mysql_")
    assert binding.groups["core"].methods == (
        "readQuery",
        "writeQuery",
        "listTables",
        "describeTable",
    )
    out = asyncio.run(binding.invoke("core", "readQuery", ["SELECT 1"]))
    assert out == {"rows": [{"1": 1}], "rowCount": 1}
    with pytest.raises(ValidationError):
        asyncio.run(binding.invoke("core", "readQuery", ["DROP TABLE users"]))
