"""Unit tests for core.registry: ToolRegistry and OperationDescriptor."""

import asyncio
from typing import Any

import pytest
from pydantic import BaseModel, ValidationError

from dbcodemode.core.registry import OperationDescriptor, RequestContext, ToolRegistry


class _Input(BaseModel):
    table: str
    limit: int = 10


def _sync(params: Any, context: RequestContext) -> Any:
    return {"params": params, "request_id": context.request_id}


async def _async(params: Any, context: RequestContext) -> Any:
    return {"async": params}


def test_register_and_get() -> None:
    registry = ToolRegistry()
    d = registry.register(OperationDescriptor("mysql_read_query", "core", _sync))
    assert registry.get("mysql_read_query") is d
    assert registry.get("missing") is None
    assert len(registry) == 1


def test_duplicate_name_rejected() -> None:
    registry = ToolRegistry([OperationDescriptor("mysql_read_query", "core", _sync)])
    with pytest.raises(ValueError, match="already registered"):
        registry.register(OperationDescriptor("mysql_read_query", "core", _async))


def test_by_group_keeps_registration_order() -> None:
    registry = ToolRegistry(
        [
            OperationDescriptor("mysql_read_query", "core", _sync),
            OperationDescriptor("mysql_json_extract", "json", _sync),
            OperationDescriptor("mysql_list_tables", "core", _sync),
        ]
    )
    grouped = registry.by_group()
    assert list(grouped) == ["core", "json"]
    assert [d.name for d in grouped["core"]] == ["mysql_read_query", "mysql_list_tables"]


def test_tool_decorator_uses_docstring() -> None:
    registry = ToolRegistry()

    @registry.tool("mysql_server_status", "monitoring")
    def server_status(params: Any, context: RequestContext) -> Any:
        """Show server status variables."""
        return {}

    d = registry.get("mysql_server_status")
    assert d is not None
    assert d.handler is server_status
    assert d.description == "Show server status variables."


def test_invoke_sync_handler() -> None:
    d = OperationDescriptor("mysql_read_query", "core", _sync)
    context = RequestContext()
    out = asyncio.run(d.invoke({"sql": "SELECT 1"}, context))
    assert out == {"params": {"sql": "SELECT 1"}, "request_id": context.request_id}


def test_invoke_async_handler() -> None:
    d = OperationDescriptor("mysql_read_query", "core", _async)
    assert asyncio.run(d.invoke({"sql": "SELECT 1"}, RequestContext())) == {
        "async": {"sql": "SELECT 1"}
    }


def test_input_schema_validation() -> None:
    d = OperationDescriptor("mysql_describe_table", "core", _async, input_schema=_Input)
    assert d.validate({"table": "users"}) == {"table": "users", "limit": 10}
    with pytest.raises(ValidationError):
        d.validate({"limit": 5})
    with pytest.raises(ValidationError):
        asyncio.run(d.invoke(None, RequestContext()))


def test_contexts_are_fresh() -> None:
    registry = ToolRegistry()
    a = registry.create_context()
    b = registry.create_context()
    assert a.request_id != b.request_id
