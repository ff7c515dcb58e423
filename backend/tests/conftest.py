from collections.abc import Callable
from typing import Any
from unittest.mock import patch

import pytest

from dbcodemode.core import ratelimit
from dbcodemode.core.registry import OperationDescriptor, ToolRegistry


@pytest.fixture(autouse=True)
def _memory_rate_limiter():
    """In-memory rate limiting with a clean window for every test (no Redis)."""
    ratelimit._memory.clear()
    with patch.object(ratelimit, "get_redis", return_value=None):
        yield
    ratelimit._memory.clear()


@pytest.fixture
def make_registry() -> Callable[..., ToolRegistry]:
    """
    Factory: make_registry(("mysql_read_query", "core", handler), ...).

    Handlers take (params, context) like real tool handlers.
    """

    def _make(*tools: tuple[str, str, Callable[[Any, Any], Any]]) -> ToolRegistry:
        return ToolRegistry(
            OperationDescriptor(name=name, group=group, handler=handler)
            for name, group, handler in tools
        )

    return _make
