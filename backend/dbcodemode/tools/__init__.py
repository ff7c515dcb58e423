"""
Tool groups exposed through the registry.
"""

from dbcodemode.core.registry import ToolRegistry

from . import core


def build_registry() -> ToolRegistry:
    """Registry with every built-in tool group registered."""
    registry = ToolRegistry()
    core.register(registry)
    return registry


__all__ = ["build_registry"]
