"""
CapabilityBinding: the host-side call surface built from a ToolRegistry.

Per group, canonical method names (derived from tool names) and their
aliases map to one async wrapper per operation. The binding also derives
the names-only Manifest handed to workers, and answers the RPC requests
they send back.
"""

import logging
from collections.abc import Iterable
from types import MappingProxyType
from typing import Any

from dbcodemode.core.config import settings
from dbcodemode.core.registry import OperationDescriptor, ToolRegistry

from .errors import CapabilityError
from .naming import (
    GROUP_EXAMPLES,
    METHOD_ALIASES,
    TOP_LEVEL_METHODS,
    TOP_LEVEL_PREFIXED_GROUPS,
    is_useful_alias,
    tool_name_to_method_name,
    top_level_name,
)
from .params import normalize_params
from .protocol import GroupManifest, Manifest

_log = logging.getLogger(__name__)


def _make_wrapper(descriptor: OperationDescriptor, canonical: str, registry: ToolRegistry):
    async def call(*args: Any) -> Any:
        params = normalize_params(canonical, args)
        if params is None:
            params = {}
        return await descriptor.invoke(params, registry.create_context())

    call.__name__ = canonical
    call.__qualname__ = f"{descriptor.group}.{canonical}"
    return call


class GroupBinding:
    """Immutable namespace of one tool group."""

    def __init__(
        self,
        group: str,
        wrappers: dict[str, Any],
        aliases: dict[str, str],
    ) -> None:
        self.group = group
        self.methods: tuple[str, ...] = tuple(wrappers)
        self.aliases = MappingProxyType(dict(aliases))
        self.useful_aliases: tuple[str, ...] = tuple(
            a for a in aliases if is_useful_alias(group, a)
        )
        namespace = dict(wrappers)
        for alias, canonical in aliases.items():
            namespace[alias] = wrappers[canonical]
        self._namespace = MappingProxyType(namespace)

    def canonical(self, name: str) -> str | None:
        if name in self.methods:
            return name
        return self.aliases.get(name)

    def get(self, name: str):
        return self._namespace.get(name)

    def __getitem__(self, name: str):
        return self._namespace[name]

    def __contains__(self, name: object) -> bool:
        return name in self._namespace

    def names(self) -> list[str]:
        return list(self._namespace)

    def help(self) -> dict[str, Any]:
        return {
            "group": self.group,
            "methods": list(self.methods),
            "methodAliases": list(self.useful_aliases),
        }

    def to_manifest(self) -> GroupManifest:
        return GroupManifest(group=self.group, methods=self.methods, aliases=dict(self.aliases))


def _build_group(
    group: str,
    descriptors: Iterable[OperationDescriptor],
    registry: ToolRegistry,
    tool_prefix: str,
) -> GroupBinding:
    wrappers: dict[str, Any] = {}
    for d in descriptors:
        canonical = tool_name_to_method_name(d.name, group, tool_prefix)
        if canonical in wrappers:
            _log.warning(
                "codemode: %s maps to %s.%s which is already bound; skipped",
                d.name,
                group,
                canonical,
            )
            continue
        wrappers[canonical] = _make_wrapper(d, canonical, registry)

    aliases: dict[str, str] = {}
    for alias, canonical in METHOD_ALIASES.get(group, {}).items():
        if canonical in wrappers and alias not in wrappers:
            aliases[alias] = canonical
    return GroupBinding(group, wrappers, aliases)


class CapabilityBinding:
    """
    Built once per registry snapshot; lives for the process lifetime.

    ``resolve`` and ``invoke`` are the only paths from an RPC request to a
    real handler; both accept canonical names and aliases.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        excluded_groups: Iterable[str] | None = None,
        tool_prefix: str | None = None,
    ) -> None:
        excluded = frozenset(
            settings.codemode_excluded_groups if excluded_groups is None else excluded_groups
        )
        prefix = settings.CODEMODE_TOOL_PREFIX if tool_prefix is None else tool_prefix
        groups: dict[str, GroupBinding] = {}
        for group, descriptors in registry.by_group().items():
            if group in excluded:
                continue
            groups[group] = _build_group(group, descriptors, registry, prefix)
        self.registry = registry
        self.groups = MappingProxyType(groups)
        self.top_level = MappingProxyType(self._build_top_level())
        self._manifest: Manifest | None = None
        _log.info(
            "codemode: bound %d groups, %d methods, %d top-level aliases",
            len(self.groups),
            sum(len(g.methods) for g in self.groups.values()),
            len(self.top_level),
        )

    def _build_top_level(self) -> dict[str, tuple[str, str]]:
        top: dict[str, tuple[str, str]] = {}

        def add(name: str, group: str, method: str) -> None:
            if name == "help" or name in self.groups or name in top:
                return
            top[name] = (group, method)

        for group, methods in TOP_LEVEL_METHODS.items():
            binding = self.groups.get(group)
            if binding is None:
                continue
            for method in methods:
                if method in binding.methods:
                    add(top_level_name(group, method), group, method)
        for group in TOP_LEVEL_PREFIXED_GROUPS:
            binding = self.groups.get(group)
            if binding is None:
                continue
            for method in binding.methods:
                add(top_level_name(group, method), group, method)
        return top

    def resolve(self, group: str, method: str):
        binding = self.groups.get(group)
        if binding is None:
            return None
        return binding.get(method)

    async def invoke(self, group: str, method: str, args: list[Any] | tuple[Any, ...]) -> Any:
        fn = self.resolve(group, method)
        if fn is None:
            raise CapabilityError(f"Unknown capability: {group}.{method}")
        return await fn(*args)

    def manifest(self) -> Manifest:
        if self._manifest is None:
            self._manifest = Manifest(
                groups=tuple(g.to_manifest() for g in self.groups.values()),
                top_level=dict(self.top_level),
            )
        return self._manifest

    def help(self) -> dict[str, Any]:
        """Host-side help: everything the script-side help() shows, plus examples."""
        groups = []
        for g in self.groups.values():
            entry = g.help()
            entry["examples"] = list(GROUP_EXAMPLES.get(g.group, ()))
            groups.append(entry)
        return {
            "root": settings.CODEMODE_ROOT_NAME,
            "groups": groups,
            "topLevel": sorted(self.top_level),
        }
