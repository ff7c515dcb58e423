"""
Tool registry: operation descriptors grouped by tool group, plus the
per-call request context factory.

Handlers take ``(params, context)`` and may be plain functions (run in a
worker thread) or coroutine functions (awaited). Each descriptor owns its
input validation through an optional pydantic ``input_schema``.
"""

import asyncio
import inspect
import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

_log = logging.getLogger(__name__)

Handler = Callable[[Any, "RequestContext"], Any]


@dataclass(frozen=True)
class RequestContext:
    """Fresh per operation call; callers never share or persist it."""

    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    group: str
    handler: Handler
    input_schema: type[BaseModel] | None = None
    description: str = ""

    def validate(self, params: Any) -> Any:
        """Run the operation's own input validation (raises pydantic.ValidationError)."""
        if self.input_schema is None:
            return params
        model = self.input_schema.model_validate(params if params is not None else {})
        return model.model_dump()

    async def invoke(self, params: Any, context: RequestContext) -> Any:
        validated = self.validate(params)
        if inspect.iscoroutinefunction(self.handler):
            return await self.handler(validated, context)
        result = await asyncio.to_thread(self.handler, validated, context)
        if inspect.isawaitable(result):
            return await result
        return result


class ToolRegistry:
    """Ordered, name-unique collection of OperationDescriptors."""

    def __init__(self, descriptors: Iterable[OperationDescriptor] = ()) -> None:
        self._tools: dict[str, OperationDescriptor] = {}
        self._lock = threading.Lock()
        for d in descriptors:
            self.register(d)

    def register(self, descriptor: OperationDescriptor) -> OperationDescriptor:
        with self._lock:
            if descriptor.name in self._tools:
                raise ValueError(f"Tool already registered: {descriptor.name}")
            self._tools[descriptor.name] = descriptor
        _log.debug("registered tool %s (group=%s)", descriptor.name, descriptor.group)
        return descriptor

    def tool(
        self,
        name: str,
        group: str,
        *,
        input_schema: type[BaseModel] | None = None,
        description: str = "",
    ) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""

        def decorator(fn: Handler) -> Handler:
            self.register(
                OperationDescriptor(
                    name=name,
                    group=group,
                    handler=fn,
                    input_schema=input_schema,
                    description=description or (fn.__doc__ or "").strip(),
                )
            )
            return fn

        return decorator

    def get(self, name: str) -> OperationDescriptor | None:
        return self._tools.get(name)

    def descriptors(self) -> list[OperationDescriptor]:
        with self._lock:
            return list(self._tools.values())

    def by_group(self) -> dict[str, list[OperationDescriptor]]:
        grouped: dict[str, list[OperationDescriptor]] = {}
        for d in self.descriptors():
            grouped.setdefault(d.group, []).append(d)
        return grouped

    def create_context(self) -> RequestContext:
        return RequestContext()

    def __len__(self) -> int:
        return len(self._tools)
