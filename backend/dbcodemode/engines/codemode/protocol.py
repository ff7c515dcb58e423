"""
Wire messages exchanged between the orchestrator and a worker.

Everything that crosses the process boundary is a plain dict produced by
``model_dump()`` and re-validated on receipt; no callables ever cross.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

MessageType = Literal["request", "response", "result"]

# failure tags carried in ExecutionResult.error_type
ERROR_RUNTIME = "runtime"
ERROR_TIMEOUT = "timeout"
ERROR_TRANSPORT = "transport"
ERROR_SPAWN = "spawn"
ERROR_VALIDATION = "validation"
ERROR_RATE_LIMIT = "rate_limit"
ERROR_UNAVAILABLE = "unavailable"


class RpcRequest(BaseModel):
    type: Literal["request"] = "request"
    id: int = Field(ge=0)
    group: str
    method: str
    args: list[Any] = Field(default_factory=list)


class RpcResponse(BaseModel):
    type: Literal["response"] = "response"
    id: int
    result: Any = None
    error: str | None = None


class ExecutionMetrics(BaseModel):
    wall_time_ms: float = 0.0
    cpu_time_ms: float = 0.0
    memory_used_mb: float = 0.0


class ExecutionResult(BaseModel):
    type: Literal["result"] = "result"
    success: bool
    result: Any = None
    error: str | None = None
    stack: str | None = None
    error_type: str | None = None
    metrics: ExecutionMetrics | None = None

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        error_type: str = ERROR_RUNTIME,
        stack: str | None = None,
    ) -> "ExecutionResult":
        return cls(success=False, error=error, error_type=error_type, stack=stack)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump()


class GroupManifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    group: str
    methods: tuple[str, ...]
    # alias name -> canonical method name within the same group
    aliases: dict[str, str] = Field(default_factory=dict)


class Manifest(BaseModel):
    """Group/method names handed to a worker; its entire reachable surface."""

    model_config = ConfigDict(frozen=True)

    groups: tuple[GroupManifest, ...] = ()
    # root-level name -> (group, canonical method)
    top_level: dict[str, tuple[str, str]] = Field(default_factory=dict)

    def group_names(self) -> list[str]:
        return [g.group for g in self.groups]

    def method_count(self) -> int:
        return sum(len(g.methods) for g in self.groups)
