"""
Code mode engine: capability binding, isolated worker orchestration, sandbox.

Exports: CapabilityBinding, Orchestrator, ExecutionResult, Manifest and the
error types. The service layer (which pulls in the tool registry) is
imported from .service directly so worker processes stay light.
"""

from .binding import CapabilityBinding
from .errors import (
    CapabilityError,
    CodeModeError,
    SandboxSpawnError,
    ScriptTimeoutError,
    TransportError,
)
from .orchestrator import Orchestrator
from .protocol import ExecutionResult, Manifest

__all__ = [
    "CapabilityBinding",
    "Orchestrator",
    "ExecutionResult",
    "Manifest",
    "CodeModeError",
    "CapabilityError",
    "TransportError",
    "SandboxSpawnError",
    "ScriptTimeoutError",
]
