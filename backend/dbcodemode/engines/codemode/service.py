"""
CodeModeService: execute_code entry point used by the HTTP layer.

Flow: validate code -> rate limit -> check bindings -> orchestrator.execute
-> sanitize result -> audit log.
"""

import logging
import threading

from dbcodemode.core.registry import ToolRegistry

from .binding import CapabilityBinding
from .orchestrator import Orchestrator
from .protocol import (
    ERROR_RATE_LIMIT,
    ERROR_UNAVAILABLE,
    ERROR_VALIDATION,
    ExecutionMetrics,
    ExecutionResult,
)
from .security import CodeModeSecurityManager

_log = logging.getLogger(__name__)

HELP_HINT = (
    "Tip: Use mysql.help() to list all groups, "
    "or mysql.core.help() for group-specific methods."
)


class ExecuteCodeResult(ExecutionResult):
    hint: str | None = None


class CodeModeService:
    def __init__(
        self,
        registry: ToolRegistry,
        *,
        orchestrator: Orchestrator | None = None,
        security: CodeModeSecurityManager | None = None,
    ) -> None:
        self.registry = registry
        self.binding = orchestrator.binding if orchestrator is not None else CapabilityBinding(registry)
        self.orchestrator = orchestrator or Orchestrator(self.binding)
        self.security = security or CodeModeSecurityManager()

    def help(self) -> dict:
        return self.binding.help()

    def _rejected(self, error: str, error_type: str) -> ExecuteCodeResult:
        result = ExecutionResult.failure(error, error_type=error_type)
        result.metrics = ExecutionMetrics()
        return ExecuteCodeResult.model_validate({**result.model_dump(), "hint": HELP_HINT})

    async def execute_code(
        self,
        code: str,
        timeout_ms: int | None = None,
        readonly: bool = False,
        client_id: str | None = None,
    ) -> ExecuteCodeResult:
        validation = self.security.validate_code(code)
        if not validation.valid:
            return self._rejected(
                f"Code validation failed: {'; '.join(validation.errors)}", ERROR_VALIDATION
            )
        if not self.security.check_rate_limit(client_id):
            return self._rejected(
                "Rate limit exceeded. Please wait before executing more code.", ERROR_RATE_LIMIT
            )
        if self.binding.manifest().method_count() == 0:
            return self._rejected(
                "mysql.* API not available: no tool bindings were created.", ERROR_UNAVAILABLE
            )

        result = await self.orchestrator.execute(code, timeout_ms)
        if result.success and result.result is not None:
            result.result = self.security.sanitize_result(result.result)

        record = self.security.create_execution_record(code, result, readonly, client_id)
        self.security.audit_log(record)
        return ExecuteCodeResult.model_validate({**result.model_dump(), "hint": HELP_HINT})


_service: CodeModeService | None = None
_service_lock = threading.Lock()


def get_codemode_service() -> CodeModeService:
    """Process-wide service over the default tool registry (thread-safe singleton)."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                from dbcodemode.tools import build_registry

                _service = CodeModeService(build_registry())
    return _service
