"""
Code-mode security manager: code pre-validation, per-client rate limiting,
result sanitization, and the execution audit trail.

Validation is a cheap first filter in front of the sandbox; RestrictedPython
remains the actual enforcement.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from dbcodemode.core import ratelimit
from dbcodemode.core.config import settings

from .protocol import ExecutionResult

_log = logging.getLogger(__name__)

DEFAULT_CLIENT_ID = "default"
CODE_PREVIEW_LENGTH = 200
RESULT_PREVIEW_LENGTH = 1000

# (pattern, message); every match adds one error
BLOCKED_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^\s*(?:import\s+\w|from\s+[\w.]+\s+import\b)", re.MULTILINE), "import statements are not allowed"),
    (re.compile(r"__\w+__"), "dunder names are not allowed"),
    (re.compile(r"(?<![\w.])(?:eval|exec|compile)\s*\("), "dynamic code evaluation is not allowed"),
    (re.compile(r"(?<![\w.])open\s*\("), "file access is not allowed"),
    (re.compile(r"(?<![\w.])(?:globals|locals|vars)\s*\("), "namespace introspection is not allowed"),
    (re.compile(r"(?<![\w.])breakpoint\s*\("), "debugger access is not allowed"),
    (
        re.compile(r"(?<![\w.])(?:os|sys|subprocess|socket|shutil|ctypes|importlib|builtins)\s*\."),
        "system module access is not allowed",
    ),
    (
        re.compile(r"\.(?:gi_frame|cr_frame|ag_frame|tb_frame|f_back|f_globals|f_locals|f_builtins)\b"),
        "frame introspection is not allowed",
    ),
)


@dataclass
class CodeValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class ExecutionRecord:
    id: str
    client_id: str | None
    timestamp: datetime
    code_preview: str
    result: ExecutionResult
    readonly: bool


class CodeModeSecurityManager:
    """Limits default to settings; each can be overridden per instance."""

    def __init__(
        self,
        *,
        max_code_length: int | None = None,
        max_executions_per_minute: int | None = None,
        max_result_size: int | None = None,
    ) -> None:
        self.max_code_length = max_code_length or settings.CODEMODE_MAX_CODE_LENGTH
        self.max_executions_per_minute = (
            max_executions_per_minute or settings.CODEMODE_RATE_LIMIT_PER_MINUTE
        )
        self.max_result_size = max_result_size or settings.CODEMODE_MAX_RESULT_SIZE

    def validate_code(self, code: Any) -> CodeValidation:
        if not isinstance(code, str) or not code.strip():
            return CodeValidation(valid=False, errors=["Code must be a non-empty string"])
        if len(code) > self.max_code_length:
            return CodeValidation(
                valid=False,
                errors=[f"Code exceeds maximum length of {self.max_code_length} characters"],
            )
        errors = [
            f"Blocked pattern: {message}"
            for pattern, message in BLOCKED_PATTERNS
            if pattern.search(code)
        ]
        return CodeValidation(valid=not errors, errors=errors)

    def check_rate_limit(self, client_id: str | None = None) -> bool:
        return ratelimit.check_rate_limit(
            client_id or DEFAULT_CLIENT_ID, self.max_executions_per_minute
        )

    def rate_limit_remaining(self, client_id: str | None = None) -> int:
        return ratelimit.rate_limit_remaining(
            client_id or DEFAULT_CLIENT_ID, self.max_executions_per_minute
        )

    def cleanup_rate_limits(self) -> None:
        ratelimit.cleanup_rate_limits()

    def sanitize_result(self, value: Any) -> Any:
        """JSON-safe copy of *value*; oversized or unserializable values are replaced."""
        try:
            serialized = json.dumps(value, default=str)
        except (TypeError, ValueError, RecursionError) as e:
            return {"_error": f"Result could not be serialized: {e}"}
        if len(serialized) > self.max_result_size:
            return {
                "_truncated": True,
                "_originalSize": len(serialized),
                "_preview": serialized[:RESULT_PREVIEW_LENGTH],
            }
        return json.loads(serialized)

    def create_execution_record(
        self,
        code: str,
        result: ExecutionResult,
        readonly: bool,
        client_id: str | None = None,
    ) -> ExecutionRecord:
        preview = code
        if len(code) > CODE_PREVIEW_LENGTH:
            preview = code[:CODE_PREVIEW_LENGTH] + "..."
        return ExecutionRecord(
            id=uuid.uuid4().hex,
            client_id=client_id,
            timestamp=datetime.now(timezone.utc),
            code_preview=preview,
            result=result,
            readonly=readonly,
        )

    def audit_log(self, record: ExecutionRecord) -> None:
        metrics = record.result.metrics
        wall_ms = metrics.wall_time_ms if metrics is not None else None
        if record.result.success:
            _log.info(
                "codemode execution %s ok client=%s readonly=%s wall_ms=%s",
                record.id,
                record.client_id,
                record.readonly,
                wall_ms,
            )
        else:
            _log.warning(
                "codemode execution %s failed client=%s readonly=%s type=%s error=%s",
                record.id,
                record.client_id,
                record.readonly,
                record.result.error_type,
                record.result.error,
            )
