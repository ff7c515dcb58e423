"""Unit tests for engines.codemode.security (CodeModeSecurityManager)."""

import logging

import pytest

from dbcodemode.engines.codemode.protocol import ExecutionMetrics, ExecutionResult
from dbcodemode.engines.codemode.security import (
    CODE_PREVIEW_LENGTH,
    CodeModeSecurityManager,
)


@pytest.fixture
def security() -> CodeModeSecurityManager:
    return CodeModeSecurityManager(
        max_code_length=1000, max_executions_per_minute=3, max_result_size=200
    )


class TestValidateCode:
    def test_valid_code(self, security: CodeModeSecurityManager) -> None:
        v = security.validate_code("r = await mysql.core.readQuery('SELECT 1')\nreturn r")
        assert v.valid is True
        assert v.errors == []

    @pytest.mark.parametrize("code", ["", "   \n\t", None, 42])
    def test_empty_or_non_string(self, security: CodeModeSecurityManager, code) -> None:
        v = security.validate_code(code)
        assert v.valid is False
        assert v.errors == ["Code must be a non-empty string"]

    def test_too_long(self, security: CodeModeSecurityManager) -> None:
        v = security.validate_code("x" * 1001)
        assert v.valid is False
        assert v.errors == ["Code exceeds maximum length of 1000 characters"]

    @pytest.mark.parametrize(
        "code",
        [
            "import os",
            "from os import path",
            "x = ().__class__",
            "eval('1')",
            "exec('x = 1')",
            "compile('1', 'f', 'eval')",
            "open('/etc/passwd')",
            "globals()",
            "breakpoint()",
            "os.system('ls')",
            "subprocess.run(['ls'])",
            "f.gi_frame.f_back",
        ],
    )
    def test_blocked_patterns(self, security: CodeModeSecurityManager, code: str) -> None:
        v = security.validate_code(code)
        assert v.valid is False
        assert all(e.startswith("Blocked pattern: ") for e in v.errors)

    def test_errors_accumulate(self, security: CodeModeSecurityManager) -> None:
        v = security.validate_code("import os\neval('1')")
        assert len(v.errors) == 2

    @pytest.mark.parametrize(
        "code",
        [
            "return await mysql.json.extract('t', 'c', '$.a')",
            "important = 1\nreturn important",
            "r = await mysql.admin.optimizeTable('users')",
            "return await mysql.core.readQuery('SELECT * FROM os_versions')",
        ],
    )
    def test_benign_code_is_not_flagged(self, security: CodeModeSecurityManager, code: str) -> None:
        assert security.validate_code(code).valid is True


class TestRateLimit:
    def test_limit_per_client(self, security: CodeModeSecurityManager) -> None:
        for _ in range(3):
            assert security.check_rate_limit("client-a") is True
        assert security.check_rate_limit("client-a") is False
        assert security.check_rate_limit("client-b") is True

    def test_missing_client_uses_shared_default(self, security: CodeModeSecurityManager) -> None:
        for _ in range(3):
            assert security.check_rate_limit() is True
        assert security.check_rate_limit(None) is False
        assert security.rate_limit_remaining() == 0

    def test_remaining(self, security: CodeModeSecurityManager) -> None:
        assert security.rate_limit_remaining("client-c") == 3
        security.check_rate_limit("client-c")
        assert security.rate_limit_remaining("client-c") == 2


class TestSanitizeResult:
    def test_plain_values_pass_through(self, security: CodeModeSecurityManager) -> None:
        value = {"rows": [{"id": 1, "name": "a"}], "count": 1}
        assert security.sanitize_result(value) == value

    def test_non_json_values_are_stringified(self, security: CodeModeSecurityManager) -> None:
        from datetime import date

        assert security.sanitize_result({"d": date(2024, 1, 2)}) == {"d": "2024-01-02"}

    def test_tuples_become_lists(self, security: CodeModeSecurityManager) -> None:
        assert security.sanitize_result((1, 2)) == [1, 2]

    def test_oversized_result_is_truncated(self, security: CodeModeSecurityManager) -> None:
        out = security.sanitize_result({"data": "x" * 500})
        assert out["_truncated"] is True
        assert out["_originalSize"] > 200
        assert len(out["_preview"]) <= 1000

    def test_unserializable_result(self, security: CodeModeSecurityManager) -> None:
        cyclic: list = []
        cyclic.append(cyclic)
        out = security.sanitize_result(cyclic)
        assert out["_error"].startswith("Result could not be serialized")


class TestAudit:
    def test_record_truncates_code_preview(self, security: CodeModeSecurityManager) -> None:
        result = ExecutionResult(success=True, result=1)
        record = security.create_execution_record("x" * 500, result, True, "client-a")
        assert record.code_preview == "x" * CODE_PREVIEW_LENGTH + "..."
        assert record.readonly is True
        assert record.client_id == "client-a"
        assert record.id

    def test_short_code_kept(self, security: CodeModeSecurityManager) -> None:
        record = security.create_execution_record("return 1", ExecutionResult(success=True), False)
        assert record.code_preview == "return 1"
        assert record.client_id is None

    def test_audit_log_levels(
        self, security: CodeModeSecurityManager, caplog: pytest.LogCaptureFixture
    ) -> None:
        ok = ExecutionResult(success=True, metrics=ExecutionMetrics(wall_time_ms=5))
        bad = ExecutionResult.failure("boom", error_type="runtime")
        with caplog.at_level(logging.INFO, logger="dbcodemode.engines.codemode.security"):
            security.audit_log(security.create_execution_record("return 1", ok, False))
            security.audit_log(security.create_execution_record("return 2", bad, False))
        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.INFO, logging.WARNING]
        assert "boom" in caplog.records[1].getMessage()
