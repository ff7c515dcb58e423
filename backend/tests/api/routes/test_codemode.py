"""Tests for the code-mode routes: POST /codemode/execute and GET /codemode/help."""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from dbcodemode.core.config import settings
from dbcodemode.engines.codemode.protocol import ExecutionMetrics
from dbcodemode.engines.codemode.service import (
    HELP_HINT,
    ExecuteCodeResult,
    get_codemode_service,
)
from dbcodemode.main import app


def _base() -> str:
    return f"{settings.API_V1_STR}/codemode"


@pytest.fixture
def service() -> MagicMock:
    svc = MagicMock()
    svc.execute_code = AsyncMock(
        return_value=ExecuteCodeResult(
            success=True,
            result={"rows": [{"1": 1}]},
            metrics=ExecutionMetrics(wall_time_ms=4.2),
            hint=HELP_HINT,
        )
    )
    svc.help.return_value = {
        "root": "mysql",
        "groups": [{"group": "core", "methods": ["readQuery"], "methodAliases": [], "examples": []}],
        "topLevel": ["readQuery"],
    }
    return svc


@pytest.fixture
def client(service: MagicMock) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_codemode_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_execute_success(client: TestClient, service: MagicMock) -> None:
    r = client.post(
        f"{_base()}/execute",
        json={"code": "return await mysql.core.readQuery('SELECT 1')", "timeout": 5000},
        headers={"X-Forwarded-For": "10.0.0.1, 10.0.0.7"},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["result"] == {"rows": [{"1": 1}]}
    assert data["metrics"]["wall_time_ms"] == 4.2
    assert data["hint"] == HELP_HINT
    service.execute_code.assert_awaited_once_with(
        "return await mysql.core.readQuery('SELECT 1')",
        timeout_ms=5000,
        readonly=False,
        client_id="10.0.0.7",
    )


def test_execute_script_failure_is_200(client: TestClient, service: MagicMock) -> None:
    service.execute_code.return_value = ExecuteCodeResult(
        success=False,
        error="Execution timed out after 100ms",
        error_type="timeout",
        metrics=ExecutionMetrics(wall_time_ms=101),
        hint=HELP_HINT,
    )
    r = client.post(f"{_base()}/execute", json={"code": "while True:\n    pass", "timeout": 100})
    assert r.status_code == 200
    assert r.json()["error_type"] == "timeout"


def test_execute_rate_limited_is_429(client: TestClient, service: MagicMock) -> None:
    service.execute_code.return_value = ExecuteCodeResult(
        success=False,
        error="Rate limit exceeded. Please wait before executing more code.",
        error_type="rate_limit",
        metrics=ExecutionMetrics(),
        hint=HELP_HINT,
    )
    r = client.post(f"{_base()}/execute", json={"code": "return 1"})
    assert r.status_code == 429
    assert r.json()["error"].startswith("Rate limit exceeded")


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"code": "return 1", "timeout": 0},
        {"code": "return 1", "timeout": -5},
    ],
)
def test_execute_invalid_body_is_422(client: TestClient, service: MagicMock, body: dict) -> None:
    r = client.post(f"{_base()}/execute", json=body)
    assert r.status_code == 422
    assert isinstance(r.json()["detail"], str)
    service.execute_code.assert_not_awaited()


def test_help(client: TestClient) -> None:
    r = client.get(f"{_base()}/help")
    assert r.status_code == 200
    data = r.json()
    assert data["root"] == "mysql"
    assert data["groups"][0]["group"] == "core"
    assert data["topLevel"] == ["readQuery"]
