"""
Code mode: run one sandboxed script that issues many database operations.

POST /codemode/execute -> ExecuteCodeResult (200 for success and script
failure alike; 429 when the client is rate limited).
GET /codemode/help -> groups, methods, aliases and examples.
"""

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from dbcodemode.api.deps import ClientIdDep, CodeModeServiceDep
from dbcodemode.engines.codemode.protocol import ERROR_RATE_LIMIT
from dbcodemode.engines.codemode.service import ExecuteCodeResult

router = APIRouter(prefix="/codemode", tags=["codemode"])


class ExecuteCodeIn(BaseModel):
    code: str = Field(description="Python script; use await mysql.<group>.<method>() for database operations.")
    timeout: int | None = Field(
        default=None,
        gt=0,
        description="Execution timeout in milliseconds (capped by CODEMODE_MAX_TIMEOUT_MS).",
    )
    readonly: bool = Field(default=False, description="Recorded in the audit trail.")


@router.post("/execute", response_model=ExecuteCodeResult)
async def execute_code(
    body: ExecuteCodeIn,
    service: CodeModeServiceDep,
    client_id: ClientIdDep,
) -> ExecuteCodeResult | JSONResponse:
    """
    Execute a script in an isolated worker with access to the mysql.* API.
    """
    result = await service.execute_code(
        body.code,
        timeout_ms=body.timeout,
        readonly=body.readonly,
        client_id=client_id,
    )
    if result.error_type == ERROR_RATE_LIMIT:
        return JSONResponse(status_code=429, content=result.model_dump(mode="json"))
    return result


@router.get("/help")
def codemode_help(service: CodeModeServiceDep) -> dict[str, Any]:
    """
    Available groups, methods, aliases and usage examples.
    """
    return service.help()
