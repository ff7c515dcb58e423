from typing import Annotated

from fastapi import Depends, Request

from dbcodemode.engines.codemode.service import CodeModeService, get_codemode_service

CodeModeServiceDep = Annotated[CodeModeService, Depends(get_codemode_service)]


def get_client_id(request: Request) -> str:
    """Client IP: X-Forwarded-For (rightmost) or request.client.host."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[-1].strip()
    return getattr(getattr(request, "client", None), "host", None) or "0.0.0.0"


ClientIdDep = Annotated[str, Depends(get_client_id)]
