from fastapi import APIRouter

from dbcodemode.api.routes import codemode

api_router = APIRouter()
api_router.include_router(codemode.router)
