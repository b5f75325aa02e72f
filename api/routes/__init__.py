from fastapi import APIRouter

from api.routes.auth import router as auth_router
from api.routes.system import router as system_router

api_router = APIRouter(prefix="/api/identity")

api_router.include_router(system_router, tags=["system"])
api_router.include_router(auth_router, tags=["auth"])
