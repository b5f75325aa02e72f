"""系统接口"""

from fastapi import APIRouter, Request

from api.schemas.common import BaseResponse

router = APIRouter()


@router.get("/status")
async def get_status(request: Request) -> BaseResponse:
    """服务状态"""
    engine = request.app.state.engine
    decision = engine.last_trust_decision
    return BaseResponse(
        data={
            "status": "running",
            "session_state": engine.resolver.state.value,
            "startup_trust": decision.value if decision else None,
            "persistent_in_sync": engine.cache.persistent_in_sync,
            "port": engine.config.port,
        }
    )
