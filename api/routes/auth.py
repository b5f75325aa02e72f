"""Auth 会话路由"""

from fastapi import APIRouter, Request

from api.schemas.auth import (
    LoginRequest,
    LoginResponse,
    ProfileUpdateRequest,
    SessionResponse,
    TrustResponse,
)
from api.schemas.common import BaseResponse
from common.exceptions import ConsentDenied
from common.logger import get_logger
from storage.models.identity import ConsentProfile

logger = get_logger(__name__)

router = APIRouter(prefix="/auth")


def _session_response(engine) -> SessionResponse:
    facade = engine.facade
    identity = engine.resolver.identity
    logged_in = facade.is_logged_in()
    user_info = facade.get_user_info()
    return SessionResponse(
        state=engine.resolver.state.value,
        is_logged_in=logged_in,
        is_guest=bool(logged_in and identity and identity.is_guest),
        user_id=facade.get_user_id(),
        user_info=user_info.to_dict() if user_info else None,
    )


def _consent_provider(body: LoginRequest):
    async def provide() -> ConsentProfile:
        if not body.consent_granted or body.profile is None:
            raise ConsentDenied("用户拒绝授权")
        return body.profile

    return provide


@router.get("/session")
async def get_session(request: Request) -> BaseResponse:
    """当前会话"""
    engine = request.app.state.engine
    return BaseResponse(data=_session_response(engine).model_dump())


@router.post("/login")
async def login(body: LoginRequest, request: Request) -> BaseResponse:
    """微信授权登录"""
    engine = request.app.state.engine
    result = await engine.resolver.login(_consent_provider(body))
    if not result.success:
        raise result.error
    data = LoginResponse(is_new_user=result.is_new_user, session=_session_response(engine))
    return BaseResponse(message=result.message, data=data.model_dump())


@router.post("/guest")
async def guest_login(request: Request) -> BaseResponse:
    """游客登录"""
    engine = request.app.state.engine
    result = await engine.resolver.guest_login()
    if not result.success:
        raise result.error
    data = LoginResponse(is_new_user=result.is_new_user, session=_session_response(engine))
    return BaseResponse(message=result.message, data=data.model_dump())


@router.post("/auto")
async def auto_login(request: Request) -> BaseResponse:
    """重新执行自动登录验证"""
    engine = request.app.state.engine
    decision = await engine.resolver.auto_login()
    data = TrustResponse(
        decision=decision.value if decision else None,
        session=_session_response(engine),
    )
    return BaseResponse(data=data.model_dump())


@router.post("/logout")
async def logout(request: Request) -> BaseResponse:
    """退出登录"""
    engine = request.app.state.engine
    await engine.resolver.logout()
    return BaseResponse(message="已退出登录", data=_session_response(engine).model_dump())


@router.put("/profile")
async def update_profile(body: ProfileUpdateRequest, request: Request) -> BaseResponse:
    """更新资料"""
    engine = request.app.state.engine
    result = await engine.resolver.update_profile(body.fields)
    if not result.success:
        raise result.error
    return BaseResponse(
        message=result.message,
        data=result.profile.to_dict() if result.profile else None,
    )


@router.post("/profile/sync")
async def sync_profile(request: Request) -> BaseResponse:
    """从云端同步资料（失败不报错）"""
    engine = request.app.state.engine
    synced = await engine.resolver.sync_profile()
    return BaseResponse(data={"synced": synced, "session": _session_response(engine).model_dump()})


@router.get("/user-id")
async def get_user_id(request: Request) -> BaseResponse:
    """当前用户 ID（未登录时为本地访客 ID）"""
    engine = request.app.state.engine
    return BaseResponse(data={"user_id": engine.facade.get_user_id()})
