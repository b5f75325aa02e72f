"""全局异常处理中间件"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.schemas.common import ErrorResponse
from common.exceptions import (
    ConsentDenied,
    GatewayRejected,
    IdentityBaseError,
    NetworkUnavailable,
    NotAuthenticatedError,
    ProfileInvalid,
)
from common.logger import get_logger

logger = get_logger(__name__)


def _error_body(exc: IdentityBaseError) -> dict:
    return ErrorResponse(
        error=exc.message,
        kind=type(exc).__name__,
        detail=exc.detail,
    ).model_dump()


def register_error_handlers(app: FastAPI) -> None:
    """注册全局异常处理器"""

    @app.exception_handler(ConsentDenied)
    async def consent_denied_handler(request: Request, exc: ConsentDenied):
        return JSONResponse(status_code=403, content=_error_body(exc))

    @app.exception_handler(NotAuthenticatedError)
    async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError):
        return JSONResponse(status_code=401, content=_error_body(exc))

    @app.exception_handler(ProfileInvalid)
    async def profile_invalid_handler(request: Request, exc: ProfileInvalid):
        return JSONResponse(status_code=422, content=_error_body(exc))

    @app.exception_handler(GatewayRejected)
    async def gateway_rejected_handler(request: Request, exc: GatewayRejected):
        return JSONResponse(status_code=401, content=_error_body(exc))

    @app.exception_handler(NetworkUnavailable)
    async def network_unavailable_handler(request: Request, exc: NetworkUnavailable):
        logger.error(f"Identity backend unavailable: {exc.message} ({exc.detail})")
        return JSONResponse(status_code=503, content=_error_body(exc))

    @app.exception_handler(IdentityBaseError)
    async def identity_error_handler(request: Request, exc: IdentityBaseError):
        logger.error(f"Identity Error: {exc.message}")
        return JSONResponse(status_code=500, content=_error_body(exc))

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="Internal server error", detail=str(exc)).model_dump(),
        )
