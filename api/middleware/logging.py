"""请求日志中间件"""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from common.logger import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """每个请求一条日志；沿用 UI 壳传入的 X-Request-ID"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            f"status={response.status_code} duration={duration:.3f}s",
            extra={
                "request_id": request_id,
                "operation": f"{request.method} {request.url.path}",
            },
        )

        response.headers["X-Request-ID"] = request_id
        return response
