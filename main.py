"""FastAPI 入口 - UI 壳通过本地接口访问身份会话"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

# 添加项目根目录到 sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from fastapi import FastAPI

from api.middleware.error_handler import register_error_handlers
from api.middleware.logging import RequestLoggingMiddleware
from api.routes import api_router
from common.config import settings
from common.logger import get_logger, setup_logging
from core.engine import SessionEngine

logger = get_logger(__name__)


def create_app(engine: Optional[SessionEngine] = None) -> FastAPI:
    """创建应用；测试时可注入预先组装好的 engine"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 启动
        if engine is None:
            setup_logging(settings.logging)
        logger.info("Starting identity session bridge...")

        session_engine = engine or SessionEngine(settings)
        await session_engine.start()
        app.state.engine = session_engine

        yield

        # 关闭
        logger.info("Shutting down...")
        await session_engine.stop()

    app = FastAPI(
        title="Identity Session Bridge",
        description="身份认证与会话缓存",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 请求日志
    app.add_middleware(RequestLoggingMiddleware)

    # 异常处理
    register_error_handlers(app)

    # 路由
    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
