"""响应信封"""

from typing import Any, Optional

from pydantic import BaseModel


class BaseResponse(BaseModel):
    """成功响应；message 为展示给用户的提示"""

    success: bool = True
    message: str = ""
    data: Optional[Any] = None


class ErrorResponse(BaseModel):
    """失败响应

    error 原样携带后端或本地给出的提示，kind 为异常类名，供 UI 区分失败原因。
    """

    success: bool = False
    error: str = ""
    kind: str = ""
    detail: str = ""
