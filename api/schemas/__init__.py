from api.schemas.auth import (
    LoginRequest,
    LoginResponse,
    ProfileUpdateRequest,
    SessionResponse,
    TrustResponse,
)
from api.schemas.common import BaseResponse, ErrorResponse

__all__ = [
    "LoginRequest",
    "LoginResponse",
    "ProfileUpdateRequest",
    "SessionResponse",
    "TrustResponse",
    "BaseResponse",
    "ErrorResponse",
]
