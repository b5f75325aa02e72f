"""Auth Schema"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from storage.models.identity import ConsentProfile


# ── 请求 ──────────────────────────────────────────────


class LoginRequest(BaseModel):
    """微信授权登录：UI 弹窗收集到的资料"""

    consent_granted: bool = True
    profile: Optional[ConsentProfile] = None


class ProfileUpdateRequest(BaseModel):
    """资料更新（只传需要修改的字段）"""

    fields: Dict[str, Any] = Field(..., description="{nickName, age, height, ...}")


# ── 响应 ──────────────────────────────────────────────


class SessionResponse(BaseModel):
    """当前会话（不含 token）"""

    state: str
    is_logged_in: bool
    is_guest: bool = False
    user_id: str
    user_info: Optional[Dict[str, Any]] = None


class LoginResponse(BaseModel):
    """登录结果"""

    is_new_user: bool = False
    session: SessionResponse


class TrustResponse(BaseModel):
    """自动登录验证结果"""

    decision: Optional[str] = None
    session: SessionResponse
