"""身份数据模型"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from common.utils.datetime import now

# 服务端维护、客户端不得写入的字段
SERVER_OWNED_FIELDS = ("_id", "openid", "_openid", "createTime")


class TrustDecision(str, Enum):
    """自动登录时对本地会话的验证结论"""

    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class ConsentProfile(BaseModel):
    """用户授权后提供的微信资料"""

    model_config = ConfigDict(populate_by_name=True)

    nick_name: str = Field("", alias="nickName")
    avatar_url: str = Field("", alias="avatarUrl")
    city: str = ""
    province: str = ""
    country: str = ""
    language: str = ""
    # 0 未知 / 1 男 / 2 女
    gender_code: int = Field(0, alias="genderCode")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class UserProfile(BaseModel):
    """展示用资料，不可变；修改通过 merged() 生成新对象"""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    nick_name: str = Field("", alias="nickName")
    avatar_url: str = Field("", alias="avatarUrl")
    gender: Optional[str] = None
    age: Optional[int] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    phone: Optional[str] = None
    city: str = ""
    province: str = ""
    country: str = ""
    language: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def normalize_keys(cls, fields: Dict[str, Any]) -> Dict[str, Any]:
        """字段名统一为 camelCase 别名（nick_name -> nickName）"""
        aliases = {
            name: info.alias or name for name, info in cls.model_fields.items()
        }
        return {aliases.get(k, k): v for k, v in fields.items()}

    def merged(self, fields: Dict[str, Any]) -> "UserProfile":
        """返回合并了 fields 的新资料，原对象不变"""
        data = self.to_dict()
        data.update(self.normalize_keys(fields))
        return UserProfile(**data)


class Identity(BaseModel):
    """已认证主体：凭证 + 资料"""

    model_config = ConfigDict(frozen=True)

    openid: str
    token: str
    profile: UserProfile = Field(default_factory=UserProfile)
    is_guest: bool = False
    # 最近一次被后端确认有效的时间
    verified_at: datetime = Field(default_factory=now)

    def with_profile(self, profile: UserProfile) -> "Identity":
        return self.model_copy(update={"profile": profile})

    def to_user_info_blob(self) -> Dict[str, Any]:
        """持久化到 userInfo 键的内容"""
        blob = self.profile.to_dict()
        blob["isGuest"] = self.is_guest
        blob["verifiedAt"] = self.verified_at.isoformat()
        return blob

    @classmethod
    def from_storage(
        cls, user_info: Dict[str, Any], openid: str, token: str
    ) -> "Identity":
        """从持久化的四个键还原身份"""
        data = dict(user_info)
        is_guest = bool(data.pop("isGuest", False))
        verified_at = data.pop("verifiedAt", None)
        for key in SERVER_OWNED_FIELDS:
            data.pop(key, None)

        return cls(
            openid=openid,
            token=token,
            profile=UserProfile(**data),
            is_guest=is_guest,
            # 没有验证时间的旧数据视为从未验证
            verified_at=datetime.fromisoformat(verified_at) if verified_at else datetime.min,
        )
