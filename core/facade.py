"""身份只读接口，供应用其他部分使用"""

from typing import Optional

from common.config import SessionConfig, settings
from common.logger import get_logger
from core.resolver import SessionResolver
from storage.models.identity import UserProfile

logger = get_logger(__name__)


class IdentityFacade:
    """is_logged_in / get_user_id / get_user_info"""

    def __init__(self, resolver: SessionResolver, config: Optional[SessionConfig] = None):
        self._resolver = resolver
        self._config = config or settings.session

    def is_logged_in(self) -> bool:
        """已登录且持久化标记未被外部清除

        持久化层与内存一致时，以持久化标记为准；
        持久化写入曾失败时，内存/全局层在本进程内仍然有效。
        """
        if not self._resolver.is_authenticated:
            return False

        cache = self._resolver.cache
        if cache.persistent_in_sync and cache.persistent_flag() is False:
            self._resolver.invalidate_local("persistent login flag was cleared externally")
            return False
        return True

    def get_user_id(self) -> str:
        """已登录返回 openid，否则返回本地访客 ID"""
        if self.is_logged_in():
            identity = self._resolver.identity
            if identity is not None:
                return identity.openid
        return self._resolver.cache.ensure_guest_id(self._config.guest_id_prefix)

    def get_user_info(self) -> Optional[UserProfile]:
        if not self.is_logged_in():
            return None
        identity = self._resolver.identity
        return identity.profile if identity else None
