"""SessionEngine - 显式组装身份会话的各个组件"""

from typing import Optional

from common.config import Settings, settings as default_settings
from common.logger import get_logger
from core.facade import IdentityFacade
from core.resolver import SessionResolver
from managers.session_cache import AppGlobals, SessionCache
from services.gateway import CloudGateway, IdentityGateway
from storage.models.identity import TrustDecision
from storage.store import JsonFileStore, KeyValueStore

logger = get_logger(__name__)


class SessionEngine:
    """持有存储、缓存、网关、解析器和只读接口，生命周期由调用方管理"""

    def __init__(
        self,
        config: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        gateway: Optional[IdentityGateway] = None,
        app_globals: Optional[AppGlobals] = None,
    ):
        self.config = config or default_settings
        self.store = store if store is not None else JsonFileStore(self.config.storage_file)
        self.gateway = gateway if gateway is not None else CloudGateway(self.config.gateway)
        self.app_globals = app_globals if app_globals is not None else AppGlobals()

        self.cache = SessionCache(self.store, self.app_globals)
        self.resolver = SessionResolver(
            self.cache,
            self.gateway,
            defaults=self.config.profile_defaults,
            config=self.config.session,
        )
        self.facade = IdentityFacade(self.resolver, self.config.session)
        self.last_trust_decision: Optional[TrustDecision] = None

    async def start(self) -> None:
        """启动：尝试自动登录"""
        self.last_trust_decision = await self.resolver.auto_login()
        logger.info(
            f"Session engine started: state={self.resolver.state.value}, "
            f"trust={self.last_trust_decision.value if self.last_trust_decision else 'none'}"
        )

    async def stop(self) -> None:
        await self.gateway.close()
        logger.info("Session engine stopped")
