"""三级会话缓存：内存 -> 进程全局 -> 本地持久化"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from common.exceptions import StorageFailure
from common.logger import get_logger
from common.utils.best_effort import BestEffortResult, attempt_all
from common.utils.datetime import monotonic_ms
from storage.models.identity import Identity
from storage.store import KeyValueStore, StorageKeys

logger = get_logger(__name__)


@dataclass
class AppGlobals:
    """进程级共享状态，显式构造后注入给所有使用方"""

    identity: Optional[Identity] = None

    @property
    def is_logged_in(self) -> bool:
        return self.identity is not None


class SessionCache:
    """会话缓存

    读：依次查内存、全局、持久化，命中后回填被跳过的更热的层。
    写：三层全部写入；持久化失败只记日志，不抛异常。
    清：各层独立清除，某层失败不影响其他层。
    """

    def __init__(self, store: KeyValueStore, app_globals: Optional[AppGlobals] = None):
        self._store = store
        self._globals = app_globals if app_globals is not None else AppGlobals()
        self._memory: Optional[Identity] = None
        self._guest_id: Optional[str] = None
        self._persistent_in_sync = True

    # ── 只读视图 ──────────────────────────────────────

    @property
    def memory_tier(self) -> Optional[Identity]:
        return self._memory

    @property
    def global_tier(self) -> Optional[Identity]:
        return self._globals.identity

    @property
    def app_globals(self) -> AppGlobals:
        return self._globals

    @property
    def persistent_in_sync(self) -> bool:
        """最近一次写/清是否完整落盘"""
        return self._persistent_in_sync

    # ── 读 ────────────────────────────────────────────

    def read(self) -> Optional[Identity]:
        if self._memory is not None:
            return self._memory

        if self._globals.identity is not None:
            self._memory = self._globals.identity
            return self._memory

        identity = self.read_persistent()
        if identity is None:
            return None

        self._memory = identity
        self._globals.identity = identity
        logger.info(
            "Session promoted from persistent storage",
            extra={"openid": identity.openid},
        )
        return identity

    def read_persistent(self) -> Optional[Identity]:
        """只读持久化层；会话组不完整时视为不存在"""
        try:
            values: Dict[str, Any] = {k: self._store.get(k) for k in StorageKeys.SESSION_GROUP}
        except StorageFailure as e:
            logger.warning(f"Persistent session read failed: {e.message}")
            return None

        flag = values[StorageKeys.IS_LOGGED_IN]
        openid = values[StorageKeys.OPENID]
        token = values[StorageKeys.TOKEN]
        user_info = values[StorageKeys.USER_INFO]

        if not any(values.values()):
            return None

        if flag is not True or not openid or not token or not isinstance(user_info, dict):
            logger.warning(
                "Ignoring partial persistent session group "
                f"(flag={flag!r}, openid={bool(openid)}, token={bool(token)}, "
                f"userInfo={isinstance(user_info, dict)})"
            )
            return None

        try:
            return Identity.from_storage(user_info, openid, token)
        except (ValueError, TypeError) as e:
            logger.warning(f"Persistent session is corrupt, ignoring: {e}")
            return None

    def persistent_flag(self) -> Optional[bool]:
        """持久化层的登录标记；读取失败返回 None"""
        try:
            return self._store.get(StorageKeys.IS_LOGGED_IN) is True
        except StorageFailure as e:
            logger.warning(f"Persistent flag read failed: {e.message}")
            return None

    # ── 写 ────────────────────────────────────────────

    def write(self, identity: Identity) -> BestEffortResult:
        self._memory = identity
        self._globals.identity = identity

        blob = identity.to_user_info_blob()
        store = self._store

        # 先撤掉标记，再写三项，最后写标记提交整组
        result = attempt_all(
            [
                (StorageKeys.IS_LOGGED_IN, lambda: store.remove(StorageKeys.IS_LOGGED_IN)),
                (StorageKeys.USER_INFO, lambda: store.set(StorageKeys.USER_INFO, blob)),
                (StorageKeys.OPENID, lambda: store.set(StorageKeys.OPENID, identity.openid)),
                (StorageKeys.TOKEN, lambda: store.set(StorageKeys.TOKEN, identity.token)),
            ],
            context="session write",
        )
        if result.ok:
            commit = attempt_all(
                [(StorageKeys.IS_LOGGED_IN, lambda: store.set(StorageKeys.IS_LOGGED_IN, True))],
                context="session commit",
            )
            result.attempted += commit.attempted
            result.failures.extend(commit.failures)

        self._persistent_in_sync = result.ok
        if not result.ok:
            logger.error(
                "Persistent session write incomplete; memory/global tiers stay authoritative",
                extra={"openid": identity.openid},
            )
        return result

    # ── 清 ────────────────────────────────────────────

    def clear(self) -> BestEffortResult:
        store = self._store
        steps = [
            ("memory", self._clear_memory),
            ("global", self._clear_global),
            # 标记最先清除，后续步骤失败时残留的组也已无效
            (StorageKeys.IS_LOGGED_IN, lambda: store.remove(StorageKeys.IS_LOGGED_IN)),
            (StorageKeys.USER_INFO, lambda: store.remove(StorageKeys.USER_INFO)),
            (StorageKeys.OPENID, lambda: store.remove(StorageKeys.OPENID)),
            (StorageKeys.TOKEN, lambda: store.remove(StorageKeys.TOKEN)),
            (StorageKeys.USER_ID, self._clear_guest_id),
        ]
        result = attempt_all(steps, context="session clear")
        self._persistent_in_sync = not any(
            f.name not in ("memory", "global") for f in result.failures
        )
        return result

    def drop_volatile(self) -> None:
        """只丢弃内存层和全局层"""
        self._memory = None
        self._globals.identity = None

    def _clear_memory(self) -> None:
        self._memory = None

    def _clear_global(self) -> None:
        self._globals.identity = None

    def _clear_guest_id(self) -> None:
        self._guest_id = None
        self._store.remove(StorageKeys.USER_ID)

    # ── 本地访客 ID ───────────────────────────────────

    def ensure_guest_id(self, prefix: str = "guest_") -> str:
        """未登录时的本地匿名 ID，生成一次后复用"""
        if self._guest_id:
            return self._guest_id

        try:
            stored = self._store.get(StorageKeys.USER_ID)
        except StorageFailure as e:
            logger.warning(f"Guest id read failed: {e.message}")
            stored = None

        if isinstance(stored, str) and stored:
            self._guest_id = stored
            return stored

        guest_id = f"{prefix}{monotonic_ms()}"
        self._guest_id = guest_id
        try:
            self._store.set(StorageKeys.USER_ID, guest_id)
        except StorageFailure as e:
            logger.warning(f"Guest id not persisted, kept for this process only: {e.message}")
        logger.info(f"Created local guest id: {guest_id}")
        return guest_id
