"""会话解析状态机

登录、游客登录、启动自动登录（验证失败时的信任降级）、资料更新与退出。
所有操作通过一把 asyncio.Lock 串行执行，并发调用排队而不是竞争。
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from common.config import ProfileDefaultsConfig, SessionConfig, settings
from common.exceptions import (
    ConsentDenied,
    GatewayRejected,
    IdentityBaseError,
    MalformedResponse,
    NetworkUnavailable,
    NotAuthenticatedError,
    ProfileInvalid,
)
from common.logger import get_logger
from common.utils.datetime import now, seconds_since
from core.profile import (
    build_guest_profile,
    build_synced_profile,
    build_wechat_profile,
    strip_server_owned,
)
from managers.session_cache import SessionCache
from services.gateway import (
    GatewayFailure,
    GatewayResult,
    GatewaySuccess,
    GatewayUnreachable,
    IdentityGateway,
    LoginType,
)
from storage.models.identity import ConsentProfile, Identity, TrustDecision, UserProfile

logger = get_logger(__name__)

# 登录后推送到云端的资料字段
_PUSH_FIELDS = (
    "nickName", "avatarUrl", "gender", "age", "height",
    "weight", "phone", "city", "province",
)

ConsentProvider = Callable[[], Awaitable[ConsentProfile]]


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    TRUST_PENDING = "trust_pending"


@dataclass
class LoginResult:
    """交互式登录结果，UI 据此提示"""

    success: bool
    message: str = ""
    identity: Optional[Identity] = None
    is_new_user: bool = False
    error: Optional[IdentityBaseError] = None


@dataclass
class ProfileUpdateResult:
    """资料更新结果"""

    success: bool
    message: str = ""
    profile: Optional[UserProfile] = None
    error: Optional[IdentityBaseError] = None


class SessionResolver:
    """会话解析器，由 SessionEngine 显式构造并持有"""

    def __init__(
        self,
        cache: SessionCache,
        gateway: IdentityGateway,
        defaults: Optional[ProfileDefaultsConfig] = None,
        config: Optional[SessionConfig] = None,
    ):
        self._cache = cache
        self._gateway = gateway
        self._defaults = defaults or settings.profile_defaults
        self._config = config or settings.session
        self._state = SessionState.ANONYMOUS
        self._identity: Optional[Identity] = None
        self._lock = asyncio.Lock()
        # 每次提交或失效都前进；基于缓存身份的操作提交前比对，不一致即丢弃
        self._epoch = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def cache(self) -> SessionCache:
        return self._cache

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED and self._identity is not None

    # ── 交互式登录 ────────────────────────────────────

    async def login(self, consent: ConsentProvider) -> LoginResult:
        """微信授权登录"""
        async with self._lock:
            previous = self._enter_authenticating()
            try:
                consent_profile = await self._collect_consent(consent)
                result = await self._call_gateway(
                    self._gateway.resolve_identity(
                        LoginType.WECHAT, profile=consent_profile.to_payload()
                    ),
                    "resolveIdentity(wechat)",
                )
                data = self._require_success(result, "登录失败")
                identity, is_new_user = self._identity_from_login(
                    data,
                    lambda info: build_wechat_profile(consent_profile, info, self._defaults),
                    is_guest=False,
                )
            except IdentityBaseError as e:
                self._restore(previous)
                logger.warning(
                    f"WeChat login failed [{type(e).__name__}]: {e.message}",
                    extra={"login_type": LoginType.WECHAT.value},
                )
                return LoginResult(success=False, message=e.message, error=e)
            except asyncio.CancelledError:
                self._restore(previous)
                logger.warning(
                    "WeChat login cancelled", extra={"login_type": LoginType.WECHAT.value}
                )
                raise

            self._commit(identity)
            logger.info(
                "WeChat login succeeded" + (" (new user)" if is_new_user else ""),
                extra={"openid": identity.openid, "login_type": LoginType.WECHAT.value},
            )
            await self._push_profile(identity)
            return LoginResult(
                success=True,
                message="注册成功，欢迎使用" if is_new_user else "登录成功",
                identity=identity,
                is_new_user=is_new_user,
            )

    async def guest_login(self) -> LoginResult:
        """游客登录，无需授权"""
        async with self._lock:
            previous = self._enter_authenticating()
            try:
                result = await self._call_gateway(
                    self._gateway.resolve_identity(
                        LoginType.GUEST,
                        profile={"nickName": self._defaults.guest_nickname, "avatarUrl": ""},
                    ),
                    "resolveIdentity(guest)",
                )
                data = self._require_success(result, "游客登录失败")
                identity, is_new_user = self._identity_from_login(
                    data,
                    lambda info: build_guest_profile(info, self._defaults),
                    is_guest=True,
                )
            except IdentityBaseError as e:
                self._restore(previous)
                logger.warning(
                    f"Guest login failed [{type(e).__name__}]: {e.message}",
                    extra={"login_type": LoginType.GUEST.value},
                )
                return LoginResult(success=False, message=e.message, error=e)
            except asyncio.CancelledError:
                self._restore(previous)
                logger.warning(
                    "Guest login cancelled", extra={"login_type": LoginType.GUEST.value}
                )
                raise

            self._commit(identity)
            logger.info(
                "Guest login succeeded",
                extra={"openid": identity.openid, "login_type": LoginType.GUEST.value},
            )
            await self._push_profile(identity)
            return LoginResult(
                success=True,
                message="欢迎回来",
                identity=identity,
                is_new_user=is_new_user,
            )

    # ── 启动自动登录 ──────────────────────────────────

    async def auto_login(self) -> Optional[TrustDecision]:
        """用本地缓存恢复会话并向后端验证

        无缓存返回 None。后台流程，任何失败都只记日志。
        """
        async with self._lock:
            cached = self._cache.read()
            if cached is None:
                self._set_state(SessionState.ANONYMOUS, None)
                return None

            epoch = self._epoch
            self._set_state(SessionState.TRUST_PENDING, cached)

            try:
                result = await self._call_gateway(
                    self._gateway.resolve_identity(LoginType.AUTO, token=cached.token),
                    "resolveIdentity(auto)",
                )
            except asyncio.CancelledError:
                # 验证未完成，按网络不可达处理
                logger.warning(
                    "Auto-login verification cancelled", extra={"openid": cached.openid}
                )
                if epoch == self._epoch:
                    unreachable = GatewayUnreachable(reason="cancelled")
                    if self._decide(unreachable, cached) == TrustDecision.REJECTED:
                        self._logout_locked()
                    else:
                        self._set_state(SessionState.AUTHENTICATED, cached)
                raise
            decision = self._decide(result, cached)

            if epoch != self._epoch:
                logger.info(
                    "Auto-login verification superseded, discarding result",
                    extra={"openid": cached.openid},
                )
                return decision

            if decision == TrustDecision.REJECTED:
                logger.info(
                    "Cached session rejected by backend, logging out",
                    extra={"openid": cached.openid},
                )
                self._logout_locked()
            elif decision == TrustDecision.CONFIRMED:
                self._confirm(cached)
                logger.info("Auto-login confirmed", extra={"openid": cached.openid})
            else:
                self._set_state(SessionState.AUTHENTICATED, cached)
                logger.warning(
                    "Auto-login verification unavailable, trusting cached session",
                    extra={"openid": cached.openid},
                )
            return decision

    def _decide(self, result: GatewayResult, cached: Identity) -> TrustDecision:
        if isinstance(result, GatewaySuccess):
            return TrustDecision.CONFIRMED
        if isinstance(result, GatewayFailure):
            return TrustDecision.REJECTED
        if isinstance(result, GatewayUnreachable):
            window = self._config.max_unverified_trust_seconds
            if window is not None and seconds_since(cached.verified_at) > window:
                logger.warning(
                    f"Cached session unverified for more than {window}s, not trusting it",
                    extra={"openid": cached.openid},
                )
                return TrustDecision.REJECTED
            return TrustDecision.UNKNOWN
        logger.error(f"Unexpected gateway result, treating as unknown: {result!r}")
        return TrustDecision.UNKNOWN

    def _confirm(self, cached: Identity) -> None:
        # 只有配置了信任窗口才需要记录验证时间，否则缓存保持原样
        if self._config.max_unverified_trust_seconds is None:
            self._set_state(SessionState.AUTHENTICATED, cached)
            return
        self._commit(cached.model_copy(update={"verified_at": now()}))

    # ── 退出 ──────────────────────────────────────────

    async def logout(self) -> None:
        """退出登录，仅本地操作，可重复调用"""
        async with self._lock:
            self._logout_locked()

    def _logout_locked(self) -> None:
        result = self._cache.clear()
        openid = self._identity.openid if self._identity else None
        self._set_state(SessionState.ANONYMOUS, None)
        self._epoch += 1
        if result.ok:
            logger.info("Logged out", extra={"openid": openid})
        else:
            logger.warning(f"Logged out with storage errors: {result.summary()}")

    def invalidate_local(self, reason: str) -> None:
        """持久化层被外部清除后，丢弃内存中的会话（同步，不等锁）"""
        self._cache.drop_volatile()
        self._set_state(SessionState.ANONYMOUS, None)
        self._epoch += 1
        logger.warning(f"Local session invalidated: {reason}")

    # ── 资料 ──────────────────────────────────────────

    async def update_profile(self, fields: Dict[str, Any]) -> ProfileUpdateResult:
        """更新资料：服务端确认后才合并进缓存"""
        async with self._lock:
            identity = self._identity
            if not self.is_authenticated or identity is None:
                err = NotAuthenticatedError("请先登录")
                return ProfileUpdateResult(success=False, message=err.message, error=err)

            payload = UserProfile.normalize_keys(strip_server_owned(fields))
            if not payload:
                return ProfileUpdateResult(success=True, profile=identity.profile)

            try:
                identity.profile.merged(payload)
            except ValueError as e:
                err = ProfileInvalid("资料格式不正确", detail=str(e))
                return ProfileUpdateResult(success=False, message=err.message, error=err)

            epoch = self._epoch
            result = await self._call_gateway(
                self._gateway.save_user_info(identity.token, payload),
                "saveUserInfo",
            )
            try:
                data = self._require_success(result, "保存用户信息失败")
                confirmed = data.get("userInfo")
                if not isinstance(confirmed, dict):
                    confirmed = payload
                profile = identity.profile.merged(
                    UserProfile.normalize_keys(strip_server_owned(confirmed))
                )
            except IdentityBaseError as e:
                logger.warning(
                    f"Profile update failed [{type(e).__name__}]: {e.message}",
                    extra={"openid": identity.openid},
                )
                return ProfileUpdateResult(success=False, message=e.message, error=e)
            except ValueError as e:
                err = MalformedResponse("服务端返回的资料格式错误", detail=str(e))
                return ProfileUpdateResult(success=False, message=err.message, error=err)

            if epoch != self._epoch:
                err = NotAuthenticatedError("会话已变更，请重新登录")
                return ProfileUpdateResult(success=False, message=err.message, error=err)

            self._commit(identity.with_profile(profile))
            logger.info("Profile updated", extra={"openid": identity.openid})
            return ProfileUpdateResult(success=True, message="保存成功", profile=profile)

    async def sync_profile(self) -> bool:
        """后台从云端拉取最新资料，失败只记日志"""
        async with self._lock:
            identity = self._identity
            if not self.is_authenticated or identity is None:
                return False

            epoch = self._epoch
            result = await self._call_gateway(
                self._gateway.fetch_user_info(identity.token), "getUserInfo"
            )
            if not isinstance(result, GatewaySuccess):
                logger.warning(
                    f"Profile sync skipped: {result!r}", extra={"openid": identity.openid}
                )
                return False

            info = result.data.get("userInfo", result.data)
            if not isinstance(info, dict):
                logger.warning("Profile sync skipped: malformed userInfo")
                return False

            remote_openid = info.get("openid")
            if remote_openid and remote_openid != identity.openid:
                logger.warning(
                    "Profile sync skipped: remote openid does not match session",
                    extra={"openid": identity.openid},
                )
                return False

            try:
                profile = build_synced_profile(identity.profile, info, self._defaults)
            except ValueError as e:
                logger.warning(f"Profile sync skipped: {e}")
                return False

            if epoch != self._epoch:
                logger.info("Profile sync superseded, discarding result")
                return False

            self._commit(identity.with_profile(profile))
            logger.info("Profile synced from cloud", extra={"openid": identity.openid})
            return True

    async def _push_profile(self, identity: Identity) -> None:
        """登录后把完整资料写回云端；失败不影响登录"""
        if not self._config.push_profile_after_login:
            return
        data = identity.profile.to_dict()
        payload = {k: data.get(k) for k in _PUSH_FIELDS}
        result = await self._call_gateway(
            self._gateway.save_user_info(identity.token, payload), "saveUserInfo"
        )
        if not isinstance(result, GatewaySuccess):
            logger.warning(
                f"Profile push after login failed: {result!r}",
                extra={"openid": identity.openid},
            )

    # ── 内部 ──────────────────────────────────────────

    def _set_state(self, state: SessionState, identity: Optional[Identity]) -> None:
        self._state = state
        self._identity = identity

    def _enter_authenticating(self) -> Tuple[SessionState, Optional[Identity]]:
        previous = (self._state, self._identity)
        self._state = SessionState.AUTHENTICATING
        return previous

    def _restore(self, previous: Tuple[SessionState, Optional[Identity]]) -> None:
        state, identity = previous
        if state == SessionState.AUTHENTICATED and identity is not None:
            self._set_state(state, identity)
        else:
            self._set_state(SessionState.ANONYMOUS, None)

    def _commit(self, identity: Identity) -> None:
        """网关确认后才调用：写缓存并进入已登录态"""
        self._cache.write(identity)
        self._set_state(SessionState.AUTHENTICATED, identity)
        self._epoch += 1

    async def _collect_consent(self, consent: ConsentProvider) -> ConsentProfile:
        try:
            return await consent()
        except ConsentDenied:
            raise
        except Exception as e:
            raise ConsentDenied("用户未授权", detail=repr(e)) from e

    async def _call_gateway(
        self, call: Awaitable[GatewayResult], operation: str
    ) -> GatewayResult:
        try:
            return await call
        except Exception as e:
            logger.error(f"Gateway {operation} raised unexpectedly: {e!r}", exc_info=True)
            return GatewayUnreachable(reason=type(e).__name__)

    @staticmethod
    def _require_success(result: GatewayResult, fallback_message: str) -> Dict[str, Any]:
        if isinstance(result, GatewaySuccess):
            return result.data
        if isinstance(result, GatewayFailure):
            raise GatewayRejected(result.message or fallback_message)
        if isinstance(result, GatewayUnreachable):
            raise NetworkUnavailable("网络不可用，请稍后重试", detail=result.reason)
        raise MalformedResponse(fallback_message, detail=repr(result))

    @staticmethod
    def _identity_from_login(
        data: Dict[str, Any],
        build_profile: Callable[[Dict[str, Any]], UserProfile],
        is_guest: bool,
    ) -> Tuple[Identity, bool]:
        openid = data.get("openid")
        token = data.get("token")
        if not isinstance(openid, str) or not openid:
            raise MalformedResponse("登录返回缺少 openid")
        if not isinstance(token, str) or not token:
            raise MalformedResponse("登录返回缺少 token")

        user_info = data.get("userInfo") or {}
        if not isinstance(user_info, dict):
            raise MalformedResponse("登录返回的 userInfo 格式错误")

        try:
            profile = build_profile(user_info)
        except ValueError as e:
            raise MalformedResponse("登录返回的资料格式错误", detail=str(e)) from e

        identity = Identity(openid=openid, token=token, profile=profile, is_guest=is_guest)
        return identity, bool(data.get("isNewUser"))
