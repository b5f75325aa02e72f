"""远程身份网关 - 通过 HTTP 调用云函数"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx

from common.config import GatewayConfig, settings
from common.logger import get_logger

logger = get_logger(__name__)


class LoginType(str, Enum):
    WECHAT = "wechat"
    GUEST = "guest"
    AUTO = "auto"


@dataclass(frozen=True)
class GatewaySuccess:
    """后端确认成功"""

    data: Dict[str, Any] = field(default_factory=dict)
    message: str = ""


@dataclass(frozen=True)
class GatewayFailure:
    """后端明确拒绝（success=false）"""

    message: str = ""


@dataclass(frozen=True)
class GatewayUnreachable:
    """调用未完成，没有拿到任何答复"""

    reason: str = ""


GatewayResult = Union[GatewaySuccess, GatewayFailure, GatewayUnreachable]


class IdentityGateway(ABC):
    """身份后端的窄接口"""

    @abstractmethod
    async def resolve_identity(
        self,
        login_type: LoginType,
        profile: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> GatewayResult:
        ...

    @abstractmethod
    async def save_user_info(
        self, token: str, profile: Dict[str, Any]
    ) -> GatewayResult:
        ...

    @abstractmethod
    async def fetch_user_info(self, token: str) -> GatewayResult:
        ...

    async def close(self) -> None:
        return None


class CloudGateway(IdentityGateway):
    """轻量 async HTTP 客户端，按函数名 POST 到云函数入口"""

    def __init__(self, config: Optional[GatewayConfig] = None):
        cfg = config or settings.gateway
        self._base_url = cfg.base_url.rstrip("/")
        self._login_fn = cfg.login_function
        self._save_fn = cfg.save_user_info_function
        self._fetch_fn = cfg.get_user_info_function
        self._timeout = cfg.timeout_seconds
        self._connect_timeout = cfg.connect_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """获取或创建持久 HTTP 客户端"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=self._connect_timeout),
            )
        return self._client

    async def close(self) -> None:
        """关闭持久 HTTP 客户端"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def resolve_identity(
        self,
        login_type: LoginType,
        profile: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> GatewayResult:
        payload: Dict[str, Any] = {
            "operation": "resolveIdentity",
            "loginType": LoginType(login_type).value,
        }
        if profile is not None:
            payload["profile"] = profile
        return await self._call(self._login_fn, payload, token)

    async def save_user_info(
        self, token: str, profile: Dict[str, Any]
    ) -> GatewayResult:
        return await self._call(self._save_fn, {"userInfo": profile}, token)

    async def fetch_user_info(self, token: str) -> GatewayResult:
        return await self._call(self._fetch_fn, {}, token)

    async def _call(
        self, function: str, payload: Dict[str, Any], token: Optional[str]
    ) -> GatewayResult:
        url = f"{self._base_url}/{function}"
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        try:
            logger.debug("Gateway request: %s", url)
            client = self._get_client()
            resp = await client.post(url, json=payload, headers=headers)

            # 凭证被拒是明确答复，不是网络故障
            if resp.status_code in (401, 403):
                return GatewayFailure(message=_error_message(resp) or "凭证已失效")

            resp.raise_for_status()
            body = resp.json()
        except httpx.ConnectError:
            logger.warning("Gateway unavailable (connection refused): %s", function)
            return GatewayUnreachable(reason="connection refused")
        except httpx.TimeoutException as e:
            logger.warning(
                "Gateway request timed out (%.0fs limit): %s %s",
                self._timeout, function, type(e).__name__,
            )
            return GatewayUnreachable(reason="timeout")
        except httpx.HTTPStatusError as e:
            logger.warning("Gateway HTTP %d: %s", e.response.status_code, function)
            return GatewayUnreachable(reason=f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.warning("Gateway transport error [%s]: %r", type(e).__name__, e)
            return GatewayUnreachable(reason=type(e).__name__)
        except ValueError:
            logger.warning("Gateway returned non-JSON body: %s", function)
            return GatewayUnreachable(reason="invalid JSON body")

        return _to_result(body)


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("message") or "")
    return ""


def _to_result(body: Any) -> GatewayResult:
    """云函数返回体 -> 带标签的结果

    兼容 {"result": {...}} 包装；没有 success 字段视为没有拿到答复。
    """
    if isinstance(body, dict) and "success" not in body and isinstance(
        body.get("result"), dict
    ):
        body = body["result"]

    if not isinstance(body, dict) or not isinstance(body.get("success"), bool):
        return GatewayUnreachable(reason="response has no success flag")

    message = str(body.get("message") or "")
    if body["success"]:
        data = body.get("data")
        return GatewaySuccess(data=data if isinstance(data, dict) else {}, message=message)
    return GatewayFailure(message=message)
