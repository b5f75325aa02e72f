"""测试配置"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# 添加项目根目录到 sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


@pytest.fixture
def profile_defaults():
    from common.config import ProfileDefaultsConfig

    return ProfileDefaultsConfig()


@pytest.fixture
def session_config():
    from common.config import SessionConfig

    return SessionConfig()


@pytest.fixture
def memory_store():
    from storage.store import MemoryStore

    return MemoryStore()


@pytest.fixture
def app_globals():
    from managers.session_cache import AppGlobals

    return AppGlobals()


@pytest.fixture
def session_cache(memory_store, app_globals):
    from managers.session_cache import SessionCache

    return SessionCache(memory_store, app_globals)


@pytest.fixture
def sample_login_data():
    """wechat 登录成功时云函数返回的 data"""
    return {
        "openid": "o_test_openid",
        "token": "tok-123",
        "userInfo": {"nickName": "小明", "city": "杭州"},
        "isNewUser": False,
    }


@pytest.fixture
def mock_gateway(sample_login_data):
    """Mock 身份网关：默认全部成功"""
    from services.gateway import GatewaySuccess

    gateway = AsyncMock()
    gateway.resolve_identity.return_value = GatewaySuccess(data=sample_login_data)
    gateway.save_user_info.return_value = GatewaySuccess(data={})
    gateway.fetch_user_info.return_value = GatewaySuccess(data={})
    return gateway


@pytest.fixture
def resolver(session_cache, mock_gateway, profile_defaults, session_config):
    from core.resolver import SessionResolver

    return SessionResolver(
        session_cache, mock_gateway, defaults=profile_defaults, config=session_config
    )


@pytest.fixture
def facade(resolver, session_config):
    from core.facade import IdentityFacade

    return IdentityFacade(resolver, session_config)


@pytest.fixture
def consent_profile():
    from storage.models.identity import ConsentProfile

    return ConsentProfile(
        nickName="小明",
        avatarUrl="https://example.com/a.png",
        city="杭州",
        province="浙江",
        country="中国",
        language="zh_CN",
        genderCode=1,
    )


@pytest.fixture
def grant_consent(consent_profile):
    """用户同意授权"""

    async def provide():
        return consent_profile

    return provide


@pytest.fixture
def deny_consent():
    """用户拒绝授权"""
    from common.exceptions import ConsentDenied

    async def provide():
        raise ConsentDenied("用户拒绝授权")

    return provide


@pytest.fixture
def sample_identity():
    from storage.models.identity import Identity, UserProfile

    return Identity(
        openid="o_cached",
        token="tok-cached",
        profile=UserProfile(nickName="老用户", gender="女", age=30, height=160, weight=50),
    )
