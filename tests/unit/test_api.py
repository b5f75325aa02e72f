"""本地桥接 API 测试"""

import pytest
from fastapi.testclient import TestClient

from common.config import Settings
from core.engine import SessionEngine
from services.gateway import GatewayFailure, GatewaySuccess, GatewayUnreachable
from storage.store import MemoryStore, StorageKeys

API = "/api/identity"


@pytest.fixture
def engine(mock_gateway):
    return SessionEngine(config=Settings(), store=MemoryStore(), gateway=mock_gateway)


@pytest.fixture
def client(engine):
    from main import create_app

    with TestClient(create_app(engine)) as c:
        yield c


CONSENT = {
    "consent_granted": True,
    "profile": {"nickName": "小明", "avatarUrl": "", "genderCode": 2},
}


class TestStatus:
    def test_status_after_startup_without_cache(self, client, engine):
        resp = client.get(f"{API}/status")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "running"
        assert data["session_state"] == "anonymous"
        assert data["startup_trust"] is None
        assert engine.last_trust_decision is None

    def test_request_id_header(self, client):
        resp = client.get(f"{API}/status")
        assert len(resp.headers["X-Request-ID"]) == 8

    def test_request_id_passed_through(self, client):
        resp = client.get(f"{API}/status", headers={"X-Request-ID": "ui-42"})
        assert resp.headers["X-Request-ID"] == "ui-42"


class TestStartup:
    def test_cached_session_restored_on_startup(self, mock_gateway, sample_identity):
        from main import create_app
        from managers.session_cache import AppGlobals, SessionCache

        store = MemoryStore()
        SessionCache(store, AppGlobals()).write(sample_identity)
        mock_gateway.resolve_identity.return_value = GatewayUnreachable()
        engine = SessionEngine(config=Settings(), store=store, gateway=mock_gateway)

        with TestClient(create_app(engine)) as c:
            data = c.get(f"{API}/auth/session").json()["data"]

        assert data["is_logged_in"] is True
        assert data["user_id"] == "o_cached"
        assert engine.last_trust_decision.value == "unknown"
        mock_gateway.close.assert_awaited_once()


class TestAuthRoutes:
    def test_session_anonymous(self, client):
        data = client.get(f"{API}/auth/session").json()["data"]
        assert data["is_logged_in"] is False
        assert data["user_info"] is None
        assert data["user_id"].startswith("guest_")

    def test_login(self, client, engine):
        resp = client.post(f"{API}/auth/login", json=CONSENT)

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "登录成功"
        session = body["data"]["session"]
        assert session["is_logged_in"] is True
        assert session["user_id"] == "o_test_openid"
        assert session["user_info"]["gender"] == "女"
        # 会话响应不暴露 token
        assert "tok-123" not in resp.text
        assert engine.store.get(StorageKeys.TOKEN) == "tok-123"

    def test_login_denied(self, client, mock_gateway):
        resp = client.post(f"{API}/auth/login", json={"consent_granted": False})

        assert resp.status_code == 403
        assert resp.json()["kind"] == "ConsentDenied"
        mock_gateway.resolve_identity.assert_not_called()

    def test_login_rejected_message_verbatim(self, client, mock_gateway):
        mock_gateway.resolve_identity.return_value = GatewayFailure(message="账号异常")

        resp = client.post(f"{API}/auth/login", json=CONSENT)

        assert resp.status_code == 401
        assert resp.json()["error"] == "账号异常"

    def test_login_network_unavailable(self, client, mock_gateway):
        mock_gateway.resolve_identity.return_value = GatewayUnreachable(reason="timeout")

        resp = client.post(f"{API}/auth/login", json=CONSENT)

        assert resp.status_code == 503
        assert resp.json()["kind"] == "NetworkUnavailable"

    def test_guest_login(self, client):
        resp = client.post(f"{API}/auth/guest")
        session = resp.json()["data"]["session"]
        assert session["is_guest"] is True
        assert session["is_logged_in"] is True

    def test_logout(self, client):
        client.post(f"{API}/auth/login", json=CONSENT)
        resp = client.post(f"{API}/auth/logout")

        assert resp.status_code == 200
        assert resp.json()["data"]["is_logged_in"] is False
        # 再次退出同样成功
        assert client.post(f"{API}/auth/logout").status_code == 200

    def test_auto_login_confirmed(self, client):
        client.post(f"{API}/auth/login", json=CONSENT)
        data = client.post(f"{API}/auth/auto").json()["data"]
        assert data["decision"] == "confirmed"
        assert data["session"]["is_logged_in"] is True

    def test_update_profile(self, client, mock_gateway):
        client.post(f"{API}/auth/login", json=CONSENT)
        mock_gateway.save_user_info.return_value = GatewaySuccess()

        resp = client.put(f"{API}/auth/profile", json={"fields": {"weight": 72}})

        assert resp.status_code == 200
        assert resp.json()["data"]["weight"] == 72

    def test_update_profile_invalid_value(self, client, mock_gateway):
        client.post(f"{API}/auth/login", json=CONSENT)
        mock_gateway.save_user_info.reset_mock()

        resp = client.put(f"{API}/auth/profile", json={"fields": {"age": "old"}})

        assert resp.status_code == 422
        assert resp.json()["kind"] == "ProfileInvalid"
        mock_gateway.save_user_info.assert_not_called()

    def test_update_profile_requires_login(self, client):
        resp = client.put(f"{API}/auth/profile", json={"fields": {"weight": 72}})
        assert resp.status_code == 401
        assert resp.json()["kind"] == "NotAuthenticatedError"

    def test_sync_profile_failure_is_not_an_error(self, client, mock_gateway):
        client.post(f"{API}/auth/login", json=CONSENT)
        mock_gateway.fetch_user_info.return_value = GatewayUnreachable()

        resp = client.post(f"{API}/auth/profile/sync")

        assert resp.status_code == 200
        assert resp.json()["data"]["synced"] is False

    def test_user_id(self, client):
        anon = client.get(f"{API}/auth/user-id").json()["data"]["user_id"]
        assert anon.startswith("guest_")
        client.post(f"{API}/auth/login", json=CONSENT)
        assert client.get(f"{API}/auth/user-id").json()["data"]["user_id"] == "o_test_openid"
