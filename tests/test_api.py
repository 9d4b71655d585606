"""
HTTP contract tests through FastAPI's TestClient.

Every collaborator that would reach Google is overridden; the database is
the shared in-memory SQLite session.
"""

import json
from urllib.parse import parse_qs, unquote, urlparse

import pytest
from fastapi.testclient import TestClient

from app.api.deps import (
    get_enricher,
    get_mailbox_factory,
    get_oauth_service,
    get_sync_service,
    get_token_manager,
)
from app.config import get_settings
from app.database import get_db
from app.errors import InvalidGrant, OAuthError
from app.services.types import TokenPair
from main import app


class FakeOAuthService:
    def __init__(self, email="learner@example.com", exchange_error=None):
        self.email = email
        self.exchange_error = exchange_error

    def authorization_url(self, state=None):
        state = state or "state-123"
        return f"https://accounts.google.com/o/oauth2/auth?state={state}", state

    def exchange_code(self, code):
        if self.exchange_error:
            raise self.exchange_error
        return TokenPair("access-new", "refresh-new", None)

    def get_user_info(self, tokens):
        return {"id": "g-1", "email": self.email, "name": "Learner", "picture": None}


@pytest.fixture
def oauth_service():
    return FakeOAuthService()


@pytest.fixture
def client(db_session, token_manager, mailbox_factory, oauth_service):
    """
    TestClient with dependencies swapped for fakes.

    Not used as a context manager, so the startup hook never touches the
    configured database.
    """
    def override_db():
        yield db_session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_token_manager] = lambda: token_manager
    app.dependency_overrides[get_mailbox_factory] = lambda: mailbox_factory
    app.dependency_overrides[get_enricher] = lambda: None
    app.dependency_overrides[get_oauth_service] = lambda: oauth_service

    yield TestClient(app)

    app.dependency_overrides.clear()


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# ============ ERROR CONTRACT ============

def test_missing_email_is_bad_request(client):
    response = client.get("/api/v1/gmail/stats")

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "EMAIL_REQUIRED",
        "message": "User email is required",
    }


def test_unknown_user_is_not_found(client):
    response = client.post("/api/v1/gmail/sync", json={"email": "nobody@example.com"})

    assert response.status_code == 404
    assert response.json()["error"] == "USER_NOT_FOUND"


# ============ SYNC + DASHBOARD ============

def test_sync_then_list_and_stats(client, user):
    response = client.post("/api/v1/gmail/sync", json={"email": user.email})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["summary"]["new_certificates"] == 2
    assert {r["messageId"] for r in body["results"]} == {"msg-1", "msg-2"}

    listing = client.get("/api/v1/gmail/certificates", params={"email": user.email}).json()
    assert listing["total"] == 2
    assert listing["platforms"] == {"Coursera": 1, "edX": 1}
    assert {c["platform"] for c in listing["certificates"]} == {"Coursera", "edX"}

    stats = client.get("/api/v1/gmail/stats", params={"email": user.email}).json()
    assert stats["stats"]["total_certificates"] == 2


def test_gmail_connection_test(client, user):
    response = client.get("/api/v1/gmail/test", params={"email": user.email})

    assert response.status_code == 200
    assert response.json()["message"] == "Gmail API connection successful"


# ============ AUTH ============

def test_login_returns_url_for_json_clients(client):
    response = client.get("/api/v1/auth/login", headers={"Accept": "application/json"})

    assert response.status_code == 200
    assert response.json()["authUrl"].startswith("https://accounts.google.com/")
    assert response.cookies.get("oauth_state") == "state-123"


def test_login_redirects_browsers(client):
    response = client.get("/api/v1/auth/login", follow_redirects=False)

    assert response.status_code in (302, 307)
    assert response.headers["location"].startswith("https://accounts.google.com/")


def test_callback_provider_error_is_json(client):
    response = client.get("/api/v1/auth/callback", params={"error": "access_denied"})

    assert response.status_code == 403
    assert response.json()["error"] == "ACCESS_DENIED"


def test_callback_without_code(client):
    response = client.get("/api/v1/auth/callback")

    assert response.status_code == 400
    assert response.json()["error"] == "MISSING_CODE"


def test_callback_state_mismatch(client):
    client.cookies.set("oauth_state", "expected-state")

    response = client.get("/api/v1/auth/callback", params={"code": "c", "state": "other-state"})

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_STATE"


def test_callback_json_success_upserts_user(client, store):
    response = client.get(
        "/api/v1/auth/callback",
        params={"code": "auth-code"},
        headers={"Accept": "application/json"}
    )

    assert response.status_code == 200
    assert response.json()["user"]["email"] == "learner@example.com"
    user = store.get_user_by_email("learner@example.com")
    assert user.google_refresh_token == "refresh-new"


def test_callback_redirects_browser_to_frontend(client):
    response = client.get("/api/v1/auth/callback", params={"code": "auth-code"}, follow_redirects=False)

    assert response.status_code in (302, 307)
    location = response.headers["location"]
    assert location.startswith(f"{get_settings().frontend_url}/callback?user=")
    user_param = parse_qs(urlparse(location).query)["user"][0]
    assert json.loads(unquote(user_param))["email"] == "learner@example.com"


def test_callback_exchange_failure(client, oauth_service):
    oauth_service.exchange_error = OAuthError(
        message="Authorization code is invalid or expired",
        code="INVALID_GRANT",
        status_code=401
    )

    response = client.get("/api/v1/auth/callback", params={"code": "reused"})

    assert response.status_code == 401
    assert response.json()["error"] == "INVALID_GRANT"


def test_status_for_valid_tokens(client, user):
    response = client.get("/api/v1/auth/status", params={"email": user.email})

    assert response.status_code == 200
    assert response.json()["authenticated"] is True


def test_logout_clears_tokens(client, store, user):
    response = client.post("/api/v1/auth/logout", json={"email": user.email})

    assert response.status_code == 200
    assert store.get_user_by_email(user.email).has_tokens is False


def test_refresh_without_refresh_token(client, store, user):
    store.update_user_tokens(user, TokenPair("access-1", None, None))

    response = client.post("/api/v1/auth/refresh", json={"email": user.email})

    assert response.status_code == 401
    assert response.json()["error"] == "NO_REFRESH_TOKEN"


def test_refresh_rejected_by_google(client, user, token_manager, monkeypatch):
    def reject(refresh_token):
        raise InvalidGrant(details="Token has been expired or revoked.")

    monkeypatch.setattr(token_manager, "refresh", reject)

    response = client.post("/api/v1/auth/refresh", json={"email": user.email})

    assert response.status_code == 401
    assert response.json()["error"] == "INVALID_GRANT"


def test_refresh_success(client, store, user, token_manager, refreshed_pair, monkeypatch):
    monkeypatch.setattr(token_manager, "refresh", lambda rt: refreshed_pair)

    response = client.post("/api/v1/auth/refresh", json={"email": user.email})

    assert response.status_code == 200
    assert response.json()["tokens"]["access_token"] == "access-2"
    assert store.get_user_by_email(user.email).google_refresh_token == "refresh-2"


# ============ UNEXPECTED FAILURES ============

def test_sync_network_error_during_token_check_is_401(client, user, mailbox):
    mailbox.check_error = ConnectionResetError("connection reset by peer")

    response = client.post("/api/v1/gmail/sync", json={"email": user.email})

    assert response.status_code == 401
    assert response.json()["error"] == "AUTHENTICATION_REQUIRED"


def test_status_reports_unauthenticated_on_token_check_error(client, user, mailbox):
    mailbox.check_error = ConnectionResetError("connection reset by peer")

    response = client.get("/api/v1/auth/status", params={"email": user.email})

    assert response.status_code == 200
    assert response.json()["authenticated"] is False


class ExplodingSyncService:
    def get_stats(self, email):
        raise RuntimeError("boom")


def test_unclassified_error_is_sync_error_json(client):
    app.dependency_overrides[get_sync_service] = lambda: ExplodingSyncService()
    crash_client = TestClient(app, raise_server_exceptions=False)

    response = crash_client.get("/api/v1/gmail/stats", params={"email": "learner@example.com"})

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "SYNC_ERROR"
    assert body["details"] == "boom"
