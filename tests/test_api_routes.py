"""
tests/test_api_routes.py -- Integration tests for the REST surface.

These tests exercise the full stack: FastAPI routing -> auth dependency
injection -> Authenticator -> CredentialStore -> response model serialization.
Unit tests for the authenticator cannot see the HTTP mapping (status codes,
WWW-Authenticate, error envelope) -- integration tests are the right tool here.

Coverage:
  - Auth failures: 401 + challenge without credentials, 403 for non-admins
  - Token endpoint: valid 200, unknown name and wrong password indistinguishable
  - Basic and bearer both reach /users/me
  - Admin user management, breach check on new passwords (blocked, 503, fail-open)
  - Application lifecycle and message push with ?token= and X-Gotify-Key

Fixtures used (from conftest.py):
  - api_client: (client, store) -- TestClient with testadmin (admin) and alice.
"""

from __future__ import annotations

import hashlib

import pytest
from conftest import ADMIN_NAME, ADMIN_PASSWORD, USER_NAME, USER_PASSWORD, basic_header, breach_session
from fastapi.testclient import TestClient

from auth.breach import BreachChecker
from auth.store import CredentialStore
from core.config import get_settings

Client = tuple[TestClient, CredentialStore]


def _admin() -> dict[str, str]:
    return basic_header(ADMIN_NAME, ADMIN_PASSWORD)


def _alice() -> dict[str, str]:
    return basic_header(USER_NAME, USER_PASSWORD)


def _range_body_for(password: str) -> str:
    suffix = hashlib.sha1(password.encode()).hexdigest().upper()[5:]
    return f"{'0' * 35}:1\r\n{suffix}:42"


@pytest.fixture
def breach_enabled(api_client: Client, monkeypatch):
    """Turn the breach check on for one test. Returns a function that installs a session."""
    client, _ = api_client
    monkeypatch.setattr(get_settings(), "check_breached_passwords", True)

    def install(session) -> None:
        monkeypatch.setattr(client.app.state, "breach_checker", BreachChecker(session=session))

    return install


class TestAuthFailure:
    """Unauthenticated or unauthorized requests."""

    def test_me_without_credentials_challenges(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/users/me")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == 'Basic realm="pushgate"'
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_wrong_password_and_unknown_user_look_the_same(self, api_client: Client) -> None:
        client, _ = api_client
        wrong = client.get("/api/v1/users/me", headers=basic_header(USER_NAME, "nope"))
        unknown = client.get("/api/v1/users/me", headers=basic_header("mallory", "nope"))
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()

    def test_malformed_basic_header(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/users/me", headers={"Authorization": "Basic !!!not-base64"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credential_format"

    def test_invalid_bearer_token(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_non_admin_cannot_list_users(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/users", headers=_alice())
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"
        assert "WWW-Authenticate" not in resp.headers

    def test_error_body_never_echoes_the_password(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/users/me", headers=basic_header(USER_NAME, "leaky-secret"))
        assert "leaky-secret" not in resp.text


class TestTokenEndpoint:
    def test_valid_credentials_issue_bearer_token(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/oauth2/token", json={"username": USER_NAME, "password": USER_PASSWORD})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == get_settings().token_expire_seconds
        assert resp.headers["Cache-Control"] == "no-store"

        me = client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.json()["name"] == USER_NAME

    def test_unknown_name_and_wrong_password_are_identical(self, api_client: Client) -> None:
        client, _ = api_client
        wrong = client.post("/api/v1/oauth2/token", json={"username": USER_NAME, "password": "nope"})
        unknown = client.post("/api/v1/oauth2/token", json={"username": "mallory", "password": "nope"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.headers["Cache-Control"] == "no-store"

    def test_validation_error_does_not_echo_input(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/oauth2/token",
            json={"grant_type": "client_credentials", "username": "x", "password": "echo-me"},
        )
        assert resp.status_code == 422
        assert "echo-me" not in resp.text


class TestUsers:
    def test_me_via_basic(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/users/me", headers=_alice())
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == USER_NAME
        assert data["is_admin"] is False
        assert data["matrix_id"] == "@alice:example.org"
        assert "password_hash" not in data

    def test_admin_lists_users(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/users", headers=_admin())
        assert resp.status_code == 200
        names = [u["name"] for u in resp.json()]
        assert ADMIN_NAME in names and USER_NAME in names

    def test_admin_creates_user_who_can_log_in(self, api_client: Client) -> None:
        client, store = api_client
        resp = client.post(
            "/api/v1/users",
            json={"name": "carol", "password": "carol-pass-1", "matrix_id": "@carol:example.org"},
            headers=_admin(),
        )
        assert resp.status_code == 201, resp.text
        assert store.get_user_by_name("carol").password_hash.startswith("$argon2id$")
        assert client.get("/api/v1/users/me", headers=basic_header("carol", "carol-pass-1")).status_code == 200

    def test_duplicate_user_conflicts(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/users", json={"name": USER_NAME, "password": "x"}, headers=_admin())
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_admin_cannot_delete_self(self, api_client: Client) -> None:
        client, store = api_client
        admin_id = store.get_user_by_name(ADMIN_NAME).id
        resp = client.delete(f"/api/v1/users/{admin_id}", headers=_admin())
        assert resp.status_code == 400

    def test_admin_deletes_user(self, api_client: Client) -> None:
        client, store = api_client
        client.post("/api/v1/users", json={"name": "dave", "password": "dave-pass"}, headers=_admin())
        dave_id = store.get_user_by_name("dave").id
        assert client.delete(f"/api/v1/users/{dave_id}", headers=_admin()).status_code == 204
        assert client.delete(f"/api/v1/users/{dave_id}", headers=_admin()).status_code == 404

    def test_change_password(self, api_client: Client) -> None:
        client, _ = api_client
        client.post("/api/v1/users", json={"name": "erin", "password": "old-pass"}, headers=_admin())

        resp = client.put(
            "/api/v1/users/me/password",
            json={"password": "new-pass"},
            headers=basic_header("erin", "old-pass"),
        )
        assert resp.status_code == 204
        assert client.get("/api/v1/users/me", headers=basic_header("erin", "old-pass")).status_code == 401
        assert client.get("/api/v1/users/me", headers=basic_header("erin", "new-pass")).status_code == 200


class TestBreachCheck:
    def test_compromised_password_rejected(self, api_client: Client, breach_enabled) -> None:
        client, store = api_client
        breach_enabled(breach_session(_range_body_for("password1")))
        resp = client.post("/api/v1/users", json={"name": "frank", "password": "password1"}, headers=_admin())
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "password_compromised"
        assert store.get_user_by_name("frank") is None

    def test_clean_password_accepted(self, api_client: Client, breach_enabled) -> None:
        client, _ = api_client
        breach_enabled(breach_session(_range_body_for("something-else")))
        resp = client.post("/api/v1/users", json={"name": "grace", "password": "unlisted-pass"}, headers=_admin())
        assert resp.status_code == 201

    def test_upstream_failure_blocks_by_default(self, api_client: Client, breach_enabled) -> None:
        client, store = api_client
        breach_enabled(breach_session(status_code=503))
        resp = client.post("/api/v1/users", json={"name": "heidi", "password": "whatever"}, headers=_admin())
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "breach_check_unavailable"
        assert store.get_user_by_name("heidi") is None

    def test_upstream_failure_with_fail_open(self, api_client: Client, breach_enabled, monkeypatch) -> None:
        client, _ = api_client
        monkeypatch.setattr(get_settings(), "breach_check_fail_open", True)
        breach_enabled(breach_session(f"{'A' * 35}"))  # malformed line
        resp = client.post("/api/v1/users", json={"name": "ivan", "password": "whatever"}, headers=_admin())
        assert resp.status_code == 201

    def test_password_change_is_checked(self, api_client: Client, breach_enabled) -> None:
        client, _ = api_client
        breach_enabled(breach_session(_range_body_for("hunter2")))
        resp = client.put("/api/v1/users/me/password", json={"password": "hunter2"}, headers=_alice())
        assert resp.status_code == 400


class TestApplicationsAndMessages:
    def _create_app(self, client: TestClient, name: str) -> dict:
        resp = client.post("/api/v1/applications", json={"name": name}, headers=_alice())
        assert resp.status_code == 201, resp.text
        return resp.json()

    def test_create_and_list(self, api_client: Client) -> None:
        client, _ = api_client
        created = self._create_app(client, "backup-job")
        assert len(created["token"]) == 32
        listed = client.get("/api/v1/applications", headers=_alice()).json()
        assert created["id"] in [a["id"] for a in listed]

    def test_push_with_query_token(self, api_client: Client) -> None:
        client, _ = api_client
        app = self._create_app(client, "nas")
        resp = client.post(f"/api/v1/message?token={app['token']}", json={"message": "disk full", "priority": 5})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["application_id"] == app["id"]
        assert data["title"] == "nas"
        assert data["priority"] == 5

    def test_push_with_header_token(self, api_client: Client) -> None:
        client, _ = api_client
        app = self._create_app(client, "cron")
        resp = client.post(
            "/api/v1/message",
            json={"title": "nightly", "message": "done"},
            headers={"X-Gotify-Key": app["token"]},
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "nightly"

    def test_query_token_wins_over_header(self, api_client: Client) -> None:
        client, _ = api_client
        app = self._create_app(client, "precedence")
        resp = client.post(
            f"/api/v1/message?token={app['token']}",
            json={"message": "hi"},
            headers={"X-Gotify-Key": "bogus"},
        )
        assert resp.status_code == 200
        assert resp.json()["application_id"] == app["id"]

    def test_push_with_unknown_token(self, api_client: Client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/message?token=nope", json={"message": "hi"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"
        assert "WWW-Authenticate" not in resp.headers

    def test_push_without_token(self, api_client: Client) -> None:
        client, _ = api_client
        assert client.post("/api/v1/message", json={"message": "hi"}).status_code == 401

    def test_user_credentials_do_not_push(self, api_client: Client) -> None:
        client, _ = api_client
        assert client.post("/api/v1/message", json={"message": "hi"}, headers=_alice()).status_code == 401

    def test_delete_is_owner_only(self, api_client: Client) -> None:
        client, _ = api_client
        app = self._create_app(client, "owned")
        assert client.delete(f"/api/v1/applications/{app['id']}", headers=_admin()).status_code == 404
        assert client.delete(f"/api/v1/applications/{app['id']}", headers=_alice()).status_code == 204
        assert client.post(f"/api/v1/message?token={app['token']}", json={"message": "hi"}).status_code == 401
