"""
tests/test_api_routes.py -- Integration tests for the JSON API.

These tests exercise the full stack: access gate -> FastAPI routing ->
registration / Authenticator / SessionManager -> UserStore -> response model
serialization. The client fixture uses follow_redirects=False so a gate
redirect would surface as a 302 instead of being silently followed.

Coverage:
  - Registration: 201 without password, duplicate email, password length
    boundary, long and non-string passwords, missing fields, camelCase and
    snake_case bodies
  - Login / session / logout round trip through the cookie jar
  - /api/v1/users: public create, owner-only delete (401/403/200/404)
  - Store failures: generic 500 without driver text
  - Concurrent duplicate registration: one winner
  - Rate limiting on POST /api/auth/login

Fixtures used (from conftest.py):
  - client: TestClient over a fresh app and empty DB
  - account: a registered user (JSON body plus plaintext "password")
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.limiter import limiter
from asgi import build_app
from conftest import make_settings, register, unique_email


def _login(client: TestClient, account: dict):
    return client.post("/api/auth/login", json={"email": account["email"], "password": account["password"]})


class TestRegister:
    def test_register_returns_user_without_password(self, client: TestClient) -> None:
        email = unique_email()
        resp = client.post(
            "/api/auth/register",
            json={"email": email, "password": "secret", "firstName": "Ada", "inviteCode": "INV"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["email"] == email
        assert body["first_name"] == "Ada"
        assert body["last_name"] == ""
        assert body["is_email_verified"] is False
        assert len(body["id"]) == 12
        assert "password" not in body

    def test_duplicate_email_is_rejected(self, client: TestClient) -> None:
        """First registration wins; the second gets a distinguishable 400."""
        account = register(client)
        resp = client.post(
            "/api/auth/register",
            json={"email": account["email"], "password": "another-pw", "inviteCode": "INV"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "email_exists"

    def test_password_length_boundary(self, client: TestClient) -> None:
        short = client.post(
            "/api/auth/register",
            json={"email": unique_email(), "password": "12345", "inviteCode": "INV"},
        )
        assert short.status_code == 400
        assert short.json()["error"]["code"] == "password_too_short"

        ok = client.post(
            "/api/auth/register",
            json={"email": unique_email(), "password": "123456", "inviteCode": "INV"},
        )
        assert ok.status_code == 201

    def test_missing_invite_code(self, client: TestClient) -> None:
        resp = client.post("/api/auth/register", json={"email": unique_email(), "password": "secret"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_fields"

    def test_empty_body(self, client: TestClient) -> None:
        resp = client.post("/api/auth/register", json={})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_fields"

    def test_snake_case_fields_are_accepted(self, client: TestClient) -> None:
        resp = client.post(
            "/api/auth/register",
            json={
                "email": unique_email(),
                "password": "secret",
                "first_name": "Grace",
                "last_name": "Hopper",
                "invite_code": "INV",
            },
        )
        assert resp.status_code == 201
        assert resp.json()["last_name"] == "Hopper"

    def test_long_password_is_accepted(self, client: TestClient) -> None:
        """Anything at or above the minimum length registers; bcrypt reads the first 72 bytes."""
        account = register(client, password="a" * 300)
        login = client.post("/api/auth/login", json={"email": account["email"], "password": "a" * 300})
        assert login.status_code == 200

    def test_non_string_password_is_400(self, client: TestClient) -> None:
        resp = client.post(
            "/api/auth/register",
            json={"email": unique_email(), "password": 1234567, "inviteCode": "INV"},
        )
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "validation_error"
        assert error["detail"].startswith("password:")
        assert "1234567" not in error["detail"]

    def test_malformed_body_on_users_resource_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/v1/users", json={"email": ["a@example.com"], "password": "secret"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_new_account_can_log_in(self, client: TestClient, account: dict) -> None:
        resp = _login(client, account)
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == account["id"]


class TestLoginAndSession:
    def test_login_sets_cookie_and_returns_session(self, client: TestClient, account: dict) -> None:
        resp = _login(client, account)
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        body = resp.json()
        assert body["user"] == {"id": account["id"], "email": account["email"], "name": "Ada Lovelace"}
        assert body["expires"]
        assert "access_token" in resp.cookies

        set_cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    def test_wrong_password_is_401(self, client: TestClient, account: dict) -> None:
        resp = client.post("/api/auth/login", json={"email": account["email"], "password": "wrong-pw"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"
        assert "access_token" not in resp.cookies

    def test_unknown_email_gets_the_same_error(self, client: TestClient) -> None:
        resp = client.post("/api/auth/login", json={"email": unique_email(), "password": "whatever"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_session_is_empty_when_anonymous(self, client: TestClient) -> None:
        resp = client.get("/api/auth/session")
        assert resp.status_code == 200
        assert resp.json() == {}

    def test_session_after_login(self, client: TestClient, account: dict) -> None:
        _login(client, account)
        resp = client.get("/api/auth/session")
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == account["id"]

    def test_bearer_token_is_accepted(self, client: TestClient, account: dict) -> None:
        token = _login(client, account).cookies["access_token"]
        client.cookies.clear()
        resp = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert resp.json()["user"]["email"] == account["email"]

    def test_garbage_cookie_is_anonymous(self, client: TestClient) -> None:
        resp = client.get("/api/auth/session", cookies={"access_token": "not-a-jwt"})
        assert resp.json() == {}

    def test_logout_clears_cookie(self, client: TestClient, account: dict) -> None:
        _login(client, account)
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out."}
        assert client.get("/api/auth/session").json() == {}


class TestUsersResource:
    def test_create_without_session(self, client: TestClient) -> None:
        resp = client.post(
            "/api/v1/users",
            json={"email": unique_email(), "password": "secret", "inviteCode": "INV"},
        )
        assert resp.status_code == 201
        assert "password" not in resp.json()

    def test_create_applies_registration_rules(self, client: TestClient) -> None:
        resp = client.post("/api/v1/users", json={"email": unique_email(), "password": "12345", "inviteCode": "I"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "password_too_short"

        missing = client.post("/api/v1/users", json={"email": unique_email()})
        assert missing.status_code == 400
        assert missing.json()["error"]["code"] == "missing_fields"

    def test_delete_without_session_is_401(self, client: TestClient, account: dict) -> None:
        """The gate lets /api/v1/users through; the route itself demands a session."""
        resp = client.delete(f"/api/v1/users/{account['id']}")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_delete_someone_else_is_403(self, client: TestClient, account: dict) -> None:
        other = register(client)
        _login(client, account)
        resp = client.delete(f"/api/v1/users/{other['id']}")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_delete_own_account(self, client: TestClient, account: dict) -> None:
        _login(client, account)
        resp = client.delete(f"/api/v1/users/{account['id']}")
        assert resp.status_code == 200
        assert resp.json() == {"message": "User deleted successfully"}

        relogin = _login(client, account)
        assert relogin.status_code == 401

    def test_delete_twice_is_404(self, client: TestClient, account: dict) -> None:
        """The token outlives the record it names; the second delete finds nothing."""
        _login(client, account)
        assert client.delete(f"/api/v1/users/{account['id']}").status_code == 200
        resp = client.delete(f"/api/v1/users/{account['id']}")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestStoreFailures:
    """Unexpected store errors become a generic 500; driver text never reaches the client."""

    @staticmethod
    def _disk_error(*args, **kwargs):
        raise OperationalError("INSERT INTO users", {}, Exception("disk I/O error"))

    def test_register_store_failure_is_500(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(client.app.state.user_store, "create_user", self._disk_error)
        resp = client.post(
            "/api/auth/register",
            json={"email": unique_email(), "password": "secret", "inviteCode": "INV"},
        )
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "internal_error"
        assert "disk I/O error" not in resp.text
        assert "INSERT" not in resp.text

    def test_create_user_store_failure_is_500(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(client.app.state.user_store, "create_user", self._disk_error)
        resp = client.post(
            "/api/v1/users",
            json={"email": unique_email(), "password": "secret", "inviteCode": "INV"},
        )
        assert resp.status_code == 500
        assert "disk I/O error" not in resp.text

    def test_delete_store_failure_is_500(
        self, client: TestClient, account: dict, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _login(client, account)
        monkeypatch.setattr(client.app.state.user_store, "delete_user", self._disk_error)
        resp = client.delete(f"/api/v1/users/{account['id']}")
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "internal_error"
        assert "disk I/O error" not in resp.text


def test_concurrent_duplicate_registration_has_one_winner(tmp_path) -> None:
    """Two simultaneous registrations for one email: exactly one 201, the other email_exists."""
    settings = make_settings("unused", database_url=f"sqlite:///{tmp_path / 'race.db'}")
    body = {"email": unique_email(), "password": "secret", "inviteCode": "INV"}
    barrier = threading.Barrier(2)

    with TestClient(build_app(settings), follow_redirects=False) as client:

        def attempt(_):
            barrier.wait()
            return client.post("/api/auth/register", json=body)

        with ThreadPoolExecutor(max_workers=2) as pool:
            responses = list(pool.map(attempt, range(2)))

    assert sorted(r.status_code for r in responses) == [201, 400]
    conflict = next(r for r in responses if r.status_code == 400)
    assert conflict.json()["error"]["code"] == "email_exists"


class TestGateOnApiPaths:
    def test_public_api_paths_are_not_redirected(self, client: TestClient) -> None:
        assert client.get("/api/auth/session").status_code == 200
        assert client.post("/api/auth/logout").status_code == 200

    def test_other_api_paths_require_a_session(self, client: TestClient) -> None:
        resp = client.get("/api/v1/reports")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?next=/api/v1/reports"

    def test_other_api_paths_pass_with_a_session(self, client: TestClient, account: dict) -> None:
        _login(client, account)
        assert client.get("/api/v1/reports").status_code == 404


def test_login_is_rate_limited() -> None:
    """POST /api/auth/login allows 10 attempts per minute per client address."""
    settings = make_settings("test_keyhole_rate_limit", rate_limit_enabled=True)
    limiter.reset()
    try:
        with TestClient(build_app(settings), follow_redirects=False) as client:
            statuses = [
                client.post("/api/auth/login", json={"email": "x@example.com", "password": "nope"}).status_code
                for _ in range(12)
            ]
    finally:
        limiter.reset()
        limiter.enabled = False

    assert statuses[0] == 401
    assert 429 in statuses
