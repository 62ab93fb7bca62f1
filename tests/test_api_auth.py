"""
tests/test_api_auth.py -- Integration tests for /auth routes and the two gates.

These run the full stack: SessionMiddleware -> routing -> authenticate /
Authorize dependencies -> AuthService / UserService -> error envelope.

Coverage:
  - register: 201, duplicate 409, invalid body 400, unknown role 400
  - login: 200 + signed cookie, uniform 401 for unknown email and wrong password,
    400 on malformed email, 401 for a deactivated user, 429 past the rate limit
  - session: /auth/me with and without cookie, tampered cookie, token rotation
  - logout: 200 with and without a session, session unusable afterwards
  - authorization: CUSTOMER gets 403 on management routes
  - every failure uses the {success, message, timestamp} envelope
  - a session-store outage is a 500, never a 401
  - email and password are stored and matched exactly as sent
"""

from __future__ import annotations

import uuid
from unittest.mock import patch

import redis
from fastapi.testclient import TestClient

from tests.conftest import ACCOUNT_ID, ROOT_EMAIL, ROOT_PASSWORD, login

COOKIE = "connect.sid"


def _register(client: TestClient, email: str, password: str = "longenough1", role: str = "CUSTOMER", **extra):
    body = {"account_id": ACCOUNT_ID, "email": email, "password": password, "role": role, **extra}
    return client.post("/auth/register", json=body)


def _assert_envelope(resp, status: int) -> dict:
    assert resp.status_code == status, f"Expected {status}, got {resp.status_code}: {resp.text}"
    data = resp.json()
    assert data["success"] is False
    assert isinstance(data["message"], str) and data["message"]
    assert isinstance(data["timestamp"], str) and data["timestamp"]
    return data


# ---------------------------------------------------------------------------
# End-to-end flow
# ---------------------------------------------------------------------------


def test_register_login_forbidden_logout_flow(client: TestClient) -> None:
    """Register -> duplicate -> login -> 403 on /users -> logout -> 401 on /auth/me."""
    resp = _register(client, "a@x.com")
    assert resp.status_code == 201, resp.text
    created = resp.json()
    assert created["email"] == "a@x.com"
    assert created["role"] == "CUSTOMER"
    assert "password" not in created and "password_hash" not in created

    _assert_envelope(_register(client, "a@x.com"), 409)

    resp = client.post("/auth/login", json={"email": "a@x.com", "password": "longenough1"})
    assert resp.status_code == 200, resp.text
    assert COOKIE in resp.cookies
    assert resp.headers["cache-control"] == "no-store"
    body = resp.json()
    assert body["success"] is True
    assert body["user"]["email"] == "a@x.com"
    assert body["user"]["role"] == "CUSTOMER"
    assert "password_hash" not in body["user"]

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["id"] == created["id"]

    _assert_envelope(client.get("/users"), 403)

    resp = client.delete("/auth/logout")
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    _assert_envelope(client.get("/auth/me"), 401)


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


class TestRegister:
    def test_short_password_is_400(self, client: TestClient) -> None:
        _assert_envelope(_register(client, "short@x.com", password="short"), 400)

    def test_bad_email_is_400(self, client: TestClient) -> None:
        data = _assert_envelope(_register(client, "not-an-email"), 400)
        assert "email" in data["message"]

    def test_unknown_role_is_400(self, client: TestClient) -> None:
        data = _assert_envelope(_register(client, "wizard@x.com", role="WIZARD"), 400)
        assert "WIZARD" in data["message"]

    def test_missing_account_id_is_400(self, client: TestClient) -> None:
        resp = client.post("/auth/register", json={"email": "noacc@x.com", "password": "longenough1", "role": "COOK"})
        _assert_envelope(resp, 400)

    def test_optional_fields_round_trip(self, client: TestClient) -> None:
        branch = str(uuid.uuid4())
        resp = _register(client, "full@x.com", role="WAITER", name="Wendy", branch_id=branch)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["name"] == "Wendy"
        assert data["branch_id"] == branch
        assert data["status"] == "ACTIVE"


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_unknown_email_and_wrong_password_look_identical(self, client: TestClient) -> None:
        _register(client, "known@x.com")
        unknown = _assert_envelope(client.post("/auth/login", json={"email": "ghost@x.com", "password": "x"}), 401)
        wrong = _assert_envelope(client.post("/auth/login", json={"email": "known@x.com", "password": "nope"}), 401)
        assert unknown["message"] == wrong["message"] == "Invalid credentials"

    def test_failed_login_sets_no_cookie(self, client: TestClient) -> None:
        resp = client.post("/auth/login", json={"email": "ghost@x.com", "password": "whatever"})
        assert resp.status_code == 401
        assert COOKIE not in resp.cookies

    def test_malformed_email_is_400(self, client: TestClient) -> None:
        data = _assert_envelope(client.post("/auth/login", json={"email": "nope", "password": "x"}), 400)
        assert data["message"].startswith("email")

    def test_empty_password_is_400(self, client: TestClient) -> None:
        data = _assert_envelope(client.post("/auth/login", json={"email": "a@x.com", "password": ""}), 400)
        assert data["message"].startswith("password")

    def test_missing_body_field_is_400(self, client: TestClient) -> None:
        _assert_envelope(client.post("/auth/login", json={"email": "a@x.com"}), 400)

    def test_deactivated_user_cannot_log_in(self, client: TestClient) -> None:
        victim = _register(client, "deact@x.com").json()
        login(client, ROOT_EMAIL, ROOT_PASSWORD)
        assert client.post(f"/users/{victim['id']}/deactivate").status_code == 200
        client.cookies.clear()

        data = _assert_envelope(client.post("/auth/login", json={"email": "deact@x.com", "password": "longenough1"}), 401)
        assert data["message"] == "User is not active"

    def test_login_rotates_session_token(self, client: TestClient) -> None:
        _register(client, "rotate@x.com")
        first = client.post("/auth/login", json={"email": "rotate@x.com", "password": "longenough1"})
        old_cookie = first.cookies[COOKIE]
        second = client.post("/auth/login", json={"email": "rotate@x.com", "password": "longenough1"})
        assert second.cookies[COOKIE] != old_cookie

        client.cookies.clear()
        client.cookies.set(COOKIE, old_cookie)
        _assert_envelope(client.get("/auth/me"), 401)

    def test_rate_limit_returns_429(self, client: TestClient) -> None:
        payload = {"email": "ghost@x.com", "password": "whatever"}
        statuses = [client.post("/auth/login", json=payload).status_code for _ in range(11)]
        assert statuses[:10] == [401] * 10
        resp = client.post("/auth/login", json=payload)
        _assert_envelope(resp, 429)
        assert "retry-after" in resp.headers


# ---------------------------------------------------------------------------
# Session cookie
# ---------------------------------------------------------------------------


class TestSessionCookie:
    def test_me_without_cookie_is_401(self, client: TestClient) -> None:
        data = _assert_envelope(client.get("/auth/me"), 401)
        assert data["message"] == "Authentication required"

    def test_tampered_cookie_is_401(self, client: TestClient) -> None:
        _register(client, "tamper@x.com")
        login(client, "tamper@x.com", "longenough1")
        signed = client.cookies[COOKIE]
        client.cookies.clear()
        client.cookies.set(COOKIE, signed[:-2] + ("AA" if not signed.endswith("AA") else "BB"))
        _assert_envelope(client.get("/auth/me"), 401)

    def test_cookie_is_httponly(self, client: TestClient) -> None:
        _register(client, "flags@x.com")
        resp = client.post("/auth/login", json={"email": "flags@x.com", "password": "longenough1"})
        header = resp.headers["set-cookie"].lower()
        assert "httponly" in header
        assert "samesite=lax" in header


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


class TestLogout:
    def test_logout_without_session_is_200(self, client: TestClient) -> None:
        resp = client.delete("/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_logout_twice_is_200(self, client: TestClient) -> None:
        _register(client, "twice@x.com")
        login(client, "twice@x.com", "longenough1")
        assert client.delete("/auth/logout").status_code == 200
        assert client.delete("/auth/logout").status_code == 200

    def test_old_cookie_unusable_after_logout(self, client: TestClient) -> None:
        _register(client, "replay@x.com")
        login(client, "replay@x.com", "longenough1")
        cookie = client.cookies[COOKIE]
        client.delete("/auth/logout")

        client.cookies.clear()
        client.cookies.set(COOKIE, cookie)
        _assert_envelope(client.get("/auth/me"), 401)


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


def test_unknown_path_uses_envelope(client: TestClient) -> None:
    _assert_envelope(client.get("/no/such/route"), 404)


def test_session_store_outage_is_500_not_401(client: TestClient) -> None:
    """A Redis failure while resolving the session must not look like "logged out"."""
    _register(client, "outage@x.com")
    login(client, "outage@x.com", "longenough1")

    redis_client = client.app.state.session_store._redis
    with patch.object(redis_client, "get", side_effect=redis.ConnectionError("down")):
        resp = client.get("/auth/me")

    data = _assert_envelope(resp, 500)
    assert data["message"] == "Internal server error"


# ---------------------------------------------------------------------------
# Credentials are stored exactly as sent
# ---------------------------------------------------------------------------


def test_padded_password_logs_in_as_registered(client: TestClient) -> None:
    assert _register(client, "pad@x.com", password="  longenough1  ").status_code == 201

    resp = client.post("/auth/login", json={"email": "pad@x.com", "password": "  longenough1  "})
    assert resp.status_code == 200, resp.text

    client.cookies.clear()
    trimmed = client.post("/auth/login", json={"email": "pad@x.com", "password": "longenough1"})
    _assert_envelope(trimmed, 401)


def test_mixed_case_email_is_stored_and_matched_as_sent(client: TestClient) -> None:
    resp = _register(client, "Mixed@Example.COM")
    assert resp.status_code == 201, resp.text
    assert resp.json()["email"] == "Mixed@Example.COM"

    logged_in = login(client, "Mixed@Example.COM", "longenough1")
    assert logged_in["email"] == "Mixed@Example.COM"

    client.cookies.clear()
    other_case = client.post("/auth/login", json={"email": "mixed@example.com", "password": "longenough1"})
    _assert_envelope(other_case, 401)
