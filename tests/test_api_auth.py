"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> token extraction ->
Authenticator/SessionManager -> UserStore -> error envelope rendering.

Coverage:
  - Register: 201 with user + token pair, cookies set, duplicate email 400
  - Login: generic invalid_credentials 401, deactivated account 401
  - Refresh: rotation via body, header and cookie; replay rejected
  - Logout / change-password: refresh token revoked, cookies cleared
  - Access token problems: missing, expired, forged, deleted user
  - Request validation: 422 envelope

Fixtures used (from conftest.py): api_client, make_user, login.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient


def _email(prefix: str = "reg") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


def _register(client: TestClient, email: str, password: str = "Secret123", role: str | None = None):
    body = {"email": email, "password": password, "first_name": "Alice", "last_name": "Smith"}
    if role is not None:
        body["role"] = role
    return client.post("/api/v1/auth/register", json=body)


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _set_cookies(resp) -> dict[str, str]:
    """Map cookie name -> full Set-Cookie header value."""
    return {h.split("=", 1)[0]: h for h in resp.headers.get_list("set-cookie")}


class TestRegister:
    def test_register_returns_user_and_tokens(self, api_client: TestClient) -> None:
        email = _email()
        resp = _register(api_client, email.upper())
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user"]["email"] == email
        assert data["user"]["role"] == "student"
        assert data["user"]["is_active"] is True
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0 and data["refresh_expires_in"] > data["expires_in"]
        assert "hashed_password" not in data["user"]
        assert "refresh_token" not in data["user"]
        assert resp.headers["cache-control"] == "no-store"

    def test_register_sets_hardened_cookies(self, api_client: TestClient) -> None:
        resp = _register(api_client, _email())
        cookies = _set_cookies(resp)
        assert set(cookies) >= {"access_token", "refresh_token"}
        for header in cookies.values():
            lowered = header.lower()
            assert "httponly" in lowered
            assert "samesite=strict" in lowered
            assert "secure" in lowered

    def test_register_instructor(self, api_client: TestClient) -> None:
        resp = _register(api_client, _email("inst"), role="instructor")
        assert resp.status_code == 201
        assert resp.json()["user"]["role"] == "instructor"

    def test_register_admin_not_allowed(self, api_client: TestClient) -> None:
        resp = _register(api_client, _email("adm"), role="admin")
        assert resp.status_code == 422

    def test_duplicate_email_any_case(self, api_client: TestClient) -> None:
        email = _email("dup")
        assert _register(api_client, email).status_code == 201
        resp = _register(api_client, email.upper())
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "email_exists"

    def test_weak_password_rejected(self, api_client: TestClient) -> None:
        resp = _register(api_client, _email(), password="alllowercase1")
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestLogin:
    def test_login_success(self, api_client: TestClient, make_user) -> None:
        user = make_user()
        resp = api_client.post("/api/v1/auth/login", json={"email": user.email, "password": "Secret123"})
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == user.id

    def test_unknown_email_and_wrong_password_identical(self, api_client: TestClient, make_user) -> None:
        user = make_user()
        unknown = api_client.post("/api/v1/auth/login", json={"email": _email("ghost"), "password": "Secret123"})
        wrong = api_client.post("/api/v1/auth/login", json={"email": user.email, "password": "Wrong1234"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["error"]["code"] == "invalid_credentials"
        assert unknown.headers["www-authenticate"] == "Bearer"

    def test_deactivated_account(self, api_client: TestClient, make_user) -> None:
        user = make_user()
        api_client.app.state.user_store.update_active_flag(user.id, False)
        resp = api_client.post("/api/v1/auth/login", json={"email": user.email, "password": "Secret123"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "account_deactivated"


class TestRefresh:
    def test_rotation_and_replay(self, api_client: TestClient, make_user, login) -> None:
        user = make_user()
        t1 = login(user.email)
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": t1["refresh_token"]})
        assert resp.status_code == 200, resp.text
        t2 = resp.json()
        assert t2["refresh_token"] != t1["refresh_token"]
        assert "refresh_token" in _set_cookies(resp)

        replay = api_client.post("/api/v1/auth/refresh", json={"refresh_token": t1["refresh_token"]})
        assert replay.status_code == 401
        assert replay.json()["error"]["code"] == "token_mismatch"

        again = api_client.post("/api/v1/auth/refresh", json={"refresh_token": t2["refresh_token"]})
        assert again.status_code == 200

    def test_refresh_via_cookie(self, api_client: TestClient, make_user, login) -> None:
        tokens = login(make_user().email)
        resp = api_client.post(
            "/api/v1/auth/refresh", headers={"Cookie": f"refresh_token={tokens['refresh_token']}"}
        )
        assert resp.status_code == 200, resp.text

    def test_refresh_cookie_wins_over_access_bearer_header(self, api_client: TestClient, make_user, login) -> None:
        tokens = login(make_user().email)
        headers = _auth(tokens["access_token"])
        headers["Cookie"] = f"refresh_token={tokens['refresh_token']}"
        resp = api_client.post("/api/v1/auth/refresh", headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["refresh_token"] != tokens["refresh_token"]

    def test_refresh_via_bearer_header(self, api_client: TestClient, make_user, login) -> None:
        tokens = login(make_user().email)
        resp = api_client.post("/api/v1/auth/refresh", headers=_auth(tokens["refresh_token"]))
        assert resp.status_code == 200, resp.text

    def test_refresh_without_token(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/refresh", json={})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_access_token_cannot_refresh(self, api_client: TestClient, make_user, login) -> None:
        tokens = login(make_user().email)
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_new_login_kills_previous_refresh_token(self, api_client: TestClient, make_user, login) -> None:
        user = make_user()
        first = login(user.email)
        login(user.email)
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "token_mismatch"


class TestMeAndAccessTokens:
    def test_me_with_bearer(self, api_client: TestClient, make_user, login) -> None:
        user = make_user(role="instructor")
        resp = api_client.get("/api/v1/auth/me", headers=_auth(login(user.email)["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["email"] == user.email
        assert resp.json()["role"] == "instructor"

    def test_me_with_cookie(self, api_client: TestClient, make_user, login) -> None:
        user = make_user()
        token = login(user.email)["access_token"]
        resp = api_client.get("/api/v1/auth/me", headers={"Cookie": f"access_token={token}"})
        assert resp.status_code == 200
        assert resp.json()["id"] == user.id

    def test_me_unauthenticated(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_expired_access_token(self, api_client: TestClient, make_user) -> None:
        user = make_user()
        issuer = api_client.app.state.issuer
        past = datetime.now(timezone.utc) - timedelta(seconds=issuer.access_ttl + 60)
        token = issuer.issue_token_pair(user.id, now=past).access_token
        resp = api_client.get("/api/v1/auth/me", headers=_auth(token))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "token_expired"

    def test_forged_access_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me", headers=_auth("eyJhbGciOiJIUzI1NiJ9.e30.forged"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_deleted_user_token(self, api_client: TestClient, make_user, login) -> None:
        user = make_user()
        token = login(user.email)["access_token"]
        api_client.app.state.user_store.delete_user(user.id)
        resp = api_client.get("/api/v1/auth/me", headers=_auth(token))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "user_gone"

    def test_deactivation_is_immediate(self, api_client: TestClient, make_user, login) -> None:
        user = make_user()
        token = login(user.email)["access_token"]
        api_client.app.state.user_store.update_active_flag(user.id, False)
        resp = api_client.get("/api/v1/auth/me", headers=_auth(token))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "account_deactivated"


class TestLogout:
    def test_logout_revokes_and_clears_cookies(self, api_client: TestClient, make_user, login) -> None:
        tokens = login(make_user().email)
        resp = api_client.post("/api/v1/auth/logout", headers=_auth(tokens["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logout successful."
        cookies = _set_cookies(resp)
        assert "max-age=0" in cookies["access_token"].lower()
        assert "max-age=0" in cookies["refresh_token"].lower()

        refresh = api_client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refresh.status_code == 401

    def test_logout_twice(self, api_client: TestClient, make_user, login) -> None:
        tokens = login(make_user().email)
        for _ in range(2):
            resp = api_client.post("/api/v1/auth/logout", headers=_auth(tokens["access_token"]))
            assert resp.status_code == 200

    def test_logout_requires_auth(self, api_client: TestClient) -> None:
        assert api_client.post("/api/v1/auth/logout").status_code == 401


class TestChangePassword:
    def _change(self, client: TestClient, token: str, current: str, new: str, confirm: str | None = None):
        return client.post(
            "/api/v1/auth/change-password",
            json={"current_password": current, "new_password": new, "confirm_password": confirm or new},
            headers=_auth(token),
        )

    def test_change_password_forces_relogin(self, api_client: TestClient, make_user, login) -> None:
        user = make_user()
        tokens = login(user.email)
        resp = self._change(api_client, tokens["access_token"], "Secret123", "Better456")
        assert resp.status_code == 200, resp.text
        assert "max-age=0" in _set_cookies(resp)["refresh_token"].lower()

        refresh = api_client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refresh.status_code == 401
        old = api_client.post("/api/v1/auth/login", json={"email": user.email, "password": "Secret123"})
        assert old.status_code == 401
        login(user.email, "Better456")

    def test_wrong_current_password(self, api_client: TestClient, make_user, login) -> None:
        tokens = login(make_user().email)
        resp = self._change(api_client, tokens["access_token"], "Wrong1234", "Better456")
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Current password is incorrect."

    def test_confirmation_mismatch(self, api_client: TestClient, make_user, login) -> None:
        tokens = login(make_user().email)
        resp = self._change(api_client, tokens["access_token"], "Secret123", "Better456", confirm="Better457")
        assert resp.status_code == 422
