"""
tests/integration/test_auth.py — Registration, login, token refresh and logout.

Endpoints covered:
  POST /auth/register  → 201
  POST /auth/login     → 200  (username or email)
  POST /auth/refresh   → 200
  POST /auth/logout    → 200
  POST /auth/change-password → 200
  GET  /auth/me        → 200

Middleware failures are 401; group permission failures (403) live in the
group and expense test modules.
"""

from __future__ import annotations

from .conftest import auth_headers, login, register


def _register_payload(**overrides) -> dict:
    payload = {
        "username": "alice",
        "email": "alice@test.com",
        "full_name": "Alice Liddell",
        "password": "Password1",
    }
    payload.update(overrides)
    return payload


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/register
# ═══════════════════════════════════════════════════════════════════════════

class TestRegister:

    def test_register_returns_201_with_tokens_and_profile(self, client):
        resp = client.post("/api/v1/auth/register", json=_register_payload())
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert "access_token" in data
        assert "refresh_token" in data
        assert data["user"]["username"] == "alice"
        assert data["user"]["full_name"] == "Alice Liddell"
        assert isinstance(data["user"]["id"], int)
        assert "password_hash" not in data["user"]

    def test_full_name_is_trimmed(self, client):
        resp = client.post(
            "/api/v1/auth/register",
            json=_register_payload(full_name="  Alice Liddell  "),
        )
        assert resp.get_json()["data"]["user"]["full_name"] == "Alice Liddell"

    def test_duplicate_email_returns_409(self, client):
        client.post("/api/v1/auth/register", json=_register_payload())
        resp = client.post(
            "/api/v1/auth/register",
            json=_register_payload(username="alice2"),
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "DUPLICATE_EMAIL"
        assert resp.get_json()["error"]["field"] == "email"

    def test_duplicate_username_returns_409(self, client):
        client.post("/api/v1/auth/register", json=_register_payload())
        resp = client.post(
            "/api/v1/auth/register",
            json=_register_payload(email="other@test.com"),
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "DUPLICATE_USERNAME"

    def test_missing_full_name_returns_400_missing_field(self, client):
        payload = _register_payload()
        del payload["full_name"]
        resp = client.post("/api/v1/auth/register", json=payload)
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "MISSING_FIELD"
        assert error["field"] == "full_name"

    def test_blank_full_name_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json=_register_payload(full_name="   "))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"

    def test_weak_password_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json=_register_payload(password="password"))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "password"

    def test_username_with_symbols_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json=_register_payload(username="al ice!"))
        assert resp.status_code == 400

    def test_empty_body_returns_400_missing_field(self, client):
        resp = client.post("/api/v1/auth/register", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_with_username(self, client):
        register(client, "alice")
        resp = client.post("/api/v1/auth/login", json={
            "username": "alice", "password": "Password1",
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["user"]["username"] == "alice"
        assert "access_token" in data

    def test_login_with_email(self, client):
        register(client, "alice")
        resp = client.post("/api/v1/auth/login", json={
            "username": "alice@test.com", "password": "Password1",
        })
        assert resp.status_code == 200
        assert resp.get_json()["data"]["user"]["username"] == "alice"

    def test_wrong_password_returns_401(self, client):
        register(client, "alice")
        resp = client.post("/api/v1/auth/login", json={
            "username": "alice", "password": "WrongPass1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_unknown_user_gets_the_same_error(self, client):
        resp = client.post("/api/v1/auth/login", json={
            "username": "ghost", "password": "Password1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/refresh and /auth/logout
# ═══════════════════════════════════════════════════════════════════════════

class TestRefreshAndLogout:

    def test_refresh_issues_a_new_access_token(self, client):
        data = register(client, "alice")
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]})
        assert resp.status_code == 200
        new_token = resp.get_json()["data"]["access_token"]
        assert new_token != data["access_token"]

        me = client.get("/api/v1/auth/me", headers=auth_headers(new_token))
        assert me.status_code == 200

    def test_unknown_refresh_token_returns_401(self, client):
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "nope"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_logout_revokes_the_refresh_token(self, client):
        data = register(client, "alice")
        headers = auth_headers(data["access_token"])
        payload = {"refresh_token": data["refresh_token"]}

        resp = client.post("/api/v1/auth/logout", json=payload, headers=headers)
        assert resp.status_code == 200

        resp = client.post("/api/v1/auth/refresh", json=payload)
        assert resp.status_code == 401

        resp = client.post("/api/v1/auth/logout", json=payload, headers=headers)
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_logout_requires_auth(self, client):
        resp = client.post("/api/v1/auth/logout", json={"refresh_token": "anything"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"


# ═══════════════════════════════════════════════════════════════════════════
# GET /auth/me and the auth middleware
# ═══════════════════════════════════════════════════════════════════════════

class TestMe:

    def test_me_returns_own_profile_with_email(self, client):
        data = register(client, "alice")
        resp = client.get("/api/v1/auth/me", headers=auth_headers(data["access_token"]))
        assert resp.status_code == 200
        user = resp.get_json()["data"]
        assert user["email"] == "alice@test.com"
        assert user["full_name"] == "Alice"

    def test_missing_token_returns_401(self, client):
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_garbage_token_returns_401_token_invalid(self, client):
        resp = client.get("/api/v1/auth/me", headers=auth_headers("bad.token.here"))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_non_bearer_scheme_returns_401(self, client):
        resp = client.get("/api/v1/auth/me", headers={"Authorization": "Basic xyz"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/change-password
# ═══════════════════════════════════════════════════════════════════════════

def _change_password(client, token: str, **overrides):
    payload = {
        "old_password": "Password1",
        "new_password": "NewPassword2",
        "confirm_password": "NewPassword2",
    }
    payload.update(overrides)
    return client.post(
        "/api/v1/auth/change-password",
        json=payload,
        headers=auth_headers(token),
    )


class TestChangePassword:

    def test_new_password_replaces_the_old_one(self, client):
        alice = register(client, "alice")

        resp = _change_password(client, alice["access_token"])
        assert resp.status_code == 200

        old = client.post("/api/v1/auth/login", json={"username": "alice", "password": "Password1"})
        assert old.status_code == 401
        assert login(client, "alice", password="NewPassword2")["user"]["username"] == "alice"

    def test_every_refresh_token_is_revoked(self, client):
        alice = register(client, "alice")
        other_device = login(client, "alice")

        resp = _change_password(client, alice["access_token"])
        assert resp.get_json()["data"]["revoked_tokens"] == 2

        for token in (alice["refresh_token"], other_device["refresh_token"]):
            refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": token})
            assert refreshed.status_code == 401
            assert refreshed.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_wrong_old_password_returns_401(self, client):
        alice = register(client, "alice")
        resp = _change_password(client, alice["access_token"], old_password="Wrong1234")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

        # nothing changed
        assert login(client, "alice")["user"]["username"] == "alice"
        refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": alice["refresh_token"]})
        assert refreshed.status_code == 200

    def test_confirmation_must_match(self, client):
        alice = register(client, "alice")
        resp = _change_password(client, alice["access_token"], confirm_password="Different3")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "confirm_password"

    def test_new_password_must_differ(self, client):
        alice = register(client, "alice")
        resp = _change_password(
            client, alice["access_token"],
            new_password="Password1", confirm_password="Password1",
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "new_password"

    def test_weak_new_password_returns_400(self, client):
        alice = register(client, "alice")
        resp = _change_password(
            client, alice["access_token"],
            new_password="short", confirm_password="short",
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"

    def test_requires_a_token(self, client):
        resp = client.post("/api/v1/auth/change-password", json={})
        assert resp.status_code == 401


class TestEnvelope:

    def test_errors_use_the_error_envelope(self, client):
        resp = client.post("/api/v1/auth/login", json={"username": "x", "password": "y"})
        body = resp.get_json()
        assert set(body["error"]) >= {"code", "message"}
        assert "Traceback" not in str(body)

    def test_unknown_route_returns_json_404(self, client):
        resp = client.get("/api/v1/nowhere")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "HTTP_ERROR"
