"""
Auth API tests — registration gate, login, /me and token handling.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

PASSWORD = "secret-pass"

BASE = "/api/v1/auth"


def _register(client, **fields):
    payload = {"name": "Ada", "email": "ada@acme.com", "password": "secret", "role": "client"}
    payload.update(fields)
    return client.post(f"{BASE}/register", json=payload)


def _provider_token(app, **claims):
    now = datetime.now(timezone.utc)
    payload = {"iss": "https://idp.acme.com/auth/v1", "iat": now, "exp": now + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, app.config["SECRET_KEY"], algorithm="HS256")


# ═════════════════════════════════════════════════════════════════════════
# Registration
# ═════════════════════════════════════════════════════════════════════════

class TestRegister:
    def test_new_account_waits_for_approval(self, client):
        res = _register(client)
        assert res.status_code == 201
        data = res.get_json()
        assert data["user"]["status"] == "pending"
        assert data["message"] == "Account created and waiting for super user approval."
        assert "password_hash" not in data["user"]

    def test_bootstrap_address_becomes_super_user(self, client):
        res = _register(client, email="root@acme.com")
        data = res.get_json()
        assert data["user"]["role"] == "super_user"
        assert data["user"]["status"] == "approved"
        assert data["message"] == "Account created."

    def test_duplicate_email(self, client):
        _register(client)
        res = _register(client, email="ADA@acme.com")
        assert res.status_code == 409
        assert res.get_json()["error"] == "This email is already registered."

    def test_super_user_role_not_requestable(self, client):
        res = _register(client, role="super_user")
        assert res.status_code == 422

    def test_pending_account_cannot_log_in(self, client):
        _register(client)
        res = client.post(f"{BASE}/login", json={"email": "ada@acme.com", "password": "secret"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_AUTH_NOT_APPROVED"
        assert res.get_json()["error"] == "Account is pending approval."


# ═════════════════════════════════════════════════════════════════════════
# Login
# ═════════════════════════════════════════════════════════════════════════

class TestLogin:
    def test_success(self, client, admin):
        res = client.post(f"{BASE}/login", json={"email": "PM@acme.com", "password": PASSWORD})
        assert res.status_code == 200
        data = res.get_json()
        assert data["token_type"] == "Bearer"
        assert data["user"]["id"] == admin.id

        me = client.get(f"{BASE}/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.get_json()["user"]["email"] == "pm@acme.com"

    def test_wrong_password(self, client, admin):
        res = client.post(f"{BASE}/login", json={"email": "pm@acme.com", "password": "wrong"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid email or password."

    @pytest.mark.parametrize("body", [{}, {"email": "pm@acme.com"}, {"password": PASSWORD}])
    def test_missing_fields(self, client, body):
        res = client.post(f"{BASE}/login", json=body)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


# ═════════════════════════════════════════════════════════════════════════
# Tokens
# ═════════════════════════════════════════════════════════════════════════

class TestTokens:
    def test_me_requires_token(self, client):
        assert client.get(f"{BASE}/me").status_code == 401

    def test_expired_token(self, client, app, admin):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": admin.id, "iss": "change-request-tracker", "type": "access",
             "iat": past, "exp": past + timedelta(hours=1)},
            app.config["SECRET_KEY"], algorithm="HS256",
        )
        res = client.get(f"{BASE}/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Token has expired"

    def test_token_of_deleted_user(self, client, admin, super_user, auth_headers):
        headers = auth_headers(admin)
        client.delete(f"/api/v1/users/{admin.id}", headers=auth_headers(super_user))
        res = client.get(f"{BASE}/me", headers=headers)
        assert res.status_code == 401
        assert res.get_json()["error"] == "Account is not approved or no longer exists"

    def test_provider_token_waits_for_approval(self, client, app, super_user, auth_headers):
        token = _provider_token(
            app, sub="ext-42", email="Eve@Acme.com",
            user_metadata={"role": "super_user", "name": "Eve"},
        )
        headers = {"Authorization": f"Bearer {token}"}
        res = client.get(f"{BASE}/me", headers=headers)
        assert res.status_code == 401
        assert res.get_json()["error"] == "Account is not approved or no longer exists"

        listing = client.get("/api/v1/users", headers=auth_headers(super_user)).get_json()
        pending = {u["id"]: u for u in listing["pending"]}
        assert pending["ext-42"]["role"] == "client"

        res = client.post("/api/v1/users/ext-42/approve", headers=auth_headers(super_user))
        assert res.status_code == 200
        me = client.get(f"{BASE}/me", headers=headers)
        assert me.status_code == 200
        assert me.get_json()["user"]["role"] == "client"

    def test_refresh_style_token_rejected(self, client, app, admin):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": admin.id, "iss": "change-request-tracker", "type": "refresh",
             "iat": now, "exp": now + timedelta(minutes=5)},
            app.config["SECRET_KEY"], algorithm="HS256",
        )
        res = client.get(f"{BASE}/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid token"
