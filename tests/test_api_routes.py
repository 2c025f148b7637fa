"""
tests/test_api_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> admin dependency
-> AuthService -> UserStore/RefreshTokenLedger -> response model
serialization and the error envelope. Unit tests of AuthService live in
test_service.py; here the point is status codes, bodies and headers.

Coverage:
  - POST /credentials: 201, 409 on duplicate email or id, 400 on bad input, 422 on bad shape
  - POST /login: 200 with no-store, identical 401 bodies for unknown email and wrong password
  - POST /refresh: 200 and reusable, 401 for access tokens and garbage
  - POST /validate: true only for access tokens
  - POST /logout: revoked refresh token can no longer refresh
  - POST /logout-all: 401 without access token, revokes all of the caller's refresh tokens
  - DELETE /users/{id}: 401 without token, 403 for non-admin, 200 for admin, 400 on malformed id

Fixtures used (from conftest.py):
  - api_client: (client, admin_access_token) -- TestClient over the real app
    with a patched lifespan and an isolated shared-memory database.
"""

from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

PASSWORD = "Passw0rdOK"


def _register(client: TestClient, email: str, user_id: str | None = None) -> str:
    user_id = user_id or str(uuid.uuid4())
    resp = client.post("/api/v1/auth/credentials", json={"id": user_id, "email": email, "password": PASSWORD})
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return user_id


def _login(client: TestClient, email: str) -> dict:
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
    return resp.json()


class TestCredentials:
    def test_register_returns_summary(self, api_client: tuple[TestClient, str]) -> None:
        """POST /credentials returns 201 with id, email and the default role; never the hash."""
        client, _ = api_client
        user_id = str(uuid.uuid4())
        resp = client.post(
            "/api/v1/auth/credentials",
            json={"id": user_id, "email": "reg@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["id"] == user_id
        assert data["email"] == "reg@example.com"
        assert data["role"] == "ROLE_USER"
        assert "password" not in data and "password_hash" not in data

    def test_duplicate_email_conflicts(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "dup-email@example.com")
        resp = client.post(
            "/api/v1/auth/credentials",
            json={"id": str(uuid.uuid4()), "email": "dup-email@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "already_exists"

    def test_duplicate_id_conflicts(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        user_id = _register(client, "dup-id-1@example.com")
        resp = client.post(
            "/api/v1/auth/credentials",
            json={"id": user_id, "email": "dup-id-2@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 409

    def test_weak_password_is_400(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/auth/credentials",
            json={"id": str(uuid.uuid4()), "email": "weak@example.com", "password": "password"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_bad_email_is_400(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/auth/credentials",
            json={"id": str(uuid.uuid4()), "email": "no-at-sign", "password": PASSWORD},
        )
        assert resp.status_code == 400

    def test_email_with_trailing_newline_is_400(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/auth/credentials",
            json={"id": str(uuid.uuid4()), "email": "newline@example.com\n", "password": PASSWORD},
        )
        assert resp.status_code == 400

    def test_missing_field_is_422(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/credentials", json={"email": "x@example.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestLogin:
    def test_login_returns_pair(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "login@example.com")
        resp = client.post("/api/v1/auth/login", json={"email": "login@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 60
        assert data["access_token"] and data["refresh_token"]

    def test_unknown_email_and_wrong_password_look_the_same(self, api_client: tuple[TestClient, str]) -> None:
        """Both failures return 401 with byte-identical bodies."""
        client, _ = api_client
        _register(client, "enum@example.com")
        unknown = client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
        wrong = client.post("/api/v1/auth/login", json={"email": "enum@example.com", "password": "Wr0ngPassword"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["error"]["code"] == "invalid_credentials"


class TestRefresh:
    def test_refresh_returns_new_pair_and_token_stays_usable(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "refresh@example.com")
        pair = _login(client, "refresh@example.com")

        first = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]})
        assert first.status_code == 200
        assert first.headers["Cache-Control"] == "no-store"
        assert first.json()["refresh_token"] != pair["refresh_token"]

        second = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]})
        assert second.status_code == 200

    def test_access_token_cannot_refresh(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "refresh-access@example.com")
        pair = _login(client, "refresh-access@example.com")
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["access_token"]})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_refresh_token"

    def test_garbage_is_401(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "not-a-token"})
        assert resp.status_code == 401


class TestValidate:
    def test_access_token_is_valid(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "validate@example.com")
        pair = _login(client, "validate@example.com")
        assert client.post("/api/v1/auth/validate", json={"token": pair["access_token"]}).json() == {"valid": True}

    def test_refresh_token_is_not_valid(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "validate-refresh@example.com")
        pair = _login(client, "validate-refresh@example.com")
        resp = client.post("/api/v1/auth/validate", json={"token": pair["refresh_token"]})
        assert resp.status_code == 200
        assert resp.json() == {"valid": False}

    def test_garbage_is_not_valid(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        assert client.post("/api/v1/auth/validate", json={"token": "x.y.z"}).json() == {"valid": False}


class TestLogout:
    def test_logout_revokes_refresh_token(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "logout@example.com")
        pair = _login(client, "logout@example.com")
        assert client.post("/api/v1/auth/logout", json={"refresh_token": pair["refresh_token"]}).status_code == 200
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]})
        assert resp.status_code == 401

    def test_logout_with_unknown_token_is_still_200(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        assert client.post("/api/v1/auth/logout", json={"refresh_token": "garbage"}).status_code == 200


class TestLogoutAll:
    def test_requires_access_token(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        assert client.post("/api/v1/auth/logout-all").status_code == 401

    def test_revokes_callers_refresh_tokens(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "logout-all@example.com")
        first = _login(client, "logout-all@example.com")
        second = _login(client, "logout-all@example.com")

        resp = client.post(
            "/api/v1/auth/logout-all",
            headers={"Authorization": f"Bearer {first['access_token']}"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"revoked": 2}
        for pair in (first, second):
            refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]})
            assert refreshed.status_code == 401


class TestDeleteUser:
    def test_requires_authentication(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        resp = client.delete(f"/api/v1/auth/users/{uuid.uuid4()}")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_refresh_token_does_not_authenticate(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "bearer-refresh@example.com")
        pair = _login(client, "bearer-refresh@example.com")
        resp = client.delete(
            f"/api/v1/auth/users/{uuid.uuid4()}",
            headers={"Authorization": f"Bearer {pair['refresh_token']}"},
        )
        assert resp.status_code == 401

    def test_non_admin_forbidden(self, api_client: tuple[TestClient, str]) -> None:
        client, _ = api_client
        _register(client, "plain@example.com")
        pair = _login(client, "plain@example.com")
        resp = client.delete(
            f"/api/v1/auth/users/{uuid.uuid4()}",
            headers={"Authorization": f"Bearer {pair['access_token']}"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_deletes_user_and_their_refresh_tokens(self, api_client: tuple[TestClient, str]) -> None:
        client, admin_token = api_client
        user_id = _register(client, "doomed@example.com")
        pair = _login(client, "doomed@example.com")
        headers = {"Authorization": f"Bearer {admin_token}"}

        resp = client.delete(f"/api/v1/auth/users/{user_id}", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True}

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]})
        assert resp.status_code == 401

        again = client.delete(f"/api/v1/auth/users/{user_id}", headers=headers)
        assert again.json() == {"deleted": False}

    def test_malformed_id_is_400(self, api_client: tuple[TestClient, str]) -> None:
        client, admin_token = api_client
        resp = client.delete("/api/v1/auth/users/not-a-uuid", headers={"Authorization": f"Bearer {admin_token}"})
        assert resp.status_code == 400
