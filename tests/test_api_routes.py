"""
tests/test_api_routes.py -- Integration tests for the auth REST endpoints.

These tests exercise the full stack: FastAPI routing -> dependency injection
-> AuthService -> CredentialStore -> response serialization.

Fixtures used (from conftest.py):
  - api_client: (client, notifier) -- TestClient over an isolated shared-memory
    store; notifier is a MagicMock that records the tokens it was asked to send.

Every test uses its own email address because the module-scoped store is
shared across the tests in this file.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

_PREFIX = "/api/v1/auth"


def _register(client: TestClient, email: str, password: str = "pw123456"):
    return client.post(f"{_PREFIX}/register", json={"email": email, "password": password})


def _last_verification_token(notifier: MagicMock) -> str:
    return notifier.send_verification_email.call_args.args[1]


def _last_reset_token(notifier: MagicMock) -> str:
    return notifier.send_password_reset_email.call_args.args[1]


class TestRegisterRoute:
    def test_register_returns_201_with_unverified_user(self, api_client):
        client, _ = api_client
        resp = _register(client, "New.User@Example.com")
        assert resp.status_code == 201
        data = resp.json()
        assert data["success"] is True
        assert data["user"]["email"] == "new.user@example.com"
        assert data["user"]["email_verified"] is False
        assert "password_hash" not in data["user"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_duplicate_register_returns_409(self, api_client):
        client, _ = api_client
        _register(client, "dup@example.com")
        resp = _register(client, "DUP@example.com")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_EMAIL"

    def test_invalid_body_returns_422_without_echoing_password(self, api_client):
        client, _ = api_client
        resp = client.post(f"{_PREFIX}/register", json={"email": "no-at-sign", "password": "secret-value"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert "secret-value" not in resp.text


class TestLoginRoute:
    def test_login_success(self, api_client):
        client, _ = api_client
        _register(client, "login@example.com", "right-password")
        resp = client.post(f"{_PREFIX}/login", json={"email": "login@example.com", "password": "right-password"})
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == "login@example.com"

    def test_wrong_password_and_unknown_email_look_the_same(self, api_client):
        client, _ = api_client
        _register(client, "enum@example.com", "right-password")
        wrong = client.post(f"{_PREFIX}/login", json={"email": "enum@example.com", "password": "wrong"})
        unknown = client.post(f"{_PREFIX}/login", json={"email": "ghost@example.com", "password": "wrong"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"


class TestVerifyEmailRoute:
    def test_verify_then_reuse(self, api_client):
        client, notifier = api_client
        _register(client, "verify@example.com", "pw-verify")
        token = _last_verification_token(notifier)

        first = client.post(f"{_PREFIX}/verify-email", json={"token": token})
        assert first.status_code == 200

        second = client.post(f"{_PREFIX}/verify-email", json={"token": token})
        assert second.status_code == 400
        assert second.json()["error"]["code"] == "INVALID_TOKEN"

        login = client.post(f"{_PREFIX}/login", json={"email": "verify@example.com", "password": "pw-verify"})
        assert login.json()["user"]["email_verified"] is True


class TestPasswordResetRoutes:
    def test_forgot_password_is_identical_for_unknown_email(self, api_client):
        client, _ = api_client
        _register(client, "forgot@example.com")
        known = client.post(f"{_PREFIX}/forgot-password", json={"email": "forgot@example.com"})
        unknown = client.post(f"{_PREFIX}/forgot-password", json={"email": "nobody@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    def test_full_reset_flow(self, api_client):
        client, notifier = api_client
        _register(client, "reset@example.com", "old-password")
        client.post(f"{_PREFIX}/forgot-password", json={"email": "reset@example.com"})
        token = _last_reset_token(notifier)

        resp = client.post(f"{_PREFIX}/reset-password", json={"token": token, "password": "new-password"})
        assert resp.status_code == 200

        again = client.post(f"{_PREFIX}/reset-password", json={"token": token, "password": "other"})
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "INVALID_TOKEN"

        old = client.post(f"{_PREFIX}/login", json={"email": "reset@example.com", "password": "old-password"})
        new = client.post(f"{_PREFIX}/login", json={"email": "reset@example.com", "password": "new-password"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_unknown_reset_token_returns_400(self, api_client):
        client, _ = api_client
        resp = client.post(f"{_PREFIX}/reset-password", json={"token": "0" * 64, "password": "whatever"})
        assert resp.status_code == 400


class TestRoutingErrors:
    def test_unknown_path_uses_error_envelope(self, api_client):
        client, _ = api_client
        resp = client.get("/api/v1/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": {"code": "http_404", "message": "Not Found", "detail": None}}

    def test_wrong_method_uses_error_envelope(self, api_client):
        client, _ = api_client
        resp = client.get(f"{_PREFIX}/login")
        assert resp.status_code == 405
        assert resp.json()["error"]["code"] == "http_405"
        assert "POST" in resp.headers["allow"]
