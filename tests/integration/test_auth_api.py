"""
Integration tests for the authentication API.

Tests cover:
- Login with valid and invalid credentials
- Request validation as RFC 7807 problems
- Token refresh, logout and current user
- Bad and missing bearer tokens
- Login throttling with Retry-After
- CSRF token issue
- Login statistics for administrators
"""

import pytest

from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD, USER_PASSWORD

pytestmark = pytest.mark.integration


# ============================================================================
# LOGIN
# ============================================================================


class TestLogin:
    """Tests for POST /api/auth/login."""

    def test_login_success(self, client):
        """Test the seeded admin can log in."""
        response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["token"].count(".") == 2
        assert body["data"]["user"]["email"] == ADMIN_EMAIL
        assert body["data"]["user"]["role"] == "admin"
        assert 0 < body["data"]["expires_in"] <= 3600

    def test_email_is_normalized(self, client, regular_user):
        """Test surrounding spaces and case are ignored."""
        response = client.post("/api/auth/login", json={"email": "  USER@Example.com ", "password": USER_PASSWORD})

        assert response.status_code == 200

    def test_wrong_password(self, client, regular_user):
        """Test bad credentials are a 401 problem."""
        response = client.post("/api/auth/login", json={"email": regular_user.email, "password": "WrongPass1"})

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.headers["WWW-Authenticate"] == "Bearer"
        problem = response.json()
        assert problem["status"] == 401
        assert problem["detail"] == "Invalid email or password"
        assert problem["instance"] == "/api/auth/login"

    def test_unknown_email(self, client):
        """Test unknown users get the same answer as wrong passwords."""
        response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "Whatever1"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_inactive_user(self, client, make_user):
        """Test inactive accounts cannot log in."""
        make_user("sleepy@example.com", status="inactive")

        response = client.post("/api/auth/login", json={"email": "sleepy@example.com", "password": USER_PASSWORD})

        assert response.status_code == 401

    def test_invalid_email_format(self, client):
        """Test malformed input is a 422 with field errors."""
        response = client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})

        assert response.status_code == 422
        problem = response.json()
        assert problem["title"] == "Unprocessable Entity"
        assert "email" in problem["validation_errors"]

    def test_missing_fields(self, client):
        """Test missing fields are reported."""
        response = client.post("/api/auth/login", json={})

        assert response.status_code == 422
        assert set(response.json()["validation_errors"]) >= {"email", "password"}


# ============================================================================
# THROTTLING
# ============================================================================


class TestLoginThrottling:
    """Tests for repeated failed logins."""

    def test_lockout_after_repeated_failures(self, client, settings, regular_user):
        """Test the limit blocks even correct passwords with Retry-After."""
        for _ in range(settings.throttle_user_max_attempts):
            response = client.post("/api/auth/login", json={"email": regular_user.email, "password": "WrongPass1"})
            assert response.status_code == 401

        response = client.post("/api/auth/login", json={"email": regular_user.email, "password": USER_PASSWORD})

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0
        assert response.json()["status"] == 429

    def test_throttling_disabled(self, tmp_path):
        """Test no lockout when throttling is off."""
        from fastapi.testclient import TestClient

        from hdm_boot.main import create_app
        from tests.conftest import build_settings

        app = create_app(build_settings(tmp_path, throttling_enabled=False))
        with TestClient(app) as client:
            for _ in range(7):
                response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "WrongPass1"})
                assert response.status_code == 401

            response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

        assert response.status_code == 200


# ============================================================================
# TOKENS
# ============================================================================


class TestTokens:
    """Tests for token use, refresh and logout."""

    def test_me(self, client, user_headers, regular_user):
        """Test the current user and token details."""
        response = client.get("/api/auth/me", headers=user_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["id"] == regular_user.id
        assert "password_hash" not in data["user"]
        assert data["token_info"]["is_expired"] is False

    def test_me_without_token(self, client):
        """Test a missing token is a 401 with a Bearer challenge."""
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_me_with_garbage_token(self, client):
        """Test an unparseable token is rejected."""
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 401

    def test_token_signed_with_other_secret(self, client, regular_user):
        """Test tokens from another key are rejected."""
        from hdm_boot.services.jwt_service import JwtService

        forged = JwtService(secret="x" * 40).generate_token(regular_user)

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged.token}"})

        assert response.status_code == 401

    def test_token_of_deactivated_user(self, client, app, user_headers, regular_user):
        """Test tokens stop working when the account is deactivated."""
        from hdm_boot.repositories.user_repo import UserRepository
        from hdm_boot.services.user_service import UserService

        with app.state.database.session() as db:
            UserService(UserRepository(db), app.state.password_hasher).update_user(
                regular_user.id, {"status": "inactive"}
            )

        response = client.get("/api/auth/me", headers=user_headers)

        assert response.status_code == 401

    def test_refresh(self, client, user_headers):
        """Test a valid token is exchanged for a new one."""
        response = client.post("/api/auth/refresh", headers=user_headers)

        assert response.status_code == 200
        new_token = response.json()["data"]["token"]
        assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {new_token}"}).status_code == 200

    def test_refresh_without_token(self, client):
        """Test refresh needs a token."""
        response = client.post("/api/auth/refresh")

        assert response.status_code == 401

    def test_logout(self, client, user_headers):
        """Test logout succeeds for an authenticated user."""
        response = client.post("/api/auth/logout", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Logout successful"


# ============================================================================
# CSRF & ADMIN
# ============================================================================


class TestCsrfAndAdmin:
    """Tests for CSRF token issue and security statistics."""

    def test_csrf_token(self, client):
        """Test a token is issued for the requested action."""
        response = client.get("/api/csrf-token", params={"action": "profile"})

        assert response.status_code == 200
        body = response.json()
        assert body["action"] == "profile"
        assert len(body["csrf_token"]) == 64

    def test_statistics_for_admin(self, client, admin_headers, regular_user):
        """Test administrators see login statistics."""
        client.post("/api/auth/login", json={"email": regular_user.email, "password": "WrongPass1"})

        response = client.get("/api/admin/security/statistics", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["recent_failed_attempts"] == 1
        assert data["recent_successful_attempts"] >= 1

    def test_statistics_forbidden_for_users(self, client, user_headers):
        """Test regular users are refused with 403."""
        response = client.get("/api/admin/security/statistics", headers=user_headers)

        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions. Required: admin.security"
