"""
Unit tests for JWT token generation, validation, and management.

Tests cover:
- Token creation with user claims
- Token validation and expiration
- Token refresh
- Invalid token handling
- Bearer header extraction
- JwtToken value object
"""

import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from jose import jwt

from hdm_boot.exceptions import AuthenticationException
from hdm_boot.models.security import JwtToken
from hdm_boot.services.jwt_service import JwtService


SECRET = "test-secret-key-change-in-production-0123456789"


@pytest.fixture
def jwt_service() -> JwtService:
    return JwtService(secret=SECRET, expiry=3600)


@pytest.fixture
def user():
    return SimpleNamespace(
        id="user-123",
        email="jane@example.com",
        name="Jane Doe",
        role="editor",
        status="active",
        email_verified=True,
    )


def encode(payload, secret=SECRET):
    return jwt.encode(payload, secret, algorithm="HS256")


def base_claims(**overrides):
    now = int(time.time())
    claims = {
        "iss": "hdm-boot",
        "aud": "hdm-boot",
        "iat": now,
        "exp": now + 600,
        "user_id": "user-123",
        "email": "jane@example.com",
        "role": "user",
    }
    claims.update(overrides)
    return claims


# ============================================================================
# CONFIGURATION
# ============================================================================


class TestJwtServiceConfiguration:
    """Tests for JwtService construction."""

    def test_rejects_empty_secret(self):
        """Test an empty secret is refused."""
        with pytest.raises(ValueError, match="cannot be empty"):
            JwtService(secret="")

    def test_rejects_short_secret(self):
        """Test secrets under 32 characters are refused."""
        with pytest.raises(ValueError, match="at least 32"):
            JwtService(secret="short")

    def test_rejects_non_positive_expiry(self):
        """Test the expiry must be positive."""
        with pytest.raises(ValueError):
            JwtService(secret=SECRET, expiry=0)


# ============================================================================
# TOKEN CREATION
# ============================================================================


class TestJWTTokenCreation:
    """Tests for JWT token creation."""

    def test_generate_token_has_three_parts(self, jwt_service, user):
        """Test the token is a compact JWS."""
        token = jwt_service.generate_token(user)

        assert isinstance(token.token, str)
        assert token.token.count(".") == 2

    def test_generate_token_includes_user_claims(self, jwt_service, user):
        """Test identity claims are embedded."""
        token = jwt_service.generate_token(user)

        assert token.get_user_id() == "user-123"
        assert token.get_email() == "jane@example.com"
        assert token.get_role() == "editor"
        assert token.get("name") == "Jane Doe"
        assert token.get("email_verified") is True

    def test_generate_token_includes_registered_claims(self, jwt_service, user):
        """Test issuer, audience and timing claims."""
        payload = jwt_service.generate_token(user).payload

        assert payload["iss"] == "hdm-boot"
        assert payload["aud"] == "hdm-boot"
        assert payload["exp"] - payload["iat"] == 3600
        assert payload["jti"]

    def test_expires_at_matches_expiry(self, jwt_service, user):
        """Test expires_at is about expiry seconds away."""
        token = jwt_service.generate_token(user)
        expected = datetime.now(timezone.utc) + timedelta(seconds=3600)

        # Allow 5 second tolerance for test execution time
        assert abs((token.expires_at - expected).total_seconds()) < 5
        assert 3595 <= token.time_to_expiration() <= 3600

    def test_tokens_are_unique(self, jwt_service, user):
        """Test two tokens for the same user differ by jti."""
        first = jwt_service.generate_token(user)
        second = jwt_service.generate_token(user)

        assert first.token != second.token


# ============================================================================
# TOKEN VALIDATION
# ============================================================================


class TestJWTTokenValidation:
    """Tests for JWT token validation."""

    def test_validate_round_trip(self, jwt_service, user):
        """Test a freshly issued token validates."""
        issued = jwt_service.generate_token(user)

        validated = jwt_service.validate_token(issued.token)

        assert validated.get_user_id() == user.id
        assert not validated.is_expired()
        assert jwt_service.is_valid(issued.token)

    def test_expired_token_rejected(self, jwt_service):
        """Test expired tokens raise with a clear message."""
        token = encode(base_claims(iat=int(time.time()) - 120, exp=int(time.time()) - 60))

        with pytest.raises(AuthenticationException) as exc_info:
            jwt_service.validate_token(token)

        assert exc_info.value.problem.detail == "Token has expired"
        assert exc_info.value.status_code == 401

    def test_wrong_signature_rejected(self, jwt_service):
        """Test tokens signed with another secret are rejected."""
        token = encode(base_claims(), secret="another-secret-key-that-is-long-enough-123")

        with pytest.raises(AuthenticationException, match="signature"):
            jwt_service.validate_token(token)

    def test_wrong_audience_rejected(self, jwt_service):
        """Test the audience claim must match."""
        token = encode(base_claims(aud="someone-else"))

        with pytest.raises(AuthenticationException, match="Invalid token"):
            jwt_service.validate_token(token)

    def test_malformed_token_rejected(self, jwt_service):
        """Test garbage input is rejected."""
        assert not jwt_service.is_valid("not-a-jwt")

    def test_missing_claims_rejected(self, jwt_service):
        """Test required claims are enforced."""
        claims = base_claims()
        del claims["email"]
        del claims["role"]

        with pytest.raises(AuthenticationException) as exc_info:
            jwt_service.validate_token(encode(claims))

        assert "missing required claims: email, role" in exc_info.value.problem.detail

    def test_expiration_must_follow_issue_time(self, jwt_service):
        """Test exp <= iat is rejected."""
        now = int(time.time()) + 100
        token = encode(base_claims(iat=now + 50, exp=now))

        with pytest.raises(AuthenticationException):
            jwt_service.validate_token(token)


# ============================================================================
# REFRESH & HEADERS
# ============================================================================


class TestJWTTokenRefresh:
    """Tests for token refresh."""

    def test_refresh_keeps_user_claims(self, jwt_service, user):
        """Test refreshed tokens carry the same identity."""
        original = jwt_service.generate_token(user)

        refreshed = jwt_service.refresh_token(original.token)

        assert refreshed.token != original.token
        assert refreshed.get_user_id() == user.id
        assert refreshed.get_role() == user.role
        assert refreshed.get("jti") != original.get("jti")

    def test_expired_token_cannot_be_refreshed(self, jwt_service):
        """Test refresh requires a valid token."""
        token = encode(base_claims(iat=int(time.time()) - 120, exp=int(time.time()) - 60))

        with pytest.raises(AuthenticationException):
            jwt_service.refresh_token(token)


class TestBearerHeader:
    """Tests for Authorization header parsing."""

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("Bearer   abc  ", "abc"),
        ("Bearer ", None),
        ("Basic dXNlcjpwYXNz", None),
        ("bearer abc", None),
        ("", None),
        (None, None),
    ])
    def test_extract_token_from_header(self, header, expected):
        """Test only well-formed bearer headers yield a token."""
        assert JwtService.extract_token_from_header(header) == expected


class TestJwtTokenValueObject:
    """Tests for the JwtToken value object."""

    def test_rejects_empty_token(self):
        """Test an empty token string is invalid."""
        with pytest.raises(ValueError):
            JwtToken("", {}, datetime.now(timezone.utc))

    def test_expired_token_reports_zero_remaining(self):
        """Test time_to_expiration never goes negative."""
        token = JwtToken.from_payload("abc", {"exp": int(time.time()) - 10})

        assert token.is_expired()
        assert token.time_to_expiration() == 0

    def test_to_dict(self):
        """Test serialization includes expiry info."""
        token = JwtToken.from_payload("abc", {"exp": int(time.time()) + 60, "user_id": "u1"})

        data = token.to_dict()

        assert data["token"] == "abc"
        assert data["is_expired"] is False
        assert 0 < data["expires_in"] <= 60
        assert str(token) == "abc"
