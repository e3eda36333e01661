"""
JWT issuing and validation using python-jose.

Tokens carry the issuer/audience of the application plus the user's id,
email, name, role, status and email_verified flag.
"""

import time
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from hdm_boot.exceptions import AuthenticationException
from hdm_boot.models.security import JwtToken
from hdm_boot.models.user import User

logger = structlog.get_logger(__name__)

REQUIRED_CLAIMS = ("iss", "aud", "iat", "exp", "user_id", "email", "role")
BEARER_PREFIX = "Bearer "


class JwtService:
    """Encode, decode and refresh access tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expiry: int = 3600,
        issuer: str = "hdm-boot",
        audience: str = "hdm-boot",
    ):
        if not secret:
            raise ValueError("JWT secret cannot be empty")
        if len(secret) < 32:
            raise ValueError("JWT secret must be at least 32 characters long")
        if expiry <= 0:
            raise ValueError("JWT expiry must be positive")

        self.secret = secret
        self.algorithm = algorithm
        self.expiry = expiry
        self.issuer = issuer
        self.audience = audience

    def get_expiry(self) -> int:
        return self.expiry

    def _encode(self, claims: Dict[str, Any]) -> JwtToken:
        now = int(time.time())
        payload = {
            **claims,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": now + self.expiry,
            "jti": str(uuid4()),
        }
        token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
        return JwtToken.from_payload(token, payload)

    def generate_token(self, user: User) -> JwtToken:
        """
        Issue an access token for a user.

        Args:
            user: Authenticated user

        Returns:
            JwtToken with the encoded token and its claims
        """
        token = self._encode({
            "user_id": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role,
            "status": user.status,
            "email_verified": bool(user.email_verified),
        })
        logger.info("access_token_created", user_id=user.id, expires_in=self.expiry)
        return token

    def validate_token(self, token: str) -> JwtToken:
        """
        Decode and check a token.

        Raises:
            AuthenticationException: expired, bad signature, malformed token or
                missing/mismatched claims
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except ExpiredSignatureError:
            logger.debug("token_validation_failed", reason="expired")
            raise AuthenticationException.custom("Token has expired")
        except JWTClaimsError as e:
            logger.debug("token_validation_failed", reason="claims", error=str(e))
            raise AuthenticationException.custom(f"Invalid token: {e}")
        except JWTError as e:
            if "signature" in str(e).lower():
                logger.warning("token_validation_failed", reason="signature")
                raise AuthenticationException.custom("Token signature is invalid")
            logger.debug("token_validation_failed", reason="malformed", error=str(e))
            raise AuthenticationException.custom(f"Invalid token: {e}")

        missing = [claim for claim in REQUIRED_CLAIMS if claim not in payload]
        if missing:
            raise AuthenticationException.custom(
                f"Invalid token: missing required claims: {', '.join(missing)}"
            )
        if payload["exp"] <= payload["iat"]:
            raise AuthenticationException.custom("Invalid token: expiration must be after issue time")

        return JwtToken.from_payload(token, payload)

    def is_valid(self, token: str) -> bool:
        try:
            self.validate_token(token)
            return True
        except AuthenticationException:
            return False

    def refresh_token(self, token: str) -> JwtToken:
        """
        Issue a new token with the same user claims.

        Expired tokens cannot be refreshed.
        """
        current = self.validate_token(token)
        claims = {
            key: value for key, value in current.payload.items()
            if key not in ("iss", "aud", "iat", "exp", "jti")
        }
        refreshed = self._encode(claims)
        logger.info("access_token_refreshed", user_id=current.get_user_id())
        return refreshed

    @staticmethod
    def extract_token_from_header(header: Optional[str]) -> Optional[str]:
        """Return the token of a 'Bearer <token>' header, None otherwise."""
        if not header or not header.startswith(BEARER_PREFIX):
            return None
        token = header[len(BEARER_PREFIX):].strip()
        return token or None
