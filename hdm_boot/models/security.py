"""
Security models.

- LoginAttempt: one row per login attempt, counted by the throttler
- JwtToken: value object wrapping an encoded token and its claims
- Login / token request and response schemas
"""

import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hdm_boot.database import Base, utcnow


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ============================================================================
# SQLAlchemy Models
# ============================================================================


class LoginAttempt(Base):
    """Login attempt record used for throttling and statistics."""
    __tablename__ = "security_login_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attempted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_login_attempts_email", "email"),
        Index("idx_login_attempts_ip", "ip_address"),
        Index("idx_login_attempts_time", "attempted_at"),
        Index("idx_login_attempts_success", "success", "attempted_at"),
    )

    def __repr__(self) -> str:
        return f"<LoginAttempt(email='{self.email}', ip='{self.ip_address}', success={self.success})>"


# ============================================================================
# JWT Value Object
# ============================================================================


class JwtToken:
    """
    Encoded JWT plus its decoded payload.

    expires_at is an aware UTC datetime derived from the exp claim.
    """

    def __init__(self, token: str, payload: Dict[str, Any], expires_at: datetime):
        if not token:
            raise ValueError("Token cannot be empty")
        self.token = token
        self.payload = payload
        self.expires_at = expires_at

    @classmethod
    def from_payload(cls, token: str, payload: Dict[str, Any]) -> "JwtToken":
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        return cls(token, payload, expires_at)

    def get_user_id(self) -> Optional[str]:
        return self.payload.get("user_id")

    def get_email(self) -> Optional[str]:
        return self.payload.get("email")

    def get_role(self) -> Optional[str]:
        return self.payload.get("role")

    def has(self, claim: str) -> bool:
        return claim in self.payload

    def get(self, claim: str, default: Any = None) -> Any:
        return self.payload.get(claim, default)

    def time_to_expiration(self) -> int:
        """Seconds until expiry, 0 once expired."""
        return max(0, int(self.expires_at.timestamp() - time.time()))

    def is_expired(self) -> bool:
        return self.expires_at.timestamp() <= time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "payload": self.payload,
            "expires_at": self.expires_at.isoformat(),
            "expires_in": self.time_to_expiration(),
            "is_expired": self.is_expired(),
        }

    def __str__(self) -> str:
        return self.token


# ============================================================================
# Pydantic Request / Response Models
# ============================================================================


class LoginRequest(BaseModel):
    """Login request schema."""
    email: str = Field(..., description="Account email")
    password: str = Field(..., min_length=1, description="Password")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate email format and normalize case."""
        v = v.strip().lower()
        if not v:
            raise ValueError("Email is required")
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email format")
        return v

    model_config = {
        "json_schema_extra": {
            "example": {
                "email": "admin@example.com",
                "password": "SecurePass123"
            }
        }
    }


class TokenData(BaseModel):
    """Token details returned by login and refresh."""
    token: str
    token_type: str = "Bearer"
    expires_in: int
    expires_at: str
    user: Dict[str, Any]


class TokenResponse(BaseModel):
    success: bool = True
    message: str
    data: TokenData
