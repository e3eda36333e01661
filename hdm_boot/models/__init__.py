"""ORM models, value objects and API schemas."""

from hdm_boot.models.problem import ProblemDetails
from hdm_boot.models.security import JwtToken, LoginAttempt, LoginRequest
from hdm_boot.models.user import User, UserRole, UserStatus

__all__ = [
    "JwtToken",
    "LoginAttempt",
    "LoginRequest",
    "ProblemDetails",
    "User",
    "UserRole",
    "UserStatus",
]
