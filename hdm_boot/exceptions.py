"""
Exception hierarchy rendered as RFC 7807 problem documents.

Services raise these near the point of failure; the error handler
middleware and exception handlers in hdm_boot.middleware.error_handler
turn them into application/problem+json responses.
"""

from typing import Dict, List, Optional

from hdm_boot.models.problem import ProblemDetails


class ProblemDetailsException(Exception):
    """Base exception carrying a ProblemDetails document."""

    def __init__(self, problem: ProblemDetails, headers: Optional[Dict[str, str]] = None):
        super().__init__(problem.detail or problem.title)
        self.problem = problem
        self.headers = headers or {}

    @property
    def status_code(self) -> int:
        return self.problem.status

    def get_problem_details(self) -> ProblemDetails:
        return self.problem


# ============================================================================
# VALIDATION
# ============================================================================


class ValidationException(ProblemDetailsException):
    """Input validation failure with per-field error messages (422)."""

    def __init__(
        self,
        errors: Dict[str, List[str]],
        detail: str = "The request contains invalid data",
        instance: Optional[str] = None,
    ):
        self.errors = errors
        super().__init__(ProblemDetails.unprocessable_entity(detail, errors, instance))

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationException":
        return cls({field: [message]}, detail=f"Validation failed for field: {field}")

    @classmethod
    def required_field(cls, field: str) -> "ValidationException":
        return cls.for_field(field, f"The {field} field is required")

    @classmethod
    def invalid_format(cls, field: str, expected_format: str) -> "ValidationException":
        return cls.for_field(field, f"The {field} field must be a valid {expected_format}")

    def get_first_error(self) -> Optional[str]:
        for messages in self.errors.values():
            if messages:
                return messages[0]
        return None


# ============================================================================
# AUTHENTICATION (401)
# ============================================================================


class AuthenticationException(ProblemDetailsException):
    """The caller could not be authenticated."""

    def __init__(self, detail: str, instance: Optional[str] = None):
        super().__init__(
            ProblemDetails.authentication_error(detail, instance),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @classmethod
    def invalid_credentials(cls) -> "AuthenticationException":
        return cls("Invalid email or password")

    @classmethod
    def missing_credentials(cls) -> "AuthenticationException":
        return cls("Authentication credentials are required")

    @classmethod
    def expired_token(cls) -> "AuthenticationException":
        return cls("Authentication token has expired")

    @classmethod
    def invalid_token(cls) -> "AuthenticationException":
        return cls("Invalid authentication token")

    @classmethod
    def account_locked(cls) -> "AuthenticationException":
        return cls("Account is locked due to too many failed attempts")

    @classmethod
    def account_inactive(cls) -> "AuthenticationException":
        return cls("Account is inactive")

    @classmethod
    def custom(cls, detail: str) -> "AuthenticationException":
        return cls(detail)


# ============================================================================
# AUTHORIZATION (403)
# ============================================================================


class AuthorizationException(ProblemDetailsException):
    """The caller is authenticated but not allowed to do this."""

    def __init__(self, detail: str, instance: Optional[str] = None):
        super().__init__(ProblemDetails.authorization_error(detail, instance))

    @classmethod
    def insufficient_permissions(cls, required_permission: str) -> "AuthorizationException":
        return cls(f"Insufficient permissions. Required: {required_permission}")

    @classmethod
    def access_denied(cls) -> "AuthorizationException":
        return cls("Access denied")

    @classmethod
    def resource_access_denied(cls, resource: str, action: str) -> "AuthorizationException":
        return cls(f"You don't have permission to {action} {resource}")

    @classmethod
    def role_required(cls, required_role: str) -> "AuthorizationException":
        return cls(f"Access requires {required_role} role")

    @classmethod
    def ownership_required(cls, resource: str) -> "AuthorizationException":
        return cls(f"You can only access your own {resource}")

    @classmethod
    def custom(cls, detail: str) -> "AuthorizationException":
        return cls(detail)


# ============================================================================
# SECURITY (429 / 403)
# ============================================================================


class SecurityException(ProblemDetailsException):
    """Throttling, CSRF and abuse protection failures."""

    def __init__(self, problem: ProblemDetails, reason: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(problem, headers)
        self.reason = reason

    @property
    def retry_after(self) -> Optional[int]:
        return self.problem.extensions.get("retry_after")

    @classmethod
    def rate_limit_exceeded(
        cls, detail: str = "Rate limit exceeded", retry_after: Optional[int] = None
    ) -> "SecurityException":
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        return cls(ProblemDetails.rate_limit(detail, retry_after), "rate_limit", headers)

    @classmethod
    def captcha_required(
        cls, detail: str = "Too many failed login attempts. Captcha verification required."
    ) -> "SecurityException":
        problem = ProblemDetails.rate_limit(detail).with_extension("captcha_required", True)
        return cls(problem, "captcha")

    @classmethod
    def invalid_csrf_token(cls) -> "SecurityException":
        problem = ProblemDetails.custom(
            403,
            "CSRF Token Invalid",
            "Invalid CSRF token. Please refresh the page and try again.",
        )
        return cls(problem, "csrf")

    @classmethod
    def suspicious_activity(cls, detail: str = "Suspicious activity detected") -> "SecurityException":
        return cls(ProblemDetails.custom(403, "Suspicious Activity", detail), "suspicious_activity")

    @classmethod
    def blocked_ip(cls, detail: str = "Your IP address has been blocked") -> "SecurityException":
        return cls(ProblemDetails.custom(403, "IP Blocked", detail), "blocked_ip")


# ============================================================================
# RESOURCE STATE (404 / 409)
# ============================================================================


class NotFoundException(ProblemDetailsException):
    def __init__(self, detail: str = "The requested resource was not found"):
        super().__init__(ProblemDetails.not_found(detail))


class ConflictException(ProblemDetailsException):
    def __init__(self, detail: str):
        super().__init__(ProblemDetails.conflict(detail))


# ============================================================================
# WEB
# ============================================================================


class LoginRequiredRedirect(Exception):
    """Browser page needs a logged-in session; answered with a redirect to the login page."""

    def __init__(self, location: str = "/login"):
        super().__init__(location)
        self.location = location


__all__ = [
    "AuthenticationException",
    "AuthorizationException",
    "ConflictException",
    "LoginRequiredRedirect",
    "NotFoundException",
    "ProblemDetailsException",
    "SecurityException",
    "ValidationException",
]
