"""HTTP middleware components.

Authentication, request logging and metrics, security headers, locale
selection and RFC 7807 error handling.
"""

from hdm_boot.middleware.auth import AuthMiddleware
from hdm_boot.middleware.error_handler import (
    ErrorHandlerMiddleware,
    problem_response,
    register_exception_handlers,
)
from hdm_boot.middleware.locale import LocaleMiddleware
from hdm_boot.middleware.request_logging import RequestLoggingMiddleware, SecurityHeadersMiddleware

__all__ = [
    "AuthMiddleware",
    "ErrorHandlerMiddleware",
    "LocaleMiddleware",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "problem_response",
    "register_exception_handlers",
]
