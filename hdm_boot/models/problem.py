"""
RFC 7807 Problem Details.

Every error response of the application is rendered from a ProblemDetails
value with media type application/problem+json.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional


PROBLEM_JSON = "application/problem+json"
TYPE_BASE_URI = "https://httpstatuses.com/"


def type_for_status(status: int) -> str:
    return f"{TYPE_BASE_URI}{status}"


@dataclass(frozen=True)
class ProblemDetails:
    """Immutable problem document (type, title, status, detail, instance)."""

    type: str
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    extensions: Dict[str, Any] = field(default_factory=dict)

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def validation_error(
        cls,
        detail: str = "The request contains invalid data",
        validation_errors: Optional[Dict[str, List[str]]] = None,
        instance: Optional[str] = None,
    ) -> "ProblemDetails":
        extensions: Dict[str, Any] = {}
        if validation_errors:
            extensions["validation_errors"] = validation_errors
        return cls(type_for_status(400), "Validation Error", 400, detail, instance, extensions)

    @classmethod
    def unprocessable_entity(
        cls,
        detail: str = "The request data failed validation",
        validation_errors: Optional[Dict[str, List[str]]] = None,
        instance: Optional[str] = None,
    ) -> "ProblemDetails":
        extensions: Dict[str, Any] = {}
        if validation_errors:
            extensions["validation_errors"] = validation_errors
        return cls(type_for_status(422), "Unprocessable Entity", 422, detail, instance, extensions)

    @classmethod
    def authentication_error(
        cls, detail: str = "Authentication required", instance: Optional[str] = None
    ) -> "ProblemDetails":
        return cls(type_for_status(401), "Authentication Error", 401, detail, instance)

    @classmethod
    def authorization_error(
        cls, detail: str = "Access denied", instance: Optional[str] = None
    ) -> "ProblemDetails":
        return cls(type_for_status(403), "Authorization Error", 403, detail, instance)

    @classmethod
    def not_found(
        cls, detail: str = "The requested resource was not found", instance: Optional[str] = None
    ) -> "ProblemDetails":
        return cls(type_for_status(404), "Not Found", 404, detail, instance)

    @classmethod
    def conflict(
        cls, detail: str = "The request conflicts with the current state", instance: Optional[str] = None
    ) -> "ProblemDetails":
        return cls(type_for_status(409), "Conflict", 409, detail, instance)

    @classmethod
    def rate_limit(
        cls,
        detail: str = "Too many requests",
        retry_after: Optional[int] = None,
        instance: Optional[str] = None,
    ) -> "ProblemDetails":
        extensions: Dict[str, Any] = {}
        if retry_after is not None:
            extensions["retry_after"] = retry_after
        return cls(type_for_status(429), "Too Many Requests", 429, detail, instance, extensions)

    @classmethod
    def internal_server_error(
        cls,
        detail: str = "An unexpected error occurred",
        trace_id: Optional[str] = None,
        instance: Optional[str] = None,
    ) -> "ProblemDetails":
        extensions: Dict[str, Any] = {}
        if trace_id:
            extensions["trace_id"] = trace_id
        return cls(type_for_status(500), "Internal Server Error", 500, detail, instance, extensions)

    @classmethod
    def custom(
        cls,
        status: int,
        title: str,
        detail: Optional[str] = None,
        type: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
    ) -> "ProblemDetails":
        return cls(type or type_for_status(status), title, status, detail, instance, dict(extensions or {}))

    # =========================================================================
    # Accessors
    # =========================================================================

    def with_instance(self, instance: str) -> "ProblemDetails":
        return replace(self, instance=instance)

    def with_extension(self, key: str, value: Any) -> "ProblemDetails":
        return replace(self, extensions={**self.extensions, key: value})

    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    def is_server_error(self) -> bool:
        return self.status >= 500

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, omitting empty detail/instance and merging extensions."""
        data: Dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "status": self.status,
        }
        if self.detail is not None:
            data["detail"] = self.detail
        if self.instance is not None:
            data["instance"] = self.instance
        # Standard members win over extensions with the same name
        for key, value in self.extensions.items():
            data.setdefault(key, value)
        return data
