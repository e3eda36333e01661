"""
Domain events published through the EventDispatcher.

Each event has a stable event_name used as the dispatch key, a unique
event_id and the UTC time it occurred.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional
from uuid import uuid4


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DomainEvent:
    """Base class for domain events."""

    event_name: ClassVar[str] = "domain.event"
    version: ClassVar[int] = 1

    event_id: str = field(default_factory=lambda: str(uuid4()), init=False)
    occurred_at: datetime = field(default_factory=_now, init=False)

    def payload(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_name": self.event_name,
            "version": self.version,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload(),
        }

    def to_log_dict(self) -> Dict[str, Any]:
        """Flat representation for structured logs (no secrets)."""
        return {
            "event_id": self.event_id,
            "event_name": self.event_name,
            "occurred_at": self.occurred_at.isoformat(),
            **self.payload(),
        }


# ============================================================================
# User lifecycle
# ============================================================================


@dataclass
class UserWasRegistered(DomainEvent):
    event_name: ClassVar[str] = "user.registered"

    user_id: str = ""
    email: str = ""
    name: str = ""
    role: str = ""
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
        }


@dataclass
class UserWasUpdated(DomainEvent):
    event_name: ClassVar[str] = "user.updated"

    user_id: str = ""
    changed_fields: List[str] = field(default_factory=list)
    previous: Dict[str, Any] = field(default_factory=dict)
    current: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_update_data(
        cls, user_id: str, previous: Dict[str, Any], update_data: Dict[str, Any]
    ) -> "UserWasUpdated":
        """Build the event keeping only fields whose value actually changed."""
        changed = [
            key for key, value in update_data.items()
            if key in previous and previous[key] != value
        ]
        return cls(
            user_id=user_id,
            changed_fields=changed,
            previous={key: previous[key] for key in changed},
            current={key: update_data[key] for key in changed},
        )

    def has_changes(self) -> bool:
        return bool(self.changed_fields)

    def payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "changed_fields": self.changed_fields,
            "previous": self.previous,
            "current": self.current,
        }


@dataclass
class UserWasDeleted(DomainEvent):
    event_name: ClassVar[str] = "user.deleted"

    user_id: str = ""
    email: str = ""
    deleted_by: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "email": self.email, "deleted_by": self.deleted_by}


# ============================================================================
# Security
# ============================================================================


@dataclass
class UserLoggedIn(DomainEvent):
    event_name: ClassVar[str] = "security.user_logged_in"

    user_id: str = ""
    email: str = ""
    channel: str = "api"
    client_ip: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "channel": self.channel,
            "client_ip": self.client_ip,
        }


@dataclass
class UserLoggedOut(DomainEvent):
    event_name: ClassVar[str] = "security.user_logged_out"

    user_id: str = ""
    channel: str = "api"

    def payload(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "channel": self.channel}


@dataclass
class LoginFailed(DomainEvent):
    event_name: ClassVar[str] = "security.login_failed"

    email: str = ""
    client_ip: Optional[str] = None
    reason: str = "invalid_credentials"

    def payload(self) -> Dict[str, Any]:
        return {"email": self.email, "client_ip": self.client_ip, "reason": self.reason}
