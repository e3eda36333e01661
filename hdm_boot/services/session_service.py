"""
Web session helper over Starlette's signed cookie session.

The session mapping is request.session; values must be JSON-serializable.
"""

import time
from typing import Any, Dict, List, MutableMapping, Optional

import structlog

from hdm_boot.models.user import User, UserRole

logger = structlog.get_logger("security")

FLASH_KEY = "_flash"


class SessionService:
    """Login state, flash messages and session info for browser requests."""

    def __init__(self, session: MutableMapping[str, Any], lifetime: int = 3600):
        self.session = session
        self.lifetime = lifetime

    def login_user(self, user: User) -> None:
        # Drop everything from the anonymous session before storing the login
        self.session.clear()
        now = int(time.time())
        self.session["user_id"] = user.id
        self.session["login_time"] = now
        self.session["last_activity"] = now
        self.session["user_data"] = user.to_summary()
        logger.info("session_login", user_id=user.id)

    def logout_user(self) -> None:
        user_id = self.session.get("user_id")
        self.session.clear()
        if user_id:
            logger.info("session_logout", user_id=user_id)

    def is_logged_in(self) -> bool:
        """True while the user is stored and the session has not idled out."""
        if not self.session.get("user_id"):
            return False

        now = int(time.time())
        last_activity = int(self.session.get("last_activity") or 0)
        if now - last_activity > self.lifetime:
            logger.info("session_expired", user_id=self.session.get("user_id"))
            self.logout_user()
            return False

        self.session["last_activity"] = now
        return True

    def get_user_id(self) -> Optional[str]:
        return self.session.get("user_id")

    def get_user_data(self) -> Optional[Dict[str, Any]]:
        return self.session.get("user_data")

    def flash(self, kind: str, message: str) -> None:
        messages = list(self.session.get(FLASH_KEY) or [])
        messages.append({"type": kind, "message": message})
        self.session[FLASH_KEY] = messages

    def get_flash_messages(self) -> List[Dict[str, str]]:
        """Return and remove pending flash messages."""
        return list(self.session.pop(FLASH_KEY, None) or [])

    def has_role(self, role: str) -> bool:
        data = self.get_user_data() or {}
        return data.get("role") == role

    def is_admin(self) -> bool:
        return self.has_role(UserRole.ADMIN.value)

    def get_session_info(self) -> Dict[str, Any]:
        login_time = self.session.get("login_time")
        last_activity = self.session.get("last_activity")
        return {
            "is_logged_in": bool(self.session.get("user_id")),
            "user_id": self.session.get("user_id"),
            "login_time": login_time,
            "last_activity": last_activity,
            "expires_in": max(0, int(last_activity) + self.lifetime - int(time.time())) if last_activity else 0,
        }
