"""
Login throttling backed by SQL counters.

Failed attempts are counted per email-or-IP within a short window and
globally across all users. Exceeding the per-user limit raises a 429 with
the seconds left until the window after the latest failure closes;
exceeding the global limit demands a captcha.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

import structlog

from hdm_boot.database import utcnow
from hdm_boot.exceptions import SecurityException
from hdm_boot.repositories.login_attempt_repo import LoginAttemptRepository

logger = structlog.get_logger("security")

LOCALHOST_ADDRESSES = frozenset({"127.0.0.1", "::1"})


@dataclass(frozen=True)
class ThrottlePolicy:
    enabled: bool = True
    skip_localhost: bool = True
    user_max_attempts: int = 5
    user_window_minutes: int = 15
    global_max_attempts: int = 1000
    global_window_minutes: int = 5
    retention_days: int = 7

    @classmethod
    def from_settings(cls, settings) -> "ThrottlePolicy":
        return cls(
            enabled=settings.throttling_enabled,
            skip_localhost=settings.throttling_skip_localhost,
            user_max_attempts=settings.throttle_user_max_attempts,
            user_window_minutes=settings.throttle_user_window_minutes,
            global_max_attempts=settings.throttle_global_max_attempts,
            global_window_minutes=settings.throttle_global_window_minutes,
            retention_days=settings.login_attempts_retention_days,
        )


class LoginThrottler:
    """Checks and records login attempts."""

    def __init__(self, attempts: LoginAttemptRepository, policy: Optional[ThrottlePolicy] = None):
        self.attempts = attempts
        self.policy = policy or ThrottlePolicy()

    def _is_exempt(self, ip_address: str) -> bool:
        if not self.policy.enabled:
            return True
        return self.policy.skip_localhost and ip_address in LOCALHOST_ADDRESSES

    def check_login_request(self, email: str, ip_address: str) -> None:
        """
        Raise when this login request must be refused.

        Raises:
            SecurityException: captcha_required (global) or
                rate_limit_exceeded with retry_after seconds (per user)
        """
        if self._is_exempt(ip_address):
            return

        self._check_global()
        self._check_user(email, ip_address)

    def _check_global(self) -> None:
        since = utcnow() - timedelta(minutes=self.policy.global_window_minutes)
        failed = self.attempts.count(success=False, since=since)
        if failed >= self.policy.global_max_attempts:
            logger.warning("global_login_throttling_activated", failed_attempts=failed)
            raise SecurityException.captcha_required()

    def _check_user(self, email: str, ip_address: str) -> None:
        window = timedelta(minutes=self.policy.user_window_minutes)
        now = utcnow()
        failed, last_attempt = self.attempts.failed_for_user(email, ip_address, now - window)
        if failed < self.policy.user_max_attempts or last_attempt is None:
            return

        remaining = int((last_attempt + window - now).total_seconds())
        if remaining <= 0:
            return

        logger.warning(
            "user_login_throttling_activated",
            email=email,
            ip_address=ip_address,
            failed_attempts=failed,
            retry_after=remaining,
        )
        raise SecurityException.rate_limit_exceeded(
            "Too many login attempts. Please try again later.",
            retry_after=remaining,
        )

    def record_attempt(
        self, email: str, ip_address: str, success: bool, user_agent: Optional[str] = None
    ) -> None:
        self.attempts.record(email, ip_address, success, user_agent)
        logger.info(
            "login_attempt_recorded",
            email=email,
            ip_address=ip_address,
            success=success,
        )

    def record_failed_attempt(self, email: str, ip_address: str, user_agent: Optional[str] = None) -> None:
        self.record_attempt(email, ip_address, False, user_agent)

    def record_successful_attempt(self, email: str, ip_address: str, user_agent: Optional[str] = None) -> None:
        self.record_attempt(email, ip_address, True, user_agent)

    def get_login_statistics(self) -> Dict[str, Any]:
        now = utcnow()
        recent_failed = self.attempts.count(success=False, since=now - timedelta(hours=1))
        recent_successful = self.attempts.count(success=True, since=now - timedelta(hours=1))
        global_failed = self.attempts.count(
            success=False, since=now - timedelta(minutes=self.policy.global_window_minutes)
        )
        return {
            "recent_failed_attempts": recent_failed,
            "recent_successful_attempts": recent_successful,
            "top_failed_ips": self.attempts.top_failed_ips(now - timedelta(hours=24)),
            "global_throttling_active": global_failed >= self.policy.global_max_attempts,
        }

    def clean_old_attempts(self, days: Optional[int] = None) -> int:
        deleted = self.attempts.delete_older_than(days or self.policy.retention_days)
        logger.info("login_attempts_cleaned", deleted=deleted)
        return deleted
