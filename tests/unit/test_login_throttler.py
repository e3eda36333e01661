"""
Unit tests for login throttling.

Tests cover:
- Per email-or-IP lockout after repeated failures
- Retry-After computed from the latest failure
- Window expiry
- Global captcha requirement
- Localhost and disabled exemptions
- Statistics and retention cleanup
"""

from datetime import timedelta

import pytest

from hdm_boot.database import utcnow
from hdm_boot.exceptions import SecurityException
from hdm_boot.repositories.login_attempt_repo import LoginAttemptRepository
from hdm_boot.services.login_throttler import LoginThrottler, ThrottlePolicy


EMAIL = "jane@example.com"
IP = "203.0.113.7"


@pytest.fixture
def attempts(db_session) -> LoginAttemptRepository:
    return LoginAttemptRepository(db_session)


@pytest.fixture
def throttler(attempts) -> LoginThrottler:
    return LoginThrottler(attempts, ThrottlePolicy(user_max_attempts=3, global_max_attempts=50))


def fail(throttler: LoginThrottler, times: int, email: str = EMAIL, ip: str = IP) -> None:
    for _ in range(times):
        throttler.record_failed_attempt(email, ip)


# ============================================================================
# PER-USER THROTTLING
# ============================================================================


class TestUserThrottling:
    """Tests for the per email-or-IP limit."""

    def test_allows_below_limit(self, throttler):
        """Test failures under the limit are allowed."""
        fail(throttler, 2)

        throttler.check_login_request(EMAIL, IP)

    def test_blocks_at_limit_with_retry_after(self, throttler):
        """Test the limit raises a 429 with a retry delay."""
        fail(throttler, 3)

        with pytest.raises(SecurityException) as exc_info:
            throttler.check_login_request(EMAIL, IP)

        exc = exc_info.value
        assert exc.status_code == 429
        assert exc.reason == "rate_limit"
        # Window is 15 minutes from the latest failure
        assert 14 * 60 < exc.retry_after <= 15 * 60

    def test_failures_from_same_ip_count_for_other_emails(self, throttler):
        """Test attempts match on email or IP."""
        fail(throttler, 3, email="someone@example.com")

        with pytest.raises(SecurityException):
            throttler.check_login_request(EMAIL, IP)

    def test_other_user_and_ip_unaffected(self, throttler):
        """Test unrelated clients are not throttled."""
        fail(throttler, 3)

        throttler.check_login_request("other@example.com", "198.51.100.1")

    def test_successful_attempts_do_not_count(self, throttler):
        """Test only failures count toward the limit."""
        for _ in range(5):
            throttler.record_successful_attempt(EMAIL, IP)

        throttler.check_login_request(EMAIL, IP)

    def test_failures_outside_window_ignored(self, throttler, attempts):
        """Test failures older than the window expire."""
        old = utcnow() - timedelta(minutes=20)
        for _ in range(5):
            attempts.record(EMAIL, IP, False, attempted_at=old)

        throttler.check_login_request(EMAIL, IP)


# ============================================================================
# GLOBAL THROTTLING & EXEMPTIONS
# ============================================================================


class TestGlobalThrottling:
    """Tests for the global limit and exemptions."""

    def test_global_limit_requires_captcha(self, attempts):
        """Test the global limit demands a captcha."""
        throttler = LoginThrottler(attempts, ThrottlePolicy(user_max_attempts=100, global_max_attempts=4))
        for index in range(4):
            throttler.record_failed_attempt(f"user{index}@example.com", f"198.51.100.{index}")

        with pytest.raises(SecurityException) as exc_info:
            throttler.check_login_request("new@example.com", "192.0.2.50")

        assert exc_info.value.reason == "captcha"
        assert exc_info.value.problem.extensions["captcha_required"] is True

    @pytest.mark.parametrize("ip", ["127.0.0.1", "::1"])
    def test_localhost_is_exempt(self, throttler, ip):
        """Test local addresses skip throttling."""
        fail(throttler, 5, ip=ip)

        throttler.check_login_request(EMAIL, ip)

    def test_localhost_checked_when_skip_disabled(self, attempts):
        """Test the localhost exemption can be turned off."""
        throttler = LoginThrottler(attempts, ThrottlePolicy(user_max_attempts=2, skip_localhost=False))
        fail(throttler, 2, ip="127.0.0.1")

        with pytest.raises(SecurityException):
            throttler.check_login_request(EMAIL, "127.0.0.1")

    def test_disabled_policy_never_throttles(self, attempts):
        """Test throttling can be switched off."""
        throttler = LoginThrottler(attempts, ThrottlePolicy(enabled=False, user_max_attempts=1))
        fail(throttler, 3)

        throttler.check_login_request(EMAIL, IP)


# ============================================================================
# STATISTICS & CLEANUP
# ============================================================================


class TestThrottlerStatistics:
    """Tests for statistics and retention."""

    def test_statistics(self, throttler):
        """Test recent counts and top failing IPs."""
        fail(throttler, 2)
        fail(throttler, 1, ip="198.51.100.9")
        throttler.record_successful_attempt(EMAIL, IP)

        stats = throttler.get_login_statistics()

        assert stats["recent_failed_attempts"] == 3
        assert stats["recent_successful_attempts"] == 1
        assert stats["top_failed_ips"][0] == {"ip_address": IP, "attempts": 2}
        assert stats["global_throttling_active"] is False

    def test_clean_old_attempts(self, throttler, attempts):
        """Test rows past retention are deleted."""
        attempts.record(EMAIL, IP, False, attempted_at=utcnow() - timedelta(days=10))
        fail(throttler, 1)

        deleted = throttler.clean_old_attempts()

        assert deleted == 1
        assert attempts.count(success=False, since=utcnow() - timedelta(days=30)) == 1

    def test_policy_from_settings(self, settings):
        """Test the policy mirrors the settings."""
        policy = ThrottlePolicy.from_settings(settings)

        assert policy.user_max_attempts == settings.throttle_user_max_attempts
        assert policy.global_window_minutes == settings.throttle_global_window_minutes
        assert policy.retention_days == settings.login_attempts_retention_days
