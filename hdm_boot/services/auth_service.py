"""
Authentication service.

Ties together credential checks (UserService), login throttling and JWT
issuing for both the web (session) and the API (bearer token) channels.
"""

from typing import Optional, Tuple

import structlog

from hdm_boot.exceptions import AuthenticationException, SecurityException
from hdm_boot.models.events import LoginFailed, UserLoggedIn, UserLoggedOut
from hdm_boot.models.security import JwtToken
from hdm_boot.models.user import User
from hdm_boot.services.event_dispatcher import EventDispatcher
from hdm_boot.services.jwt_service import JwtService
from hdm_boot.services.login_throttler import LoginThrottler
from hdm_boot.services.user_service import UserService
from shared.metrics import SecurityMetrics

logger = structlog.get_logger("security")


class AuthenticationService:
    """Login, token validation and logout."""

    def __init__(
        self,
        user_service: UserService,
        jwt_service: JwtService,
        throttler: LoginThrottler,
        dispatcher: Optional[EventDispatcher] = None,
        metrics: Optional[SecurityMetrics] = None,
    ):
        self.user_service = user_service
        self.jwt_service = jwt_service
        self.throttler = throttler
        self.dispatcher = dispatcher
        self.metrics = metrics

    def _count(self, channel: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.login_attempts.labels(channel=channel, outcome=outcome).inc()

    def _dispatch(self, event) -> None:
        if self.dispatcher is not None:
            self.dispatcher.dispatch(event)

    def _authenticate(
        self, email: str, password: str, client_ip: str, user_agent: Optional[str], channel: str
    ) -> Optional[User]:
        email = email.strip().lower()
        try:
            self.throttler.check_login_request(email, client_ip)
        except SecurityException:
            self._count(channel, "throttled")
            raise

        user = self.user_service.authenticate(email, password)
        if user is None:
            self.throttler.record_failed_attempt(email, client_ip, user_agent)
            self._count(channel, "failure")
            self._dispatch(LoginFailed(email=email, client_ip=client_ip))
            logger.warning("login_failed", email=email, ip_address=client_ip, channel=channel)
            return None

        self.throttler.record_successful_attempt(email, client_ip, user_agent)
        self._count(channel, "success")
        self._dispatch(UserLoggedIn(user_id=user.id, email=user.email, channel=channel, client_ip=client_ip))
        logger.info("login_success", user_id=user.id, email=user.email, ip_address=client_ip, channel=channel)
        return user

    def authenticate_for_web(
        self, email: str, password: str, client_ip: str, user_agent: Optional[str] = None
    ) -> Optional[User]:
        """
        Authenticate a browser login.

        Returns:
            The user, or None for bad credentials

        Raises:
            SecurityException: when throttled
        """
        return self._authenticate(email, password, client_ip, user_agent, "web")

    def authenticate_for_api(
        self, email: str, password: str, client_ip: str, user_agent: Optional[str] = None
    ) -> Tuple[User, JwtToken]:
        """
        Authenticate an API login and issue a token.

        Raises:
            SecurityException: when throttled
            AuthenticationException: for bad credentials
        """
        user = self._authenticate(email, password, client_ip, user_agent, "api")
        if user is None:
            raise AuthenticationException.invalid_credentials()
        return user, self.generate_token(user)

    def generate_token(self, user: User) -> JwtToken:
        token = self.jwt_service.generate_token(user)
        if self.metrics is not None:
            self.metrics.tokens_issued.labels(kind="access").inc()
        return token

    def validate_token(self, token: str) -> Tuple[User, JwtToken]:
        """
        Validate a bearer token and load its user.

        Raises:
            AuthenticationException: invalid token, unknown or inactive user
        """
        jwt_token = self.jwt_service.validate_token(token)
        user = self.user_service.get_user_by_id(jwt_token.get_user_id())
        if user is None:
            logger.warning("token_user_not_found", user_id=jwt_token.get_user_id())
            raise AuthenticationException.invalid_token()
        if not user.is_active():
            logger.warning("token_user_inactive", user_id=user.id, status=user.status)
            raise AuthenticationException.account_inactive()
        return user, jwt_token

    def refresh(self, token: str) -> Tuple[User, JwtToken]:
        """Issue a fresh token for a still-valid token of an active user."""
        user, _ = self.validate_token(token)
        refreshed = self.generate_token(user)
        if self.metrics is not None:
            self.metrics.tokens_issued.labels(kind="refresh").inc()
        logger.info("token_refreshed", user_id=user.id)
        return user, refreshed

    def logout(self, user: User, channel: str = "api") -> None:
        logger.info("user_logged_out", user_id=user.id, email=user.email, channel=channel)
        self._dispatch(UserLoggedOut(user_id=user.id, channel=channel))

    def invalidate_token(self, token: str) -> None:
        """
        Record that a token was given up.

        There is no deny list; the token stays valid until it expires.
        """
        logger.info("token_invalidated", token_suffix=token[-8:])
