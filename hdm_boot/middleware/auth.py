"""
JWT authentication middleware for the /api surface.

Extracts the bearer token, validates it and stores the user on
request.state. In optional mode a missing or bad token only leaves
request.state.user as None; in required mode the request is answered
with a 401 problem before it reaches the route.
"""

from typing import Callable, Iterable, Optional, Tuple

import structlog
from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from hdm_boot.exceptions import AuthenticationException
from hdm_boot.middleware.error_handler import problem_response
from hdm_boot.models.problem import ProblemDetails
from hdm_boot.models.security import JwtToken
from hdm_boot.models.user import User
from hdm_boot.repositories.login_attempt_repo import LoginAttemptRepository
from hdm_boot.repositories.user_repo import UserRepository
from hdm_boot.services.auth_service import AuthenticationService
from hdm_boot.services.jwt_service import JwtService
from hdm_boot.services.login_throttler import LoginThrottler
from hdm_boot.services.user_service import UserService

logger = structlog.get_logger("security")

DEFAULT_EXEMPT_PATHS = (
    "/api/auth/login",
    "/api/csrf-token",
    "/api/language",
    "/api/translate",
    "/api/status",
    "/api/info",
    "/api/blog",
)


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware to authenticate API requests using JWT tokens.

    Args:
        app: ASGI application
        required: reject unauthenticated requests with 401
        prefix: only paths under this prefix are checked
        exempt_paths: path prefixes that never need a token
    """

    def __init__(
        self,
        app,
        required: bool = False,
        prefix: str = "/api",
        exempt_paths: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.required = required
        self.prefix = prefix
        self.exempt_paths = tuple(exempt_paths if exempt_paths is not None else DEFAULT_EXEMPT_PATHS)

    def _is_protected(self, path: str) -> bool:
        if not path.startswith(self.prefix):
            return False
        return not any(path.startswith(exempt) for exempt in self.exempt_paths)

    @staticmethod
    def _validate(request: Request, token: str) -> Tuple[User, JwtToken]:
        state = request.app.state
        with state.database.session() as db:
            user_service = UserService(UserRepository(db), state.password_hasher)
            auth_service = AuthenticationService(
                user_service,
                state.jwt_service,
                LoginThrottler(LoginAttemptRepository(db)),
            )
            return auth_service.validate_token(token)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.user = None
        request.state.token = None

        if not self._is_protected(request.url.path):
            return await call_next(request)

        token = JwtService.extract_token_from_header(request.headers.get("Authorization"))
        if not token:
            if self.required:
                logger.warning("auth_missing_token", path=request.url.path, method=request.method)
                problem = ProblemDetails.authentication_error("Missing authorization header")
                return problem_response(problem, request, {"WWW-Authenticate": "Bearer"})
            return await call_next(request)

        try:
            user, jwt_token = await run_in_threadpool(self._validate, request, token)
        except AuthenticationException as e:
            logger.warning("auth_invalid_token", path=request.url.path, reason=e.problem.detail)
            if self.required:
                problem = ProblemDetails.authentication_error("Invalid or expired token")
                return problem_response(problem, request, {"WWW-Authenticate": "Bearer"})
            return await call_next(request)

        request.state.user = user
        request.state.token = jwt_token
        logger.debug("request_authenticated", path=request.url.path, user_id=user.id, role=user.role)
        return await call_next(request)
