"""
FastAPI dependency injection for database, services, authentication and
authorization.

Provides injectable dependencies for:
- Request-scoped SQLAlchemy sessions
- Repository and service instances built on that session
- Process-wide singletons kept on app.state
- User authentication (bearer token or web session)
- Authorization (permission checks)
- Request metadata and pagination
"""

from typing import Callable, Generator, Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from hdm_boot.config import Settings
from hdm_boot.database import Database
from hdm_boot.exceptions import (
    AuthenticationException,
    AuthorizationException,
    LoginRequiredRedirect,
)
from hdm_boot.modules import ModuleManager
from hdm_boot.models.user import User
from hdm_boot.repositories.article_repo import ArticleRepository
from hdm_boot.repositories.login_attempt_repo import LoginAttemptRepository
from hdm_boot.repositories.user_repo import UserRepository
from hdm_boot.services.auth_service import AuthenticationService
from hdm_boot.services.authorization_service import AuthorizationService
from hdm_boot.services.blog_service import BlogService
from hdm_boot.services.csrf_service import CsrfService
from hdm_boot.services.docs_service import DocsService
from hdm_boot.services.event_dispatcher import EventDispatcher
from hdm_boot.services.health_checks import HealthCheckManager
from hdm_boot.services.jwt_service import JwtService
from hdm_boot.services.locale_service import LocaleService
from hdm_boot.services.login_throttler import LoginThrottler, ThrottlePolicy
from hdm_boot.services.password import PasswordHasher
from hdm_boot.services.performance_monitor import PerformanceMonitor
from hdm_boot.services.session_service import SessionService
from hdm_boot.services.template_service import TemplateService
from hdm_boot.services.theme_service import ThemeService
from hdm_boot.services.user_service import UserService
from shared.metrics import AppMetrics

logger = structlog.get_logger(__name__)


# ============================================================================
# APPLICATION STATE
# ============================================================================


def get_settings_dependency(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_event_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.event_dispatcher


def get_app_metrics(request: Request) -> AppMetrics:
    return request.app.state.metrics


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


def get_jwt_service(request: Request) -> JwtService:
    return request.app.state.jwt_service


def get_authorization_service(request: Request) -> AuthorizationService:
    return request.app.state.authorization_service


def get_performance_monitor(request: Request) -> PerformanceMonitor:
    return request.app.state.performance_monitor


def get_health_manager(request: Request) -> HealthCheckManager:
    return request.app.state.health_manager


def get_module_manager(request: Request) -> ModuleManager:
    return request.app.state.module_manager


def get_locale_service(request: Request) -> LocaleService:
    return request.app.state.locale_service


def get_theme_service(request: Request) -> ThemeService:
    return request.app.state.theme_service


def get_template_service(request: Request) -> TemplateService:
    return request.app.state.template_service


# ============================================================================
# DATABASE SESSION
# ============================================================================


def get_db(database: Database = Depends(get_database)) -> Generator[Session, None, None]:
    """
    Request-scoped database session.

    Commits when the handler returns, rolls back when it raises.

    Example:
        @router.get("/users")
        def list_users(db: Session = Depends(get_db)):
            ...
    """
    db = database.SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ============================================================================
# REPOSITORY & SERVICE DEPENDENCIES
# ============================================================================


def get_user_repository(db: Session = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_user_service(
    user_repo: UserRepository = Depends(get_user_repository),
    hasher: PasswordHasher = Depends(get_password_hasher),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
    settings: Settings = Depends(get_settings_dependency),
) -> UserService:
    return UserService(user_repo, hasher, dispatcher, settings.password_min_length)


def get_login_throttler(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dependency),
) -> LoginThrottler:
    return LoginThrottler(LoginAttemptRepository(db), ThrottlePolicy.from_settings(settings))


def get_auth_service(
    user_service: UserService = Depends(get_user_service),
    jwt_service: JwtService = Depends(get_jwt_service),
    throttler: LoginThrottler = Depends(get_login_throttler),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
    metrics: AppMetrics = Depends(get_app_metrics),
) -> AuthenticationService:
    return AuthenticationService(user_service, jwt_service, throttler, dispatcher, metrics.security)


def get_csrf_service(request: Request) -> CsrfService:
    return CsrfService(request.session)


def get_session_service(
    request: Request,
    settings: Settings = Depends(get_settings_dependency),
) -> SessionService:
    return SessionService(request.session, settings.session_lifetime)


def get_blog_service(settings: Settings = Depends(get_settings_dependency)) -> BlogService:
    return BlogService(ArticleRepository(settings.articles_dir))


def get_docs_service(settings: Settings = Depends(get_settings_dependency)) -> DocsService:
    return DocsService(settings.docs_dir)


# ============================================================================
# AUTHENTICATION DEPENDENCIES
# ============================================================================


def get_bearer_token(request: Request) -> Optional[str]:
    return JwtService.extract_token_from_header(request.headers.get("Authorization"))


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> User:
    """
    Authenticated API user.

    Uses the user the auth middleware already resolved, otherwise validates
    the bearer token itself.

    Raises:
        AuthenticationException: missing, invalid or expired token; inactive user
    """
    user = getattr(request.state, "user", None)
    if user is not None:
        return user

    if not token:
        logger.warning("auth_missing_token", path=request.url.path, method=request.method)
        raise AuthenticationException.missing_credentials()

    user, jwt_token = auth_service.validate_token(token)
    request.state.user = user
    request.state.token = jwt_token
    return user


def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> Optional[User]:
    """Authenticated user if a valid token was sent, None otherwise."""
    user = getattr(request.state, "user", None)
    if user is not None or not token:
        return user

    try:
        user, jwt_token = auth_service.validate_token(token)
    except AuthenticationException as e:
        logger.debug("optional_auth_failed", error=str(e))
        return None

    request.state.user = user
    request.state.token = jwt_token
    return user


def require_permission(*permissions: str) -> Callable[..., User]:
    """
    Dependency factory requiring every listed permission.

    Example:
        @router.post("/api/users")
        def create_user(user: User = Depends(require_permission("user.create"))):
            ...
    """

    def dependency(
        user: User = Depends(get_current_user),
        authorization: AuthorizationService = Depends(get_authorization_service),
    ) -> User:
        for permission in permissions:
            if not authorization.has_permission(user, permission):
                logger.warning(
                    "access_denied_permission_required",
                    user_id=user.id,
                    role=user.role,
                    permission=permission,
                )
                raise AuthorizationException.insufficient_permissions(permission)
        return user

    return dependency


def require_web_user(
    session: SessionService = Depends(get_session_service),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """
    Logged-in browser user.

    Raises:
        LoginRequiredRedirect: no session login, or the user is gone or inactive
    """
    if not session.is_logged_in():
        raise LoginRequiredRedirect()

    user = user_service.get_user_by_id(session.get_user_id())
    if user is None or not user.is_active():
        session.logout_user()
        raise LoginRequiredRedirect()
    return user


# ============================================================================
# UTILITY DEPENDENCIES
# ============================================================================


def get_client_ip(request: Request) -> str:
    """
    Client IP address.

    Checks X-Forwarded-For first (for proxies), then the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, get the first one
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("User-Agent")


# ============================================================================
# PAGINATION DEPENDENCIES
# ============================================================================


class PaginationParams:
    """Page-based pagination parameters for list endpoints."""

    def __init__(self, page: int, limit: int, max_limit: int):
        self.page = max(1, page)
        self.limit = max(1, min(limit, max_limit))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def get_pagination_params(
    page: int = 1,
    limit: Optional[int] = None,
    settings: Settings = Depends(get_settings_dependency),
) -> PaginationParams:
    """
    Pagination parameters from the query string.

    Args:
        page: 1-based page number (default 1)
        limit: Page size (default from settings, clamped to the maximum)
    """
    return PaginationParams(
        page=page,
        limit=limit if limit is not None else settings.pagination_default_limit,
        max_limit=settings.pagination_max_limit,
    )
