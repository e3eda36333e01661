"""
FastAPI application entry point for HDM Boot.

This module builds the application with:
- Core and optional modules loaded by the module manager
- JWT authentication for the API and signed-cookie sessions for pages
- RFC 7807 error responses
- Request logging, Prometheus metrics and a performance log
- Health checks and status endpoints
- CORS, compression and security headers
- SQLite schema creation and admin seeding at startup
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.sessions import SessionMiddleware

from hdm_boot.config import Settings, get_settings
from hdm_boot.database import Database
from hdm_boot.middleware import (
    AuthMiddleware,
    ErrorHandlerMiddleware,
    LocaleMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from hdm_boot.modules import ModuleManager
from hdm_boot.repositories.login_attempt_repo import LoginAttemptRepository
from hdm_boot.repositories.user_repo import UserRepository
from hdm_boot.services.authorization_service import AuthorizationService
from hdm_boot.services.event_dispatcher import EventDispatcher, register_default_listeners
from hdm_boot.services.health_checks import HealthCheckManager
from hdm_boot.services.jwt_service import JwtService
from hdm_boot.services.locale_service import LocaleService
from hdm_boot.services.login_throttler import LoginThrottler, ThrottlePolicy
from hdm_boot.services.password import PasswordHasher
from hdm_boot.services.performance_monitor import PerformanceMonitor
from hdm_boot.services.template_service import TemplateService
from hdm_boot.services.theme_service import ThemeService
from hdm_boot.services.user_service import UserService
from shared.logging import attach_file_handler, configure_logging
from shared.metrics import setup_metrics

logger = structlog.get_logger(__name__)


# ============================================================================
# Startup Tasks
# ============================================================================


def prepare_storage(settings: Settings) -> None:
    for directory in (settings.log_dir, settings.cache_dir, settings.temp_dir):
        directory.mkdir(parents=True, exist_ok=True)


def seed_admin(app: FastAPI) -> None:
    settings: Settings = app.state.settings
    if not (settings.admin_email and settings.admin_password):
        return

    with app.state.database.session() as db:
        service = UserService(UserRepository(db), app.state.password_hasher, app.state.event_dispatcher)
        service.ensure_admin(settings.admin_email, settings.admin_password)


def clean_login_attempts(app: FastAPI) -> None:
    settings: Settings = app.state.settings
    with app.state.database.session() as db:
        throttler = LoginThrottler(LoginAttemptRepository(db), ThrottlePolicy.from_settings(settings))
        throttler.clean_old_attempts()


# ============================================================================
# Lifespan Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Runtime directories and database schema
    - Admin account seeding
    - Login attempt retention
    - Engine disposal on shutdown
    """
    settings: Settings = app.state.settings
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.app_env,
    )

    try:
        prepare_storage(settings)
        app.state.database.create_all()
        seed_admin(app)
        clean_login_attempts(app)

        logger.info(
            "application_started",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.app_env,
            modules=list(app.state.module_manager.get_loaded_modules()),
        )
        yield
    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("application_shutting_down")
        app.state.database.dispose()
        logger.info("application_shutdown_complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build a fully wired application.

    Args:
        settings: Settings to use; read from the environment when omitted

    Returns:
        The FastAPI application
    """
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        service_name=settings.app_name,
        environment=settings.app_env,
    )
    attach_file_handler("performance", settings.log_dir / "performance.log")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Modular monolith with authentication, user management, blog and docs modules.",
        # /docs belongs to the documentation module
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
        debug=settings.app_debug,
    )

    # ========================================================================
    # Shared Services
    # ========================================================================

    state = app.state
    state.settings = settings
    state.started_at = time.time()
    state.metrics = setup_metrics()
    state.database = Database(settings.database_url, echo=settings.database_echo)
    state.event_dispatcher = EventDispatcher()
    register_default_listeners(state.event_dispatcher)
    state.password_hasher = PasswordHasher(rounds=settings.password_bcrypt_rounds)
    state.jwt_service = JwtService(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expiry=settings.jwt_expiry,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
    )
    state.authorization_service = AuthorizationService()
    state.performance_monitor = PerformanceMonitor(
        slow_query_seconds=settings.slow_query_seconds,
        slow_request_seconds=settings.slow_request_seconds,
    )
    state.database.attach_query_monitor(state.performance_monitor)
    state.health_manager = HealthCheckManager()
    state.locale_service = LocaleService(
        default_locale=settings.default_locale,
        available_locales=settings.available_locales,
        translations_dir=settings.translations_dir,
    )
    state.theme_service = ThemeService(settings.themes_dir, settings.default_theme)
    state.template_service = TemplateService(
        state.theme_service,
        state.locale_service,
        app_name=settings.app_name,
        session_lifetime=settings.session_lifetime,
    )

    # ========================================================================
    # Middleware Configuration (last added runs first)
    # ========================================================================

    app.add_middleware(LocaleMiddleware, locale_service=state.locale_service)
    app.add_middleware(AuthMiddleware, required=False)
    # Wraps token validation, so its failures become problem responses too
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.app_debug)
    app.add_middleware(
        RequestLoggingMiddleware,
        metrics=state.metrics.http,
        monitor=state.performance_monitor,
    )
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        session_cookie=settings.session_cookie,
        https_only=settings.session_https_only,
        same_site="lax",
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    if settings.cors_enabled:
        logger.info("configuring_cors", origins=settings.cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # ========================================================================
    # Modules
    # ========================================================================

    manager = ModuleManager()
    state.module_manager = manager
    manager.discover_modules(settings.enabled_modules)
    manager.initialize_modules(app)

    return app


# ============================================================================
# Application Entry Point
# ============================================================================


def run() -> None:
    """Serve the application with uvicorn."""
    settings = get_settings()
    logger.info(
        "starting_uvicorn_server",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )

    uvicorn.run(
        "hdm_boot.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    run()
