"""
Application configuration using Pydantic Settings.

Provides centralized configuration for:
- Application identity and environment (APP_ENV, APP_DEBUG)
- SQLite storage location
- Authentication (JWT_SECRET and token lifetime)
- Sessions, CSRF and login throttling
- Logging, monitoring and health thresholds
- Modules, themes, locales and content directories

All settings are read from environment variables without a prefix, so the
documented names (APP_ENV, APP_DEBUG, JWT_SECRET, ...) apply directly.
"""

from pathlib import Path
from typing import List, Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are loaded from:
    1. System environment
    2. .env file in the current directory
    3. Default values defined below
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(
        default="HDM Boot",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    app_env: str = Field(
        default="production",
        description="Environment: development|testing|staging|production"
    )
    app_debug: bool = Field(
        default=False,
        description="Debug mode - exposes exception details in error responses"
    )
    app_timezone: str = Field(
        default="UTC",
        description="Application timezone reported by the status endpoint"
    )

    host: str = Field(
        default="0.0.0.0",
        description="Bind host"
    )
    port: int = Field(
        default=8000,
        description="Bind port",
        gt=0,
        lt=65536
    )

    # =========================================================================
    # Database Settings (SQLite)
    # =========================================================================

    database_url: str = Field(
        default="sqlite:///var/storage/app.db",
        description="SQLAlchemy URL of the SQLite database file"
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL queries to logs"
    )
    admin_email: Optional[str] = Field(
        default=None,
        description="Seed an admin account with this email on first start"
    )
    admin_password: Optional[str] = Field(
        default=None,
        description="Password of the seeded admin account"
    )

    # =========================================================================
    # JWT Authentication Settings
    # =========================================================================

    jwt_secret: str = Field(
        ...,
        description="Secret key for JWT token signing",
        min_length=32
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    jwt_expiry: int = Field(
        default=3600,
        description="Access token lifetime in seconds",
        gt=0,
        le=86400 * 7
    )
    jwt_issuer: str = Field(
        default="hdm-boot",
        description="JWT issuer claim"
    )
    jwt_audience: str = Field(
        default="hdm-boot",
        description="JWT audience claim"
    )

    # =========================================================================
    # Password Hashing Settings
    # =========================================================================

    password_bcrypt_rounds: int = Field(
        default=12,
        description="BCrypt hash rounds",
        ge=4,
        le=14
    )
    password_min_length: int = Field(
        default=8,
        description="Minimum password length",
        ge=8,
        le=128
    )

    # =========================================================================
    # Session & CSRF Settings
    # =========================================================================

    session_secret: Optional[str] = Field(
        default=None,
        description="Secret used to sign the session cookie (defaults to JWT secret)"
    )
    session_cookie: str = Field(
        default="hdm_session",
        description="Session cookie name"
    )
    session_lifetime: int = Field(
        default=3600,
        description="Inactivity timeout of a logged-in session in seconds",
        gt=0
    )
    session_https_only: bool = Field(
        default=False,
        description="Send the session cookie over HTTPS only"
    )

    # =========================================================================
    # Login Throttling Settings
    # =========================================================================

    throttling_enabled: bool = Field(
        default=True,
        description="Enable login attempt throttling"
    )
    throttling_skip_localhost: bool = Field(
        default=True,
        description="Skip throttling for 127.0.0.1 and ::1"
    )
    throttle_user_max_attempts: int = Field(
        default=5,
        description="Failed attempts per email or IP before lockout",
        gt=0
    )
    throttle_user_window_minutes: int = Field(
        default=15,
        description="Window for per-user failed attempts",
        gt=0
    )
    throttle_global_max_attempts: int = Field(
        default=1000,
        description="Failed attempts across all users before captcha is required",
        gt=0
    )
    throttle_global_window_minutes: int = Field(
        default=5,
        description="Window for global failed attempts",
        gt=0
    )
    login_attempts_retention_days: int = Field(
        default=7,
        description="Days to keep login attempt rows",
        gt=0
    )

    # =========================================================================
    # CORS Settings
    # =========================================================================

    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG|INFO|WARNING|ERROR|CRITICAL"
    )
    log_format: str = Field(
        default="json",
        description="Log format: json|text"
    )

    # =========================================================================
    # Storage Paths
    # =========================================================================

    var_dir: Path = Field(
        default=Path("var"),
        description="Runtime data directory"
    )
    content_dir: Path = Field(
        default=Path("content"),
        description="Git-friendly content directory (articles)"
    )
    docs_dir: Path = Field(
        default=Path("docs"),
        description="Markdown documentation served under /docs"
    )

    # =========================================================================
    # Monitoring Settings
    # =========================================================================

    metrics_enabled: bool = Field(
        default=True,
        description="Expose Prometheus metrics at /metrics"
    )
    health_db_slow_seconds: float = Field(
        default=1.0,
        description="Database ping slower than this is degraded",
        gt=0
    )
    health_disk_warning_percent: float = Field(
        default=80.0,
        description="Disk usage at or above this is degraded",
        gt=0,
        le=100
    )
    health_disk_critical_percent: float = Field(
        default=90.0,
        description="Disk usage at or above this is unhealthy",
        gt=0,
        le=100
    )
    slow_query_seconds: float = Field(
        default=1.0,
        description="Database queries slower than this are logged as slow",
        gt=0
    )
    slow_request_seconds: float = Field(
        default=2.0,
        description="HTTP requests slower than this are logged as slow",
        gt=0
    )

    # =========================================================================
    # Modules, Themes & Locales
    # =========================================================================

    enabled_modules: List[str] = Field(
        default=["Home", "Blog", "Docs"],
        description="Optional modules to load in addition to the core modules"
    )
    default_theme: str = Field(
        default="default",
        description="Theme used for HTML pages"
    )
    themes_dir: Path = Field(
        default=BASE_DIR / "themes",
        description="Directory holding theme folders"
    )
    default_locale: str = Field(
        default="en_US",
        description="Default locale"
    )
    available_locales: List[str] = Field(
        default=["en_US", "sk_SK", "cs_CZ"],
        description="Enabled locales"
    )
    translations_dir: Path = Field(
        default=BASE_DIR / "translations",
        description="Directory holding <locale>.yaml catalogs"
    )

    # =========================================================================
    # Pagination Settings
    # =========================================================================

    pagination_default_limit: int = Field(
        default=20,
        description="Default page size",
        gt=0,
        le=100
    )
    pagination_max_limit: int = Field(
        default=100,
        description="Maximum page size",
        gt=0,
        le=1000
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got: {v}")
        return v_upper

    @field_validator("app_env")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = ["development", "testing", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"app_env must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Validate JWT algorithm is a supported HMAC algorithm."""
        allowed = ["HS256", "HS384", "HS512"]
        if v not in allowed:
            raise ValueError(f"jwt_algorithm must be one of {allowed}, got: {v}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        allowed = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("default_locale")
    @classmethod
    def validate_default_locale(cls, v: str) -> str:
        """Normalize locale codes to the underscore form (en_US)."""
        return v.replace("-", "_")

    @field_validator("available_locales")
    @classmethod
    def validate_available_locales(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("available_locales cannot be empty")
        return [locale.replace("-", "_") for locale in v]

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running under tests."""
        return self.app_env == "testing"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def throttling_active(self) -> bool:
        """Throttling is on unless disabled explicitly."""
        return self.throttling_enabled

    @property
    def session_secret_key(self) -> str:
        """Secret used by the session middleware."""
        return self.session_secret or self.jwt_secret

    @property
    def log_dir(self) -> Path:
        return self.var_dir / "logs"

    @property
    def cache_dir(self) -> Path:
        return self.var_dir / "cache"

    @property
    def temp_dir(self) -> Path:
        return self.var_dir / "tmp"

    @property
    def articles_dir(self) -> Path:
        return self.content_dir / "articles"

    # =========================================================================
    # Model Config
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and shared
    across the application.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from hdm_boot.config import get_settings
        >>> settings = get_settings()
        >>> settings.jwt_expiry
        3600
    """
    return Settings()


def clear_settings_cache():
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
