"""
Built-in module manifests.

Core modules always load. Optional modules (Home, Blog, Docs) load only when
listed in ENABLED_MODULES.
"""

from typing import List

import structlog
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from hdm_boot.middleware import register_exception_handlers
from hdm_boot.modules import ModuleManifest, ModuleType
from hdm_boot.routers import auth, blog, docs, language, monitoring, theme, users, web
from hdm_boot.services.health_checks import (
    DatabaseHealthCheck,
    DependencyHealthCheck,
    FilesystemHealthCheck,
)

logger = structlog.get_logger(__name__)


def init_monitoring(app: FastAPI) -> None:
    """Register the default health checks."""
    settings = app.state.settings
    manager = app.state.health_manager
    manager.register(DatabaseHealthCheck(app.state.database, settings.health_db_slow_seconds))
    manager.register(FilesystemHealthCheck(
        log_dir=settings.log_dir,
        temp_dir=settings.temp_dir,
        cache_dir=settings.cache_dir,
        base_dir=settings.var_dir,
        warning_percent=settings.health_disk_warning_percent,
        critical_percent=settings.health_disk_critical_percent,
    ))
    manager.register(DependencyHealthCheck())


def init_template(app: FastAPI) -> None:
    """Serve theme assets and expose module info to templates."""
    app.mount("/themes", StaticFiles(directory=app.state.settings.themes_dir, check_dir=False), name="themes")
    templates = app.state.template_service
    templates.add_global("app_version", app.state.settings.app_version)
    templates.add_global("has_module", app.state.module_manager.has_module)


def init_blog(app: FastAPI) -> None:
    articles_dir = app.state.settings.articles_dir
    articles_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("blog_articles_dir_ready", path=str(articles_dir))


def builtin_modules() -> List[ModuleManifest]:
    return [
        ModuleManifest(
            name="ErrorHandling",
            description="RFC 7807 problem responses",
            tags=["core", "errors"],
            initializer=register_exception_handlers,
        ),
        ModuleManifest(
            name="Database",
            description="SQLite storage",
            tags=["core", "storage"],
        ),
        ModuleManifest(
            name="User",
            description="User accounts and management API",
            dependencies=["Database"],
            tags=["core", "users"],
            routers=[users.router, users.admin_router],
        ),
        ModuleManifest(
            name="Security",
            description="Login, JWT, CSRF, sessions and throttling",
            dependencies=["User", "Template"],
            tags=["core", "security"],
            routers=[auth.auth_router, auth.csrf_router, auth.security_admin_router, web.router],
        ),
        ModuleManifest(
            name="Language",
            description="Locales and translations",
            tags=["core", "i18n"],
            routers=[language.router],
        ),
        ModuleManifest(
            name="Template",
            description="Jinja2 rendering and themes",
            dependencies=["Language"],
            tags=["core", "templates"],
            routers=[theme.router],
            initializer=init_template,
        ),
        ModuleManifest(
            name="Monitoring",
            description="Health checks, status and metrics",
            dependencies=["Database"],
            tags=["core", "monitoring"],
            routers=[monitoring.router],
            initializer=init_monitoring,
        ),
        ModuleManifest(
            name="Home",
            type=ModuleType.OPTIONAL,
            description="Home page",
            dependencies=["Template"],
            tags=["web"],
            routers=[web.home_router],
        ),
        ModuleManifest(
            name="Blog",
            type=ModuleType.OPTIONAL,
            description="Markdown articles with YAML front matter",
            dependencies=["Template"],
            tags=["web", "content"],
            routers=[blog.router, blog.api_router],
            initializer=init_blog,
        ),
        ModuleManifest(
            name="Docs",
            type=ModuleType.OPTIONAL,
            description="Markdown documentation browser",
            dependencies=["Template"],
            tags=["web", "docs"],
            routers=[docs.router],
        ),
    ]
