"""
HTML rendering with Jinja2.

Templates are looked up in the active theme's templates/ directory first,
then in the built-in hdm_boot/templates. One Environment is kept per theme.
"""

import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog
from jinja2 import ChoiceLoader, Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from starlette.requests import Request
from starlette.responses import HTMLResponse

from hdm_boot.services.csrf_service import CsrfService
from hdm_boot.services.locale_service import LocaleService
from hdm_boot.services.session_service import SessionService
from hdm_boot.services.theme_service import ThemeService

logger = structlog.get_logger(__name__)

BUILTIN_TEMPLATES = Path(__file__).resolve().parent.parent / "templates"


class TemplateService:
    """Renders pages for the active theme."""

    def __init__(
        self,
        theme_service: ThemeService,
        locale_service: LocaleService,
        app_name: str = "HDM Boot",
        template_dirs: Optional[List[Path]] = None,
        session_lifetime: int = 3600,
    ):
        self.theme_service = theme_service
        self.locale_service = locale_service
        self.app_name = app_name
        self.template_dirs = [Path(p) for p in (template_dirs or [BUILTIN_TEMPLATES])]
        self.session_lifetime = session_lifetime
        self._environments: Dict[str, Environment] = {}
        self._globals: Dict[str, Any] = {}

    def _build_environment(self, theme: str) -> Environment:
        search_path = self.theme_service.get_template_dirs(theme) + self.template_dirs
        env = Environment(
            loader=ChoiceLoader([FileSystemLoader(str(path)) for path in search_path]),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.globals.update(
            app_name=self.app_name,
            t=self.locale_service.translate,
            tp=self.locale_service.translate_plural,
        )
        env.globals.update(self._globals)
        return env

    @property
    def environment(self) -> Environment:
        theme = self.theme_service.get_active_theme()
        env = self._environments.get(theme)
        if env is None:
            env = self._build_environment(theme)
            self._environments[theme] = env
        return env

    def add_global(self, name: str, value: Any) -> None:
        self._globals[name] = value
        for env in self._environments.values():
            env.globals[name] = value

    def template_exists(self, name: str) -> bool:
        try:
            self.environment.get_template(name)
        except TemplateNotFound:
            return False
        return True

    def render_string(self, name: str, context: Optional[Dict[str, Any]] = None) -> str:
        started = time.perf_counter()
        theme = self.theme_service.get_active_theme()
        template = self.environment.get_template(name)
        content = template.render(theme=theme, **(context or {}))
        logger.debug(
            "template_rendered",
            template=name,
            theme=theme,
            render_time_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return content

    def translator(self, request: Request) -> Callable[..., str]:
        """translate() bound to the request locale."""
        locale = getattr(request.state, "locale", None) or self.locale_service.get_current_locale()

        def translate(key: str, params: Optional[Dict[str, Any]] = None) -> str:
            return self.locale_service.translate(key, params, locale)

        return translate

    def request_context(self, request: Request) -> Dict[str, Any]:
        """Per-request globals: CSRF inputs, session user, flash messages and locale."""
        session = request.session if "session" in request.scope else {}
        csrf = CsrfService(session)
        session_service = SessionService(session, self.session_lifetime)
        locale = getattr(request.state, "locale", None) or self.locale_service.get_current_locale()

        return {
            "t": self.translator(request),
            "request": request,
            "csrf_input": csrf.get_hidden_input,
            "current_user": session_service.get_user_data() if session_service.get_user_id() else None,
            "flash_messages": session_service.get_flash_messages(),
            "locale": locale,
            "locales": self.locale_service.describe_locales(),
            "assets": self.theme_service.get_theme_assets(),
        }

    def render(
        self,
        request: Request,
        name: str,
        context: Optional[Dict[str, Any]] = None,
        status_code: int = 200,
    ) -> HTMLResponse:
        values = self.request_context(request)
        values.update(context or {})
        return HTMLResponse(self.render_string(name, values), status_code=status_code)
