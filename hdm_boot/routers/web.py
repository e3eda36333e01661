"""
Browser pages: home, login, logout and profile.

Login state lives in the signed session cookie. Forms carry one-time CSRF
tokens bound to an action name.
"""

import re
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from hdm_boot.dependencies import (
    get_app_metrics,
    get_auth_service,
    get_blog_service,
    get_client_ip,
    get_csrf_service,
    get_module_manager,
    get_session_service,
    get_template_service,
    get_user_agent,
    get_user_service,
    require_web_user,
)
from hdm_boot.exceptions import SecurityException
from hdm_boot.models.user import User
from hdm_boot.modules import ModuleManager
from hdm_boot.services.auth_service import AuthenticationService
from hdm_boot.services.blog_service import BlogService
from hdm_boot.services.csrf_service import CsrfService
from hdm_boot.services.session_service import SessionService
from hdm_boot.services.template_service import TemplateService
from hdm_boot.services.user_service import UserService
from shared.metrics import AppMetrics

logger = structlog.get_logger("security")

router = APIRouter(tags=["Web"], include_in_schema=False)
home_router = APIRouter(tags=["Web"], include_in_schema=False)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
LOGIN_ACTION = "login"
LOGOUT_ACTION = "logout"


def validate_login_form(email: str, password: str) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not email:
        errors["email"] = "Email is required"
    elif not EMAIL_RE.match(email):
        errors["email"] = "Invalid email format"
    if not password:
        errors["password"] = "Password is required"
    return errors


def login_page(
    request: Request,
    templates: TemplateService,
    csrf: CsrfService,
    status_code: int = status.HTTP_200_OK,
    error: Optional[str] = None,
    errors: Optional[Dict[str, str]] = None,
    email: str = "",
) -> HTMLResponse:
    context: Dict[str, Any] = {
        "csrf_token": csrf.generate_token(LOGIN_ACTION),
        "error": error,
        "errors": errors or {},
        "email": email,
    }
    return templates.render(request, "login.html", context, status_code=status_code)


# ============================================================================
# HOME
# ============================================================================


@home_router.get("/", response_class=HTMLResponse)
def home(
    request: Request,
    templates: TemplateService = Depends(get_template_service),
    modules: ModuleManager = Depends(get_module_manager),
    blog: BlogService = Depends(get_blog_service),
):
    articles = blog.recent(3) if modules.has_module("Blog") else []
    return templates.render(request, "home.html", {
        "articles": articles,
        "modules": modules.get_loaded_modules(),
    })


# ============================================================================
# LOGIN / LOGOUT
# ============================================================================


@router.get("/login", response_class=HTMLResponse)
def login_form(
    request: Request,
    session: SessionService = Depends(get_session_service),
    csrf: CsrfService = Depends(get_csrf_service),
    templates: TemplateService = Depends(get_template_service),
):
    if session.is_logged_in():
        return RedirectResponse("/profile", status_code=status.HTTP_302_FOUND)
    return login_page(request, templates, csrf)


@router.post("/login", response_class=HTMLResponse)
def login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    csrf_token: str = Form(""),
    session: SessionService = Depends(get_session_service),
    csrf: CsrfService = Depends(get_csrf_service),
    templates: TemplateService = Depends(get_template_service),
    auth_service: AuthenticationService = Depends(get_auth_service),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
    metrics: AppMetrics = Depends(get_app_metrics),
):
    """
    Handle the login form.

    Responses: 302 to /profile on success, 403 bad CSRF token, 422 invalid
    input, 401 bad credentials, 429 throttled.
    """
    email = email.strip().lower()
    t = templates.translator(request)

    try:
        csrf.validate_from_request({"csrf_token": csrf_token}, LOGIN_ACTION)
    except SecurityException as e:
        metrics.security.csrf_failures.labels(action=LOGIN_ACTION).inc()
        return login_page(
            request, templates, csrf,
            status_code=e.status_code,
            error=t("security.csrf_invalid"),
            email=email,
        )

    errors = validate_login_form(email, password)
    if errors:
        return login_page(
            request, templates, csrf,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            errors=errors,
            email=email,
        )

    try:
        user = auth_service.authenticate_for_web(email, password, client_ip, user_agent)
    except SecurityException as e:
        return login_page(
            request, templates, csrf,
            status_code=e.status_code,
            error=e.problem.detail,
            email=email,
        )

    if user is None:
        return login_page(
            request, templates, csrf,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error=t("auth.invalid_credentials"),
            email=email,
        )

    session.login_user(user)
    session.flash("success", t("auth.welcome", {"name": user.name}))
    return RedirectResponse("/profile", status_code=status.HTTP_302_FOUND)


def _logout(
    session: SessionService,
    auth_service: AuthenticationService,
    user_service: UserService,
    message: str,
) -> RedirectResponse:
    user_id = session.get_user_id()
    if user_id:
        user = user_service.get_user_by_id(user_id)
        if user is not None:
            auth_service.logout(user, channel="web")

    session.logout_user()
    session.flash("info", message)
    return RedirectResponse("/", status_code=status.HTTP_302_FOUND)


@router.get("/logout")
def logout_link(
    request: Request,
    session: SessionService = Depends(get_session_service),
    auth_service: AuthenticationService = Depends(get_auth_service),
    user_service: UserService = Depends(get_user_service),
    templates: TemplateService = Depends(get_template_service),
):
    return _logout(session, auth_service, user_service, templates.translator(request)("auth.logged_out"))


@router.post("/logout")
def logout_submit(
    request: Request,
    csrf_token: str = Form(""),
    session: SessionService = Depends(get_session_service),
    csrf: CsrfService = Depends(get_csrf_service),
    auth_service: AuthenticationService = Depends(get_auth_service),
    user_service: UserService = Depends(get_user_service),
    templates: TemplateService = Depends(get_template_service),
    metrics: AppMetrics = Depends(get_app_metrics),
):
    # The session is destroyed even when the token is wrong
    if not csrf.validate_token(csrf_token, LOGOUT_ACTION):
        logger.warning("logout_csrf_invalid", user_id=session.get_user_id())
        metrics.security.csrf_failures.labels(action=LOGOUT_ACTION).inc()
    return _logout(session, auth_service, user_service, templates.translator(request)("auth.logged_out"))


# ============================================================================
# PROFILE
# ============================================================================


@router.get("/profile", response_class=HTMLResponse)
def profile(
    request: Request,
    user: User = Depends(require_web_user),
    session: SessionService = Depends(get_session_service),
    csrf: CsrfService = Depends(get_csrf_service),
    templates: TemplateService = Depends(get_template_service),
):
    return templates.render(request, "profile.html", {
        "user": user,
        "session_info": session.get_session_info(),
        "logout_token": csrf.generate_token(LOGOUT_ACTION),
    })
