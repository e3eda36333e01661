"""
Locale selection per request.

Order: ?lang= query parameter, the locale cookie, Accept-Language,
then the default locale.
"""

from typing import Callable

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from hdm_boot.services.locale_service import LocaleService

logger = structlog.get_logger(__name__)

LOCALE_COOKIE = "locale"


class LocaleMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, locale_service: LocaleService, cookie_name: str = LOCALE_COOKIE):
        super().__init__(app)
        self.locale_service = locale_service
        self.cookie_name = cookie_name

    def _requested_locale(self, request: Request):
        lang = request.query_params.get("lang")
        if lang and self.locale_service.is_locale_supported(lang):
            return lang
        cookie = request.cookies.get(self.cookie_name)
        if cookie and self.locale_service.is_locale_supported(cookie):
            return cookie
        return self.locale_service.detect_from_accept_language(request.headers.get("Accept-Language"))

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        locale = self.locale_service.set_language(self._requested_locale(request))
        request.state.locale = locale

        response = await call_next(request)
        response.headers.setdefault("Content-Language", locale.replace("_", "-"))
        return response
