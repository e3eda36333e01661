"""
Language settings and translation API.

The chosen locale is stored in the "locale" cookie; LocaleMiddleware reads
it back on later requests.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from hdm_boot.dependencies import get_locale_service
from hdm_boot.exceptions import ProblemDetailsException
from hdm_boot.middleware.locale import LOCALE_COOKIE
from hdm_boot.models.problem import ProblemDetails
from hdm_boot.services.locale_service import LocaleService, language_code

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Language"])

COOKIE_MAX_AGE = 365 * 24 * 3600


class SetLanguageRequest(BaseModel):
    locale: Optional[str] = Field(None, description="Locale code, e.g. sk_SK or sk-SK")


class TranslateRequest(BaseModel):
    strings: List[str] = Field(default_factory=list, description="Translation keys")
    locale: Optional[str] = None


def bad_request(detail: str) -> ProblemDetailsException:
    return ProblemDetailsException(ProblemDetails.validation_error(detail))


def translations_payload(locales: LocaleService, keys: List[str], locale: Optional[str]) -> Dict[str, Any]:
    keys = [key for key in keys if key]
    if not keys:
        raise bad_request("No strings provided for translation")

    target = locales.resolve_locale(locale) if locale else locales.get_current_locale()
    translations = {key: locales.translate(key, locale=target) for key in keys}
    logger.debug("strings_translated", count=len(translations), locale=target)
    return {
        "success": True,
        "data": {
            "translations": translations,
            "locale": target,
            "language_code": language_code(target),
            "count": len(translations),
        },
    }


@router.get("/language", summary="Language Settings")
def get_language(locales: LocaleService = Depends(get_locale_service)) -> Dict[str, Any]:
    available = []
    for entry in locales.describe_locales():
        available.append(dict(entry, language_code=language_code(entry["code"])))
    return {
        "success": True,
        "data": {
            "current_locale": locales.get_current_locale(),
            "current_language_code": locales.get_current_language_code(),
            "available_locales": available,
            "language_path": locales.get_language_code_for_path(),
        },
    }


@router.post("/language", summary="Set Language")
def set_language(
    payload: SetLanguageRequest,
    request: Request,
    locales: LocaleService = Depends(get_locale_service),
) -> JSONResponse:
    if not payload.locale:
        raise bad_request("Locale is required")
    if not locales.is_locale_supported(payload.locale):
        raise bad_request("Unsupported locale")

    previous = getattr(request.state, "locale", None)
    locale = locales.set_language(payload.locale)
    request.state.locale = locale
    logger.info("language_changed", previous_locale=previous, new_locale=locale)

    response = JSONResponse({
        "success": True,
        "data": {
            "locale": locale,
            "language_code": language_code(locale),
            "message": locales.translate("language.changed", locale=locale),
        },
    })
    response.set_cookie(LOCALE_COOKIE, locale, max_age=COOKIE_MAX_AGE, httponly=False, samesite="lax")
    response.headers["Content-Language"] = locale.replace("_", "-")
    return response


@router.get("/translate", summary="Translate Keys")
def translate_get(
    key: List[str] = Query([], description="Translation key, repeatable"),
    locale: Optional[str] = None,
    locales: LocaleService = Depends(get_locale_service),
) -> Dict[str, Any]:
    return translations_payload(locales, key, locale)


@router.post("/translate", summary="Translate Keys")
def translate_post(
    payload: TranslateRequest,
    locales: LocaleService = Depends(get_locale_service),
) -> Dict[str, Any]:
    return translations_payload(locales, payload.strings, payload.locale)
