"""
Locales and translations.

Catalogs are YAML files named <locale>.yaml in the translations directory,
each a flat mapping of message key to translated text. The current locale
lives in a context variable so concurrent requests do not share it.
"""

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import structlog
import yaml

logger = structlog.get_logger(__name__)

LOCALE_METADATA: Dict[str, Dict[str, str]] = {
    "en_US": {"name": "English", "native_name": "English", "flag": "🇺🇸"},
    "sk_SK": {"name": "Slovak", "native_name": "Slovenčina", "flag": "🇸🇰"},
    "cs_CZ": {"name": "Czech", "native_name": "Čeština", "flag": "🇨🇿"},
    "de_DE": {"name": "German", "native_name": "Deutsch", "flag": "🇩🇪"},
}
DEFAULT_FLAG = "🌍"

_current_locale: ContextVar[Optional[str]] = ContextVar("current_locale", default=None)


def normalize_locale(locale: Optional[str]) -> Optional[str]:
    if not locale:
        return None
    return locale.strip().replace("-", "_")


def language_code(locale: Optional[str]) -> Optional[str]:
    normalized = normalize_locale(locale)
    return normalized.split("_")[0].lower() if normalized else None


class LocaleService:
    """Locale selection and message translation."""

    def __init__(
        self,
        default_locale: str = "en_US",
        available_locales: Optional[List[str]] = None,
        translations_dir: Optional[Path] = None,
    ):
        self.default_locale = normalize_locale(default_locale) or "en_US"
        self.available_locales = [
            normalize_locale(locale) for locale in (available_locales or [self.default_locale])
        ]
        if self.default_locale not in self.available_locales:
            self.available_locales.insert(0, self.default_locale)
        self.translations_dir = Path(translations_dir) if translations_dir else None
        self._catalogs: Dict[str, Dict[str, Any]] = {}

    # =========================================================================
    # Catalogs
    # =========================================================================

    def _catalog(self, locale: str) -> Dict[str, Any]:
        if locale in self._catalogs:
            return self._catalogs[locale]

        catalog: Dict[str, Any] = {}
        if self.translations_dir is not None:
            path = self.translations_dir / f"{locale}.yaml"
            if path.is_file():
                with path.open(encoding="utf-8") as fh:
                    loaded = yaml.safe_load(fh) or {}
                if isinstance(loaded, dict):
                    catalog = loaded
                else:
                    logger.warning("translation_catalog_invalid", locale=locale, file=str(path))
            elif locale != "en_US":
                logger.warning("translation_file_not_found", locale=locale, file=str(path))

        self._catalogs[locale] = catalog
        return catalog

    def reload(self) -> None:
        self._catalogs.clear()

    # =========================================================================
    # Locale selection
    # =========================================================================

    def resolve_locale(self, locale: Optional[str]) -> str:
        """Pick the supported locale for a request, falling back by language, then to the default."""
        normalized = normalize_locale(locale)
        if normalized in self.available_locales:
            return normalized

        code = language_code(normalized)
        if code:
            for available in self.available_locales:
                if language_code(available) == code:
                    return available

        return self.default_locale

    def set_language(self, locale: Optional[str]) -> str:
        resolved = self.resolve_locale(locale)
        _current_locale.set(resolved)
        logger.debug("language_set", requested=locale, locale=resolved)
        return resolved

    def get_current_locale(self) -> str:
        return _current_locale.get() or self.default_locale

    def get_current_language_code(self) -> str:
        return language_code(self.get_current_locale()) or "en"

    def get_language_code_for_path(self) -> str:
        """URL prefix for the current language; English lives at the root."""
        code = self.get_current_language_code()
        return "" if code == "en" else f"/{code}"

    def get_available_locales(self) -> List[str]:
        return list(self.available_locales)

    def is_locale_supported(self, locale: str) -> bool:
        return normalize_locale(locale) in self.available_locales

    def get_locale_display_name(self, locale: str) -> str:
        return LOCALE_METADATA.get(locale, {}).get("name", locale)

    def get_locale_native_name(self, locale: str) -> str:
        return LOCALE_METADATA.get(locale, {}).get("native_name", locale)

    def get_locale_flag(self, locale: str) -> str:
        return LOCALE_METADATA.get(locale, {}).get("flag", DEFAULT_FLAG)

    def describe_locales(self) -> List[Dict[str, str]]:
        return [
            {
                "code": locale,
                "name": self.get_locale_display_name(locale),
                "native_name": self.get_locale_native_name(locale),
                "flag": self.get_locale_flag(locale),
            }
            for locale in self.available_locales
        ]

    def detect_from_accept_language(self, header: Optional[str]) -> Optional[str]:
        """
        Best supported locale from an Accept-Language header.

        Returns None when no listed language is supported.
        """
        if not header:
            return None

        candidates = []
        for position, part in enumerate(header.split(",")):
            pieces = part.strip().split(";")
            tag = pieces[0].strip()
            if not tag or tag == "*":
                continue
            quality = 1.0
            for param in pieces[1:]:
                name, _, value = param.strip().partition("=")
                if name == "q":
                    try:
                        quality = float(value)
                    except ValueError:
                        quality = 0.0
            # q=0 means "not acceptable"
            if quality <= 0:
                continue
            candidates.append((-quality, position, tag))

        for _, _, tag in sorted(candidates):
            normalized = normalize_locale(tag)
            if normalized in self.available_locales:
                return normalized
            code = language_code(normalized)
            for available in self.available_locales:
                if language_code(available) == code:
                    return available
        return None

    # =========================================================================
    # Translation
    # =========================================================================

    def translate(
        self,
        key: str,
        params: Optional[Mapping[str, Any]] = None,
        locale: Optional[str] = None,
    ) -> str:
        """Translate a key, falling back to the default locale and then to the key itself."""
        target = self.resolve_locale(locale) if locale else self.get_current_locale()
        message = self._catalog(target).get(key)
        if message is None and target != self.default_locale:
            message = self._catalog(self.default_locale).get(key)
        if not isinstance(message, str) or not message:
            message = key

        for name, value in (params or {}).items():
            message = message.replace("{" + str(name) + "}", str(value))
        return message

    def translate_plural(
        self,
        singular: str,
        plural: str,
        count: int,
        params: Optional[Mapping[str, Any]] = None,
        locale: Optional[str] = None,
    ) -> str:
        values = {"count": count}
        values.update(params or {})
        return self.translate(singular if count == 1 else plural, values, locale)
