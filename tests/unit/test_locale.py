"""
Unit tests for locales and translations.

Tests cover:
- Locale normalization and resolution
- Accept-Language negotiation
- Catalog lookup with fallback to the default locale and the key
- Parameter substitution and plurals
- Bundled catalogs
"""

import pytest
import yaml

from hdm_boot.config import BASE_DIR
from hdm_boot.services.locale_service import LocaleService, language_code, normalize_locale


@pytest.fixture
def translations_dir(tmp_path):
    directory = tmp_path / "translations"
    directory.mkdir()
    (directory / "en_US.yaml").write_text(yaml.safe_dump({
        "greeting": "Hello {name}",
        "only.english": "English only",
        "item.one": "{count} item",
        "item.many": "{count} items",
    }), encoding="utf-8")
    (directory / "sk_SK.yaml").write_text(yaml.safe_dump({
        "greeting": "Ahoj {name}",
    }), encoding="utf-8")
    return directory


@pytest.fixture
def locales(translations_dir) -> LocaleService:
    service = LocaleService("en_US", ["en_US", "sk_SK", "cs_CZ"], translations_dir)
    yield service
    service.set_language("en_US")


# ============================================================================
# HELPERS
# ============================================================================


class TestLocaleHelpers:
    """Tests for locale code helpers."""

    @pytest.mark.parametrize("value,expected", [
        ("sk-SK", "sk_SK"),
        (" en_US ", "en_US"),
        ("", None),
        (None, None),
    ])
    def test_normalize_locale(self, value, expected):
        """Test dashes become underscores."""
        assert normalize_locale(value) == expected

    def test_language_code(self):
        """Test the language part is lowercased."""
        assert language_code("sk_SK") == "sk"
        assert language_code("EN-us") == "en"
        assert language_code(None) is None


# ============================================================================
# LOCALE SELECTION
# ============================================================================


class TestLocaleSelection:
    """Tests for resolving and switching locales."""

    def test_default_added_to_available(self, translations_dir):
        """Test the default locale is always available."""
        service = LocaleService("de_DE", ["en_US"], translations_dir)

        assert service.get_available_locales() == ["de_DE", "en_US"]

    def test_resolve_exact_and_by_language(self, locales):
        """Test resolution falls back by language, then to the default."""
        assert locales.resolve_locale("sk-SK") == "sk_SK"
        assert locales.resolve_locale("sk") == "sk_SK"
        assert locales.resolve_locale("cs_XX") == "cs_CZ"
        assert locales.resolve_locale("fr_FR") == "en_US"
        assert locales.resolve_locale(None) == "en_US"

    def test_set_language_updates_current(self, locales):
        """Test the current locale follows set_language."""
        assert locales.set_language("sk") == "sk_SK"

        assert locales.get_current_locale() == "sk_SK"
        assert locales.get_current_language_code() == "sk"
        assert locales.get_language_code_for_path() == "/sk"

    def test_english_path_prefix_is_empty(self, locales):
        """Test English lives at the site root."""
        locales.set_language("en_US")

        assert locales.get_language_code_for_path() == ""

    def test_supported(self, locales):
        """Test support checks accept both separators."""
        assert locales.is_locale_supported("cs-CZ")
        assert not locales.is_locale_supported("de_DE")

    def test_describe_locales(self, locales):
        """Test locale metadata for the language switcher."""
        described = locales.describe_locales()

        assert [entry["code"] for entry in described] == ["en_US", "sk_SK", "cs_CZ"]
        assert described[1]["native_name"] == "Slovenčina"

    @pytest.mark.parametrize("header,expected", [
        ("sk-SK,sk;q=0.9,en;q=0.8", "sk_SK"),
        ("fr-FR;q=0.9, cs;q=0.8", "cs_CZ"),
        ("en;q=0.5, sk;q=0.9", "sk_SK"),
        ("fr-FR, de", None),
        ("sk;q=0, fr", None),
        ("sk;q=0.0, cs;q=0.3", "cs_CZ"),
        ("*", None),
        ("", None),
    ])
    def test_accept_language(self, locales, header, expected):
        """Test negotiation honours quality values."""
        assert locales.detect_from_accept_language(header) == expected


# ============================================================================
# TRANSLATION
# ============================================================================


class TestTranslation:
    """Tests for message translation."""

    def test_translate_with_params(self, locales):
        """Test parameters are substituted."""
        assert locales.translate("greeting", {"name": "Jane"}, locale="sk_SK") == "Ahoj Jane"

    def test_falls_back_to_default_locale(self, locales):
        """Test missing keys use the English catalog."""
        assert locales.translate("only.english", locale="sk_SK") == "English only"

    def test_missing_catalog_uses_default(self, locales):
        """Test a locale without a catalog still translates."""
        assert locales.translate("greeting", {"name": "Jan"}, locale="cs_CZ") == "Hello Jan"

    def test_unknown_key_returns_key(self, locales):
        """Test untranslated keys are returned as is."""
        assert locales.translate("does.not.exist") == "does.not.exist"

    def test_uses_current_locale(self, locales):
        """Test translate() follows the current locale."""
        locales.set_language("sk_SK")

        assert locales.translate("greeting", {"name": "Eva"}) == "Ahoj Eva"

    def test_plural(self, locales):
        """Test singular and plural keys are chosen by count."""
        assert locales.translate_plural("item.one", "item.many", 1) == "1 item"
        assert locales.translate_plural("item.one", "item.many", 3) == "3 items"

    def test_reload_picks_up_changes(self, locales, translations_dir):
        """Test catalogs are cached until reload."""
        assert locales.translate("greeting", {"name": "A"}, locale="en_US") == "Hello A"
        (translations_dir / "en_US.yaml").write_text("greeting: Hi {name}\n", encoding="utf-8")

        assert locales.translate("greeting", {"name": "A"}, locale="en_US") == "Hello A"
        locales.reload()
        assert locales.translate("greeting", {"name": "A"}, locale="en_US") == "Hi A"


class TestBundledCatalogs:
    """Tests for the catalogs shipped with the application."""

    @pytest.mark.parametrize("locale", ["en_US", "sk_SK", "cs_CZ"])
    def test_catalog_is_flat_mapping(self, locale):
        """Test every bundled catalog loads as a flat string mapping."""
        data = yaml.safe_load((BASE_DIR / "translations" / f"{locale}.yaml").read_text(encoding="utf-8"))

        assert isinstance(data, dict)
        assert all(isinstance(value, str) for value in data.values())

    def test_slovak_covers_english_keys(self):
        """Test the Slovak catalog is complete."""
        directory = BASE_DIR / "translations"
        english = yaml.safe_load((directory / "en_US.yaml").read_text(encoding="utf-8"))
        slovak = yaml.safe_load((directory / "sk_SK.yaml").read_text(encoding="utf-8"))

        assert set(english) <= set(slovak)
