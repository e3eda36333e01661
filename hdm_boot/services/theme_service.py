"""
Theme discovery and selection.

A theme is a directory under themes_dir holding an optional theme.json,
a templates/ folder that overrides built-in templates and an assets/
folder with css and js files.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

THEME_CONFIG_FILE = "theme.json"


class ThemeService:
    """Lists themes and tracks the active one."""

    def __init__(self, themes_dir: Path, default_theme: str = "default"):
        self.themes_dir = Path(themes_dir)
        self.default_theme = default_theme
        self._active_theme = default_theme

    def get_available_themes(self) -> List[str]:
        if not self.themes_dir.is_dir():
            return []
        return sorted(
            path.name for path in self.themes_dir.iterdir()
            if path.is_dir() and not path.name.startswith((".", "_"))
        )

    def is_theme_available(self, theme: str) -> bool:
        return theme in self.get_available_themes()

    def set_active_theme(self, theme: str) -> None:
        """
        Switch the active theme.

        Raises:
            ValueError: unknown theme
        """
        if not self.is_theme_available(theme):
            raise ValueError(f"Theme '{theme}' is not available")
        previous, self._active_theme = self._active_theme, theme
        logger.info("theme_switched", previous=previous, theme=theme)

    def get_active_theme(self) -> str:
        return self._active_theme

    def get_theme_config(self, theme: Optional[str] = None) -> Dict[str, Any]:
        theme = theme or self._active_theme
        config: Dict[str, Any] = {
            "name": theme,
            "version": "1.0.0",
            "description": "",
            "author": "",
        }
        path = self.themes_dir / theme / THEME_CONFIG_FILE
        if path.is_file():
            try:
                config.update(json.loads(path.read_text(encoding="utf-8")))
            except json.JSONDecodeError as e:
                logger.warning("theme_config_invalid", theme=theme, error=str(e))
        return config

    def get_theme_assets(self, theme: Optional[str] = None) -> Dict[str, List[str]]:
        """Asset paths relative to the theme's assets directory."""
        theme = theme or self._active_theme
        assets_dir = self.themes_dir / theme / "assets"
        assets: Dict[str, List[str]] = {"css": [], "js": []}
        if not assets_dir.is_dir():
            return assets

        for kind in assets:
            assets[kind] = sorted(
                path.relative_to(assets_dir).as_posix()
                for path in assets_dir.rglob(f"*.{kind}")
                if path.is_file()
            )
        return assets

    def get_template_dirs(self, theme: Optional[str] = None) -> List[Path]:
        theme = theme or self._active_theme
        templates = self.themes_dir / theme / "templates"
        return [templates] if templates.is_dir() else []

    def describe(self) -> Dict[str, Any]:
        return {
            "active": self._active_theme,
            "default": self.default_theme,
            "themes": [self.get_theme_config(theme) for theme in self.get_available_themes()],
        }
