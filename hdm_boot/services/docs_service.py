"""
Read-only viewer over the Markdown documentation directory.
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from hdm_boot.exceptions import NotFoundException
from hdm_boot.services.blog_service import render_markdown

logger = structlog.get_logger(__name__)

HEADING_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)
INDEX_NAMES = ("README.md", "index.md")


class DocsService:
    """Lists and renders Markdown files below docs_dir."""

    def __init__(self, docs_dir: Path):
        self.docs_dir = Path(docs_dir)

    @staticmethod
    def title_of(text: str, fallback: str) -> str:
        match = HEADING_RE.search(text)
        return match.group(1).strip() if match else fallback

    def _fallback_title(self, path: Path) -> str:
        return path.stem.replace("-", " ").replace("_", " ").title()

    def list_documents(self) -> Dict[str, List[Dict[str, str]]]:
        """Documents grouped by directory ("" for the top level), sorted by path."""
        groups: Dict[str, List[Dict[str, str]]] = {}
        if not self.docs_dir.is_dir():
            return groups

        root = self.docs_dir.resolve()
        for path in sorted(root.rglob("*.md")):
            relative = path.relative_to(root)
            if any(part.startswith(".") for part in relative.parts):
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("doc_read_failed", file=str(relative), error=str(e))
                continue
            group = relative.parent.as_posix() if relative.parent != Path(".") else ""
            groups.setdefault(group, []).append({
                "path": relative.with_suffix("").as_posix(),
                "title": self.title_of(text, self._fallback_title(path)),
            })
        return groups

    def resolve(self, path: str) -> Optional[Path]:
        """
        Map a URL path to a Markdown file inside docs_dir.

        Returns None for missing files and for paths escaping docs_dir.
        """
        root = self.docs_dir.resolve()
        clean = path.strip("/")
        if not clean:
            candidates = [root / name for name in INDEX_NAMES]
        else:
            target = root / clean
            candidates = [target] if target.suffix == ".md" else [
                target.with_name(target.name + ".md"),
                *(target / name for name in INDEX_NAMES),
            ]

        for candidate in candidates:
            resolved = candidate.resolve()
            if not resolved.is_relative_to(root):
                logger.warning("doc_path_rejected", path=path)
                return None
            if resolved.is_file():
                return resolved
        return None

    def get_document(self, path: str) -> Dict[str, Any]:
        """
        Load and render one document.

        Raises:
            NotFoundException: missing, unreadable or outside the docs directory
        """
        resolved = self.resolve(path)
        if resolved is None:
            raise NotFoundException(f"Documentation page '{path}' not found")

        try:
            text = resolved.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("doc_read_failed", file=str(resolved), error=str(e))
            raise NotFoundException(f"Documentation page '{path}' not found") from e
        relative = resolved.relative_to(self.docs_dir.resolve())
        return {
            "path": relative.with_suffix("").as_posix(),
            "title": self.title_of(text, self._fallback_title(resolved)),
            "html": render_markdown(text),
            "source": text,
        }
