"""
Article repository over a directory of Markdown files.

Each article is <slug>.md:

    ---
    title: Hello
    published: true
    ---
    Markdown body
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog
import yaml

from hdm_boot.models.article import Article

logger = structlog.get_logger(__name__)

FRONT_MATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*\n?(.*)\Z", re.DOTALL)
SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


def split_front_matter(text: str) -> Tuple[Dict, str]:
    match = FRONT_MATTER_RE.match(text)
    if not match:
        return {}, text
    meta = yaml.safe_load(match.group(1)) or {}
    if not isinstance(meta, dict):
        raise ValueError("Front matter must be a mapping")
    return meta, match.group(2)


def render_front_matter(article: Article) -> str:
    header = yaml.safe_dump(article.front_matter(), sort_keys=False, allow_unicode=True)
    return f"---\n{header}---\n{article.content}"


class ArticleRepository:
    """Loads and stores articles as files in one directory."""

    def __init__(self, articles_dir: Path):
        self.articles_dir = Path(articles_dir)

    def _path(self, slug: str) -> Path:
        if not SLUG_RE.match(slug):
            raise ValueError(f"Invalid article slug: {slug!r}")
        return self.articles_dir / f"{slug}.md"

    def _load(self, path: Path) -> Optional[Article]:
        try:
            meta, body = split_front_matter(path.read_text(encoding="utf-8"))
            meta.setdefault("slug", path.stem)
            meta["content"] = body
            return Article.from_dict(meta)
        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.warning("article_load_failed", file=str(path), error=str(e))
            return None

    def all(self) -> List[Article]:
        if not self.articles_dir.is_dir():
            return []
        articles = []
        for path in sorted(self.articles_dir.glob("*.md")):
            article = self._load(path)
            if article is not None:
                articles.append(article)
        return articles

    def find(self, slug: str) -> Optional[Article]:
        try:
            path = self._path(slug)
        except ValueError:
            return None
        if not path.is_file():
            return None
        return self._load(path)

    def exists(self, slug: str) -> bool:
        return self.find(slug) is not None

    def save(self, article: Article) -> Article:
        path = self._path(article.slug)
        try:
            self.articles_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(render_front_matter(article), encoding="utf-8")
        except OSError as e:
            logger.error("article_save_failed", slug=article.slug, error=str(e))
            raise
        logger.info("article_saved", slug=article.slug)
        return article

    def delete(self, slug: str) -> bool:
        try:
            path = self._path(slug)
        except ValueError:
            return False
        if not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error("article_delete_failed", slug=slug, error=str(e))
            raise
        logger.info("article_deleted", slug=slug)
        return True
