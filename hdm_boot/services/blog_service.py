"""
Blog queries and article management.
"""

from collections import Counter
from typing import Any, Dict, List, Optional

import markdown
import structlog
from markdown.extensions import Extension

from hdm_boot.database import utcnow
from hdm_boot.exceptions import ConflictException, NotFoundException, ProblemDetailsException
from hdm_boot.models.article import Article, parse_datetime, slugify
from hdm_boot.models.problem import ProblemDetails
from hdm_boot.repositories.article_repo import ArticleRepository

logger = structlog.get_logger(__name__)

MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "toc"]
UPDATABLE_FIELDS = (
    "title", "content", "author", "excerpt", "published",
    "published_at", "featured", "category", "tags",
)


class EscapeHtmlExtension(Extension):
    """Treat raw HTML in Markdown as text so it is escaped on output."""

    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")


def render_markdown(text: str) -> str:
    return markdown.markdown(
        text,
        extensions=[*MARKDOWN_EXTENSIONS, EscapeHtmlExtension()],
        output_format="html",
    )


class BlogService:
    """Published-article queries plus CRUD for editors."""

    def __init__(self, repository: ArticleRepository):
        self.repository = repository

    # =========================================================================
    # Queries
    # =========================================================================

    def all(self) -> List[Article]:
        return self.repository.all()

    def published(self) -> List[Article]:
        now = utcnow()
        return [article for article in self.repository.all() if article.is_published(now)]

    def featured(self) -> List[Article]:
        return [article for article in self.published() if article.featured]

    def by_category(self, category: str) -> List[Article]:
        return [article for article in self.published() if article.category == category]

    def by_tag(self, tag: str) -> List[Article]:
        return [article for article in self.published() if tag in article.tags]

    def recent(self, limit: int = 10) -> List[Article]:
        articles = sorted(
            self.published(),
            key=lambda article: article.published_at or article.created_at,
            reverse=True,
        )
        return articles[:limit]

    def search(self, query: str) -> List[Article]:
        needle = query.strip().lower()
        if not needle:
            return []
        return [
            article for article in self.published()
            if needle in article.title.lower()
            or needle in article.content.lower()
            or needle in (article.excerpt or "").lower()
        ]

    def get_categories(self) -> List[str]:
        return sorted({article.category for article in self.published() if article.category})

    def get_tags(self) -> List[str]:
        return sorted({tag for article in self.published() for tag in article.tags if tag})

    def find(self, slug: str, include_unpublished: bool = False) -> Optional[Article]:
        article = self.repository.find(slug)
        if article is None:
            return None
        if not include_unpublished and not article.is_published():
            return None
        return article

    def get_article_or_fail(self, slug: str, include_unpublished: bool = False) -> Article:
        article = self.find(slug, include_unpublished)
        if article is None:
            raise NotFoundException("Article not found")
        return article

    def render(self, article: Article) -> str:
        return render_markdown(article.content)

    # =========================================================================
    # Management
    # =========================================================================

    def create_article(self, data: Dict[str, Any], author: Optional[str] = None) -> Article:
        """
        Create and store an article.

        Raises:
            ProblemDetailsException: 400 when title or content is missing
            ConflictException: slug already taken
        """
        title = (data.get("title") or "").strip()
        content = data.get("content") or ""
        if not title or not content.strip():
            errors = {}
            if not title:
                errors["title"] = ["Title is required"]
            if not content.strip():
                errors["content"] = ["Content is required"]
            raise ProblemDetailsException(
                ProblemDetails.validation_error("Title and content are required", errors)
            )

        values = {key: data[key] for key in UPDATABLE_FIELDS if data.get(key) is not None}
        values["title"] = title
        values["slug"] = data.get("slug") or slugify(title)
        values.setdefault("author", author or "")
        if not values["slug"]:
            raise ProblemDetailsException(
                ProblemDetails.validation_error("Title must contain letters or digits", {"slug": ["Slug is empty"]})
            )
        if self.repository.exists(values["slug"]):
            raise ConflictException(f"Article with slug '{values['slug']}' already exists")

        article = Article.from_dict(values)
        if article.published and article.published_at is None:
            article.published_at = utcnow()
        if article.reading_time is None:
            article.reading_time = article.calculate_reading_time()

        self.repository.save(article)
        logger.info("article_created", slug=article.slug, author=article.author)
        return article

    def update_article(self, slug: str, data: Dict[str, Any]) -> Article:
        article = self.get_article_or_fail(slug, include_unpublished=True)

        for key in UPDATABLE_FIELDS:
            if key in data and data[key] is not None:
                value = parse_datetime(data[key]) if key == "published_at" else data[key]
                setattr(article, key, value)

        if "content" in data and data["content"] is not None:
            article.reading_time = article.calculate_reading_time()
        if article.published and article.published_at is None:
            article.published_at = utcnow()
        article.updated_at = utcnow()

        self.repository.save(article)
        logger.info("article_updated", slug=slug, fields=sorted(k for k in data if k in UPDATABLE_FIELDS))
        return article

    def delete_article(self, slug: str) -> None:
        if not self.repository.delete(slug):
            raise NotFoundException("Article not found")
        logger.info("article_removed", slug=slug)

    def get_statistics(self) -> Dict[str, Any]:
        articles = self.repository.all()
        published = [article for article in articles if article.is_published()]
        categories = Counter(article.category for article in published if article.category)
        tags = Counter(tag for article in published for tag in article.tags)
        return {
            "total_articles": len(articles),
            "published_articles": len(published),
            "draft_articles": len(articles) - len(published),
            "featured_articles": sum(1 for article in published if article.featured),
            "categories": dict(categories),
            "tags": dict(tags),
            "total_reading_time": sum(article.get_reading_time() for article in published),
        }
