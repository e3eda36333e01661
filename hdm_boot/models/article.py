"""
Blog article model.

Articles are Markdown documents with a YAML front matter block; the slug
is the primary key and the file name. Timestamps are naive UTC.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from hdm_boot.database import utcnow

WORDS_PER_MINUTE = 200
EXCERPT_LENGTH = 160

_TAG_RE = re.compile(r"<[^>]+>")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_SLUG_SEPARATOR_RE = re.compile(r"[\s-]+")


def slugify(title: str) -> str:
    slug = _SLUG_STRIP_RE.sub("", title.lower())
    slug = _SLUG_SEPARATOR_RE.sub("-", slug)
    return slug.strip("-")


def strip_tags(text: str) -> str:
    return _TAG_RE.sub("", text)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Accept datetimes (as YAML loads them) or ISO strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).replace(tzinfo=None) if value.tzinfo else value
    return parse_datetime(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


@dataclass
class Article:
    title: str
    slug: str
    content: str = ""
    author: str = ""
    published: bool = False
    published_at: Optional[datetime] = None
    featured: bool = False
    excerpt: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    category: Optional[str] = None
    reading_time: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        title = str(data.get("title") or "")
        tags = data.get("tags") or []
        return cls(
            title=title,
            slug=str(data.get("slug") or slugify(title)),
            content=str(data.get("content") or ""),
            author=str(data.get("author") or ""),
            published=bool(data.get("published", False)),
            published_at=parse_datetime(data.get("published_at")),
            featured=bool(data.get("featured", False)),
            excerpt=data.get("excerpt") or None,
            tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
            category=data.get("category") or None,
            reading_time=data.get("reading_time"),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=parse_datetime(data.get("updated_at")) or utcnow(),
        )

    def is_published(self, now: Optional[datetime] = None) -> bool:
        if not self.published:
            return False
        return self.published_at is None or self.published_at <= (now or utcnow())

    def calculate_reading_time(self) -> int:
        words = len(strip_tags(self.content).split())
        return max(1, math.ceil(words / WORDS_PER_MINUTE))

    def get_reading_time(self) -> int:
        if isinstance(self.reading_time, int):
            return self.reading_time
        return self.calculate_reading_time()

    def generate_excerpt(self, length: int = EXCERPT_LENGTH) -> str:
        if self.excerpt:
            return self.excerpt
        text = strip_tags(self.content).strip()
        if len(text) <= length:
            return text
        return text[:length] + "..."

    @property
    def url(self) -> str:
        return f"/blog/article/{self.slug}"

    def front_matter(self) -> Dict[str, Any]:
        """Fields stored in the YAML header, everything except content."""
        return {
            "title": self.title,
            "slug": self.slug,
            "author": self.author,
            "published": self.published,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "featured": self.featured,
            "excerpt": self.excerpt,
            "tags": list(self.tags),
            "category": self.category,
            "reading_time": self.reading_time,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def to_summary(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "title": self.title,
            "excerpt": self.generate_excerpt(),
            "author": self.author,
            "published": self.published,
            "featured": self.featured,
            "category": self.category,
            "tags": list(self.tags),
            "reading_time": self.get_reading_time(),
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_summary()
        data["content"] = self.content
        return data


# =============================================================================
# API request models
# =============================================================================

class CreateArticleRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    slug: Optional[str] = None
    author: Optional[str] = None
    excerpt: Optional[str] = None
    published: bool = False
    published_at: Optional[datetime] = None
    featured: bool = False
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class UpdateArticleRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    excerpt: Optional[str] = None
    published: Optional[bool] = None
    published_at: Optional[datetime] = None
    featured: Optional[bool] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
