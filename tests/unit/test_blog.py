"""
Unit tests for blog articles.

Tests cover:
- Slugs, dates, excerpts and reading time
- Front matter parsing and the file repository
- Published-article queries and search
- Article creation, update and deletion
- Blog statistics
"""

from datetime import datetime, timedelta, timezone

import pytest

from hdm_boot.database import utcnow
from hdm_boot.exceptions import ConflictException, NotFoundException, ProblemDetailsException
from hdm_boot.models.article import Article, parse_datetime, slugify
from hdm_boot.repositories.article_repo import ArticleRepository, split_front_matter
from hdm_boot.services.blog_service import BlogService, render_markdown


@pytest.fixture
def repository(tmp_path) -> ArticleRepository:
    return ArticleRepository(tmp_path / "articles")


@pytest.fixture
def blog(repository) -> BlogService:
    return BlogService(repository)


@pytest.fixture
def seeded(blog) -> BlogService:
    blog.create_article({
        "title": "Getting Started",
        "content": "Install the package and run it.",
        "published": True,
        "featured": True,
        "category": "guides",
        "tags": ["python", "setup"],
    }, author="Jane")
    blog.create_article({
        "title": "Deep Dive",
        "content": "Module internals explained.",
        "published": True,
        "category": "internals",
        "tags": ["python"],
    })
    blog.create_article({"title": "Draft Notes", "content": "Not ready yet."})
    return blog


# ============================================================================
# ARTICLE MODEL
# ============================================================================


class TestArticleModel:
    """Tests for Article helpers."""

    @pytest.mark.parametrize("title,expected", [
        ("Hello World", "hello-world"),
        ("  Python 3.12: What's New?  ", "python-312-whats-new"),
        ("a -- b", "a-b"),
        ("!!!", ""),
    ])
    def test_slugify(self, title, expected):
        """Test slugs keep lowercase letters, digits and single dashes."""
        assert slugify(title) == expected

    def test_parse_datetime_converts_to_naive_utc(self):
        """Test aware values are converted to naive UTC."""
        parsed = parse_datetime("2024-05-01T12:00:00+02:00")

        assert parsed == datetime(2024, 5, 1, 10, 0, 0)
        assert parsed.tzinfo is None

    def test_parse_datetime_values(self):
        """Test empty, naive and Z-suffixed values."""
        naive = datetime(2024, 1, 1, 8, 30)

        assert parse_datetime(None) is None
        assert parse_datetime("") is None
        assert parse_datetime(naive) == naive
        assert parse_datetime("2024-01-01T08:30:00Z") == naive
        assert parse_datetime(datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)) == naive

    def test_future_articles_are_not_published(self):
        """Test scheduled articles wait for published_at."""
        article = Article(title="Soon", slug="soon", published=True, published_at=utcnow() + timedelta(days=1))

        assert not article.is_published()
        assert article.is_published(now=utcnow() + timedelta(days=2))

    def test_reading_time(self):
        """Test reading time is at least one minute at 200 words per minute."""
        assert Article(title="A", slug="a", content="word " * 10).calculate_reading_time() == 1
        assert Article(title="A", slug="a", content="word " * 401).calculate_reading_time() == 3
        assert Article(title="A", slug="a", reading_time=7).get_reading_time() == 7

    def test_excerpt(self):
        """Test excerpts strip tags and truncate."""
        article = Article(title="A", slug="a", content="<p>" + "x" * 200 + "</p>")

        excerpt = article.generate_excerpt()

        assert excerpt == "x" * 160 + "..."
        assert Article(title="A", slug="a", excerpt="Given").generate_excerpt() == "Given"

    def test_from_dict_defaults(self):
        """Test missing fields fall back to defaults."""
        article = Article.from_dict({"title": "Hello There", "tags": "not-a-list"})

        assert article.slug == "hello-there"
        assert article.tags == []
        assert article.published is False
        assert article.url == "/blog/article/hello-there"


# ============================================================================
# REPOSITORY
# ============================================================================


class TestArticleRepository:
    """Tests for the Markdown file repository."""

    def test_split_front_matter(self):
        """Test the YAML header is separated from the body."""
        meta, body = split_front_matter("---\ntitle: Hi\ntags: [a, b]\n---\n# Body\n")

        assert meta == {"title": "Hi", "tags": ["a", "b"]}
        assert body == "# Body\n"

    def test_without_front_matter(self):
        """Test plain Markdown has no metadata."""
        assert split_front_matter("# Just text") == ({}, "# Just text")

    def test_non_mapping_front_matter(self):
        """Test a list header is rejected."""
        with pytest.raises(ValueError, match="mapping"):
            split_front_matter("---\n- a\n- b\n---\nbody")

    def test_save_and_find(self, repository):
        """Test saved articles load back from disk."""
        repository.save(Article(title="Hello", slug="hello", content="Body text", tags=["x"], published=True))

        loaded = repository.find("hello")

        assert loaded.title == "Hello"
        assert loaded.content == "Body text"
        assert loaded.tags == ["x"]
        assert (repository.articles_dir / "hello.md").read_text(encoding="utf-8").startswith("---\n")

    def test_slug_from_file_name(self, repository):
        """Test files without a slug use their name."""
        repository.articles_dir.mkdir(parents=True)
        (repository.articles_dir / "from-file.md").write_text("---\ntitle: From File\n---\nText", encoding="utf-8")

        assert repository.find("from-file").slug == "from-file"

    def test_broken_files_are_skipped(self, repository):
        """Test unreadable front matter does not break listing."""
        repository.articles_dir.mkdir(parents=True)
        (repository.articles_dir / "broken.md").write_text("---\ntitle: [unclosed\n---\n", encoding="utf-8")
        repository.save(Article(title="Good", slug="good"))

        assert [article.slug for article in repository.all()] == ["good"]

    def test_files_with_bad_dates_are_skipped(self, repository):
        """Test an unparseable date hides only that article."""
        repository.articles_dir.mkdir(parents=True)
        (repository.articles_dir / "bad-date.md").write_text(
            "---\ntitle: Bad Date\npublished: true\npublished_at: not-a-date\n---\nBody", encoding="utf-8"
        )
        repository.save(Article(title="Good", slug="good"))

        assert [article.slug for article in repository.all()] == ["good"]
        assert repository.find("bad-date") is None

    def test_invalid_slugs(self, repository):
        """Test path-like slugs never touch the filesystem."""
        assert repository.find("../secret") is None
        assert not repository.delete("../secret")
        with pytest.raises(ValueError):
            repository.save(Article(title="Bad", slug="../bad"))

    def test_delete(self, repository):
        """Test deleting removes the file."""
        repository.save(Article(title="Gone", slug="gone"))

        assert repository.delete("gone")
        assert not repository.exists("gone")
        assert not repository.delete("gone")


# ============================================================================
# QUERIES
# ============================================================================


class TestBlogQueries:
    """Tests for published-article queries."""

    def test_published_excludes_drafts(self, seeded):
        """Test drafts are hidden from readers."""
        assert sorted(article.slug for article in seeded.published()) == ["deep-dive", "getting-started"]
        assert len(seeded.all()) == 3

    def test_featured_category_tag(self, seeded):
        """Test the filtered listings."""
        assert [a.slug for a in seeded.featured()] == ["getting-started"]
        assert [a.slug for a in seeded.by_category("internals")] == ["deep-dive"]
        assert sorted(a.slug for a in seeded.by_tag("python")) == ["deep-dive", "getting-started"]

    def test_categories_and_tags(self, seeded):
        """Test taxonomies come from published articles only."""
        assert seeded.get_categories() == ["guides", "internals"]
        assert seeded.get_tags() == ["python", "setup"]

    def test_recent_is_newest_first(self, blog):
        """Test ordering by publication date."""
        blog.create_article({"title": "Old", "content": "x", "published": True,
                             "published_at": utcnow() - timedelta(days=3)})
        blog.create_article({"title": "New", "content": "x", "published": True,
                             "published_at": utcnow() - timedelta(days=1)})

        assert [a.slug for a in blog.recent()] == ["new", "old"]
        assert [a.slug for a in blog.recent(limit=1)] == ["new"]

    def test_search(self, seeded):
        """Test search matches title and content case-insensitively."""
        assert [a.slug for a in seeded.search("INTERNALS")] == ["deep-dive"]
        assert seeded.search("not ready") == []
        assert seeded.search("   ") == []

    def test_find_hides_drafts(self, seeded):
        """Test drafts are found only when asked for."""
        assert seeded.find("draft-notes") is None
        assert seeded.find("draft-notes", include_unpublished=True) is not None

        with pytest.raises(NotFoundException):
            seeded.get_article_or_fail("draft-notes")

    def test_render_markdown(self):
        """Test Markdown with fenced code renders to HTML."""
        html = render_markdown("# Title\n\n```\ncode\n```\n")

        assert '<h1 id="title">Title</h1>' in html
        assert "<code>code" in html

    def test_render_markdown_escapes_raw_html(self):
        """Test HTML written into Markdown is shown as text."""
        html = render_markdown("<script>alert(1)</script>\n\nInline <b onclick=\"x()\">bold</b> and **strong**.")

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "<b onclick" not in html
        assert "<strong>strong</strong>" in html


# ============================================================================
# MANAGEMENT
# ============================================================================


class TestBlogManagement:
    """Tests for article CRUD."""

    def test_create_sets_defaults(self, blog):
        """Test slug, author, reading time and publication date."""
        article = blog.create_article({"title": "Hello World", "content": "Some words", "published": True},
                                      author="Jane")

        assert article.slug == "hello-world"
        assert article.author == "Jane"
        assert article.reading_time == 1
        assert article.published_at is not None

    def test_create_requires_title_and_content(self, blog):
        """Test missing fields are reported per field."""
        with pytest.raises(ProblemDetailsException) as exc_info:
            blog.create_article({"title": " "})

        problem = exc_info.value.problem
        assert problem.status == 400
        assert set(problem.extensions["validation_errors"]) == {"title", "content"}

    def test_create_rejects_empty_slug(self, blog):
        """Test titles without letters or digits are rejected."""
        with pytest.raises(ProblemDetailsException):
            blog.create_article({"title": "!!!", "content": "x"})

    def test_create_duplicate_slug(self, seeded):
        """Test slugs are unique."""
        with pytest.raises(ConflictException):
            seeded.create_article({"title": "Getting Started", "content": "Again"})

    def test_update(self, seeded):
        """Test updates change fields and publish drafts."""
        article = seeded.update_article("draft-notes", {
            "content": "word " * 450,
            "published": True,
            "tags": ["notes"],
        })

        assert article.reading_time == 3
        assert article.published_at is not None
        assert seeded.find("draft-notes").tags == ["notes"]

    def test_update_missing(self, blog):
        """Test updating an unknown slug."""
        with pytest.raises(NotFoundException):
            blog.update_article("missing", {"title": "x"})

    def test_delete(self, seeded):
        """Test deleting existing and missing articles."""
        seeded.delete_article("deep-dive")

        assert seeded.find("deep-dive") is None
        with pytest.raises(NotFoundException):
            seeded.delete_article("deep-dive")

    def test_statistics(self, seeded):
        """Test counts by state, category and tag."""
        stats = seeded.get_statistics()

        assert stats["total_articles"] == 3
        assert stats["published_articles"] == 2
        assert stats["draft_articles"] == 1
        assert stats["featured_articles"] == 1
        assert stats["categories"] == {"guides": 1, "internals": 1}
        assert stats["tags"] == {"python": 2, "setup": 1}
        assert stats["total_reading_time"] == 2
