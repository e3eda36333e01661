"""
Blog pages and the article API.

Web pages list published articles only. The JSON API mirrors the pages and
adds create, update and delete for editors.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse

from hdm_boot.dependencies import (
    get_authorization_service,
    get_blog_service,
    get_optional_user,
    get_template_service,
    require_permission,
)
from hdm_boot.models.article import CreateArticleRequest, UpdateArticleRequest
from hdm_boot.models.user import User
from hdm_boot.services.authorization_service import AuthorizationService
from hdm_boot.services.blog_service import BlogService
from hdm_boot.services.template_service import TemplateService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/blog", tags=["Blog"], include_in_schema=False)
api_router = APIRouter(prefix="/api/blog", tags=["Blog"])


# ============================================================================
# WEB PAGES
# ============================================================================


@router.get("", response_class=HTMLResponse)
def blog_home(
    request: Request,
    q: Optional[str] = None,
    blog: BlogService = Depends(get_blog_service),
    templates: TemplateService = Depends(get_template_service),
):
    articles = blog.search(q) if q else blog.recent(limit=50)
    return templates.render(request, "blog/index.html", {
        "articles": articles,
        "featured": [] if q else blog.featured(),
        "categories": blog.get_categories(),
        "query": q,
        "heading": None,
    })


@router.get("/article/{slug}", response_class=HTMLResponse)
def blog_article(
    request: Request,
    slug: str,
    blog: BlogService = Depends(get_blog_service),
    templates: TemplateService = Depends(get_template_service),
):
    article = blog.find(slug)
    if article is None:
        logger.info("article_page_not_found", slug=slug)
        return templates.render(
            request,
            "404.html",
            {"message": templates.translator(request)("blog.article_not_found")},
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return templates.render(request, "blog/article.html", {
        "article": article,
        "content": blog.render(article),
    })


@router.get("/categories", response_class=HTMLResponse)
def blog_categories(
    request: Request,
    blog: BlogService = Depends(get_blog_service),
    templates: TemplateService = Depends(get_template_service),
):
    counts = blog.get_statistics()["categories"]
    return templates.render(request, "blog/taxonomy.html", {
        "kind": "category",
        "items": [(name, counts.get(name, 0)) for name in blog.get_categories()],
    })


@router.get("/category/{name}", response_class=HTMLResponse)
def blog_category(
    request: Request,
    name: str,
    blog: BlogService = Depends(get_blog_service),
    templates: TemplateService = Depends(get_template_service),
):
    return templates.render(request, "blog/index.html", {
        "articles": blog.by_category(name),
        "featured": [],
        "categories": blog.get_categories(),
        "query": None,
        "heading": name,
    })


@router.get("/tags", response_class=HTMLResponse)
def blog_tags(
    request: Request,
    blog: BlogService = Depends(get_blog_service),
    templates: TemplateService = Depends(get_template_service),
):
    counts = blog.get_statistics()["tags"]
    return templates.render(request, "blog/taxonomy.html", {
        "kind": "tag",
        "items": [(tag, counts.get(tag, 0)) for tag in blog.get_tags()],
    })


@router.get("/tag/{tag}", response_class=HTMLResponse)
def blog_tag(
    request: Request,
    tag: str,
    blog: BlogService = Depends(get_blog_service),
    templates: TemplateService = Depends(get_template_service),
):
    return templates.render(request, "blog/index.html", {
        "articles": blog.by_tag(tag),
        "featured": [],
        "categories": blog.get_categories(),
        "query": None,
        "heading": f"#{tag}",
    })


@router.get("/about", response_class=HTMLResponse)
def blog_about(
    request: Request,
    blog: BlogService = Depends(get_blog_service),
    templates: TemplateService = Depends(get_template_service),
):
    return templates.render(request, "blog/about.html", {"stats": blog.get_statistics()})


# ============================================================================
# API
# ============================================================================


@api_router.get("/articles", summary="List Articles")
def api_list_articles(
    category: Optional[str] = None,
    tag: Optional[str] = None,
    include_drafts: bool = Query(False, description="Editors only: include unpublished articles"),
    user: Optional[User] = Depends(get_optional_user),
    authorization: AuthorizationService = Depends(get_authorization_service),
    blog: BlogService = Depends(get_blog_service),
) -> Dict[str, Any]:
    if category:
        articles = blog.by_category(category)
    elif tag:
        articles = blog.by_tag(tag)
    elif include_drafts and user is not None and authorization.has_permission(user, "article.edit"):
        articles = blog.all()
    else:
        articles = blog.recent(limit=1000)

    return {
        "success": True,
        "articles": [article.to_summary() for article in articles],
        "count": len(articles),
    }


@api_router.get("/articles/{slug}", summary="Get Article")
def api_get_article(slug: str, blog: BlogService = Depends(get_blog_service)) -> Dict[str, Any]:
    article = blog.get_article_or_fail(slug)
    data = article.to_dict()
    data["html"] = blog.render(article)
    return {"success": True, "article": data}


@api_router.post("/articles", status_code=status.HTTP_201_CREATED, summary="Create Article")
def api_create_article(
    payload: CreateArticleRequest,
    user: User = Depends(require_permission("article.create")),
    blog: BlogService = Depends(get_blog_service),
) -> Dict[str, Any]:
    article = blog.create_article(payload.model_dump(exclude_none=True), author=user.name)
    return {
        "success": True,
        "message": "Article created successfully",
        "article": article.to_dict(),
    }


@api_router.put("/articles/{slug}", summary="Update Article")
def api_update_article(
    slug: str,
    payload: UpdateArticleRequest,
    user: User = Depends(require_permission("article.edit")),
    blog: BlogService = Depends(get_blog_service),
) -> Dict[str, Any]:
    article = blog.update_article(slug, payload.model_dump(exclude_none=True))
    logger.info("article_updated_via_api", slug=slug, user_id=user.id)
    return {
        "success": True,
        "message": "Article updated successfully",
        "article": article.to_dict(),
    }


@api_router.delete("/articles/{slug}", summary="Delete Article")
def api_delete_article(
    slug: str,
    user: User = Depends(require_permission("article.delete")),
    blog: BlogService = Depends(get_blog_service),
) -> Dict[str, Any]:
    blog.delete_article(slug)
    logger.info("article_deleted_via_api", slug=slug, user_id=user.id)
    return {"success": True, "message": "Article deleted successfully"}


@api_router.get("/stats", summary="Blog Statistics")
def api_stats(blog: BlogService = Depends(get_blog_service)) -> Dict[str, Any]:
    return {"success": True, "stats": blog.get_statistics()}


@api_router.get("/search", summary="Search Articles")
def api_search(
    q: str = Query("", description="Search text"),
    blog: BlogService = Depends(get_blog_service),
) -> Dict[str, Any]:
    articles = blog.search(q)
    return {
        "success": True,
        "query": q,
        "articles": [article.to_summary() for article in articles],
        "count": len(articles),
    }


@api_router.get("/categories", summary="Blog Categories")
def api_categories(blog: BlogService = Depends(get_blog_service)) -> Dict[str, Any]:
    return {"success": True, "categories": blog.get_categories()}


@api_router.get("/tags", summary="Blog Tags")
def api_tags(blog: BlogService = Depends(get_blog_service)) -> Dict[str, Any]:
    return {"success": True, "tags": blog.get_tags()}

