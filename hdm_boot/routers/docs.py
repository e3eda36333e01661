"""
Markdown documentation browser under /docs.
"""

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse

from hdm_boot.dependencies import get_docs_service, get_template_service
from hdm_boot.exceptions import NotFoundException
from hdm_boot.services.docs_service import DocsService
from hdm_boot.services.template_service import TemplateService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/docs", tags=["Docs"], include_in_schema=False)


@router.get("", response_class=HTMLResponse)
def docs_index(
    request: Request,
    docs: DocsService = Depends(get_docs_service),
    templates: TemplateService = Depends(get_template_service),
):
    return templates.render(request, "docs/index.html", {"groups": docs.list_documents()})


@router.get("/{path:path}", response_class=HTMLResponse)
def docs_page(
    request: Request,
    path: str,
    docs: DocsService = Depends(get_docs_service),
    templates: TemplateService = Depends(get_template_service),
):
    try:
        document = docs.get_document(path)
    except NotFoundException as e:
        logger.info("doc_page_not_found", path=path)
        return templates.render(
            request,
            "404.html",
            {"message": e.problem.detail},
            status_code=status.HTTP_404_NOT_FOUND,
        )

    return templates.render(request, "docs/page.html", {
        "document": document,
        "groups": docs.list_documents(),
    })
