"""
RFC 7807 error handling.

Exception handlers turn the application's exceptions, request validation
errors and HTTP errors into application/problem+json responses. The
ErrorHandlerMiddleware is the outer catch-all for anything that escapes
them: ValueError becomes a 400 validation problem, everything else a 500
with a trace id. A general Exception handler does the same for errors raised
outside the middleware.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, RedirectResponse, Response

from hdm_boot.exceptions import LoginRequiredRedirect, ProblemDetailsException
from hdm_boot.models.problem import PROBLEM_JSON, ProblemDetails

logger = structlog.get_logger(__name__)

HTTP_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def request_instance(request: Request) -> str:
    """Problem instance: path plus ?query when present."""
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def problem_response(
    problem: ProblemDetails,
    request: Optional[Request] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    if request is not None and problem.instance is None:
        problem = problem.with_instance(request_instance(request))

    response_headers = dict(headers or {})
    retry_after = problem.extensions.get("retry_after")
    if problem.status == 429 and retry_after is not None:
        response_headers.setdefault("Retry-After", str(retry_after))

    return JSONResponse(
        status_code=problem.status,
        content=problem.to_dict(),
        headers=response_headers,
        media_type=PROBLEM_JSON,
    )


def log_problem(request: Request, problem: ProblemDetails, **extra: Any) -> None:
    log = logger.error if problem.is_server_error() else logger.warning
    log(
        "problem_details_response",
        status=problem.status,
        title=problem.title,
        detail=problem.detail,
        path=request.url.path,
        method=request.method,
        **extra,
    )


def validation_errors_by_field(errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Group pydantic errors by their field name."""
    grouped: Dict[str, List[str]] = {}
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "request"
        grouped.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return grouped


def internal_error_problem(exc: Exception, debug: bool) -> ProblemDetails:
    trace_id = uuid.uuid4().hex
    detail = f"{type(exc).__name__}: {exc}" if debug else "An unexpected error occurred"
    return ProblemDetails.internal_server_error(detail, trace_id)


# ============================================================================
# Exception Handlers
# ============================================================================


async def problem_exception_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    log_problem(request, exc.problem)
    return problem_response(exc.problem, request, exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = validation_errors_by_field(list(exc.errors()))
    logger.warning("validation_error", path=request.url.path, errors=errors)
    problem = ProblemDetails.unprocessable_entity("The request data failed validation", errors)
    return problem_response(problem, request)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning("http_exception", path=request.url.path, status_code=exc.status_code, detail=exc.detail)
    title = HTTP_TITLES.get(exc.status_code, "Error")
    detail = exc.detail if isinstance(exc.detail, str) and exc.detail != title else None
    problem = ProblemDetails.custom(exc.status_code, title, detail)
    return problem_response(problem, request, getattr(exc, "headers", None))


async def login_required_handler(request: Request, exc: LoginRequiredRedirect) -> RedirectResponse:
    logger.info("login_required_redirect", path=request.url.path)
    return RedirectResponse(exc.location, status_code=status.HTTP_302_FOUND)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for errors raised outside ErrorHandlerMiddleware."""
    problem = internal_error_problem(exc, debug=False)
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        trace_id=problem.extensions.get("trace_id"),
        exc_info=True,
    )
    return problem_response(problem, request)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProblemDetailsException, problem_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(LoginRequiredRedirect, login_required_handler)
    app.add_exception_handler(Exception, general_exception_handler)


# ============================================================================
# Catch-all Middleware
# ============================================================================


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Converts any exception escaping the app into a problem response."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except ProblemDetailsException as exc:
            log_problem(request, exc.problem)
            return problem_response(exc.problem, request, exc.headers)
        except ValueError as exc:
            problem = ProblemDetails.validation_error(str(exc) or "Invalid request")
            log_problem(request, problem)
            return problem_response(problem, request)
        except Exception as exc:
            problem = internal_error_problem(exc, self.debug)
            logger.error(
                "unhandled_exception",
                path=request.url.path,
                method=request.method,
                error=str(exc),
                error_type=type(exc).__name__,
                trace_id=problem.extensions.get("trace_id"),
                exc_info=True,
            )
            return problem_response(problem, request)
