"""
Request logging, metrics and security headers middleware.
"""

import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from hdm_boot.services.performance_monitor import PerformanceMonitor
from shared.logging import bind_context, clear_context
from shared.metrics import HttpMetrics

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def endpoint_label(request: Request) -> str:
    """Route template (/api/users/{user_id}) rather than the raw path, to bound label cardinality."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging, metrics and performance recording."""

    def __init__(
        self,
        app,
        metrics: Optional[HttpMetrics] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        super().__init__(app)
        self.metrics = metrics
        self.monitor = monitor

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        clear_context()
        bind_context(correlation_id=correlation_id)

        # The route is not resolved yet, so no endpoint label here
        if self.metrics is not None:
            self.metrics.requests_in_progress.labels(method=method).inc()

        start_time = time.perf_counter()
        logger.info("request_started", method=method, path=path, client_ip=client_ip)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
                exc_info=True,
            )
            raise
        finally:
            if self.metrics is not None:
                self.metrics.requests_in_progress.labels(method=method).dec()

        duration = time.perf_counter() - start_time
        endpoint = endpoint_label(request)

        if self.metrics is not None:
            self.metrics.requests_total.labels(
                method=method, endpoint=endpoint, status=response.status_code
            ).inc()
            self.metrics.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

        if self.monitor is not None:
            self.monitor.record_http_request(method, path, response.status_code, duration)

        logger.info(
            "request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration=f"{duration:.3f}s",
        )

        response.headers[CORRELATION_HEADER] = correlation_id
        clear_context()
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to responses."""

    def __init__(self, app, hsts: bool = False, hsts_max_age: int = 31536000):
        super().__init__(app)
        self.hsts = hsts
        self.hsts_max_age = hsts_max_age

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if self.hsts:
            response.headers["Strict-Transport-Security"] = f"max-age={self.hsts_max_age}; includeSubDomains"

        return response
