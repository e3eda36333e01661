"""Prometheus metrics definitions and helpers.

Provides metric definitions for the HTTP layer and the security module.
Each application instance owns a registry so that several apps can live in
one process (tests build many).
"""

from typing import Callable, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CollectorRegistry,
)


class HttpMetrics:
    """HTTP request metrics."""

    def __init__(self, registry: CollectorRegistry) -> None:
        """Initialize HTTP metrics.

        Args:
            registry: Prometheus registry to use
        """
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
            registry=registry,
        )

        self.requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests in progress",
            ["method"],
            registry=registry,
        )


class SecurityMetrics:
    """Authentication and throttling metrics."""

    def __init__(self, registry: CollectorRegistry) -> None:
        """Initialize security metrics.

        Args:
            registry: Prometheus registry to use
        """
        # outcome: success|failure|throttled
        self.login_attempts = Counter(
            "auth_login_attempts_total",
            "Login attempts by channel and outcome",
            ["channel", "outcome"],
            registry=registry,
        )

        self.tokens_issued = Counter(
            "auth_tokens_issued_total",
            "JWT tokens issued",
            ["kind"],
            registry=registry,
        )

        self.csrf_failures = Counter(
            "security_csrf_failures_total",
            "Rejected CSRF tokens",
            ["action"],
            registry=registry,
        )


class AppMetrics:
    """All metrics of one application instance."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.http = HttpMetrics(self.registry)
        self.security = SecurityMetrics(self.registry)


def setup_metrics(registry: Optional[CollectorRegistry] = None) -> AppMetrics:
    """Setup and return metric instances.

    Returns:
        AppMetrics bound to a fresh (or the given) registry
    """
    return AppMetrics(registry)


def get_metrics_handler(registry: CollectorRegistry) -> Callable[[], bytes]:
    """Get metrics handler for HTTP endpoint.

    Returns:
        Function that generates Prometheus metrics output
    """

    def metrics_handler() -> bytes:
        return generate_latest(registry)

    return metrics_handler


__all__ = [
    "AppMetrics",
    "CONTENT_TYPE_LATEST",
    "HttpMetrics",
    "SecurityMetrics",
    "get_metrics_handler",
    "setup_metrics",
]
