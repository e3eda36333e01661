"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    CONTENT_TYPE_LATEST,
    AppMetrics,
    HttpMetrics,
    SecurityMetrics,
    setup_metrics,
    get_metrics_handler,
)

__all__ = [
    "CONTENT_TYPE_LATEST",
    "AppMetrics",
    "HttpMetrics",
    "SecurityMetrics",
    "setup_metrics",
    "get_metrics_handler",
]
