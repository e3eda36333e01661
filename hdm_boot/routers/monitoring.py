"""
Health, status and metrics endpoints.

Endpoints:
- /health: full health report, or one check with ?check=<name>
- /healthz: same report, 503 when unhealthy (for orchestrators)
- /ping: liveness
- /_status, /api/status: application, runtime, module and performance info
- /api/info: service summary
- /metrics: Prometheus exposition
"""

import os
import platform
import time
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from hdm_boot.config import Settings
from hdm_boot.database import utcnow
from hdm_boot.dependencies import (
    get_app_metrics,
    get_health_manager,
    get_module_manager,
    get_performance_monitor,
    get_settings_dependency,
)
from hdm_boot.exceptions import NotFoundException
from hdm_boot.modules import ModuleManager
from hdm_boot.services.health_checks import HealthCheckManager
from hdm_boot.services.performance_monitor import PerformanceMonitor, memory_usage
from shared.metrics import CONTENT_TYPE_LATEST, AppMetrics, get_metrics_handler
from shared.models import HealthStatus, ServiceInfo

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Monitoring"])


def uptime_seconds(request: Request) -> float:
    started_at = getattr(request.app.state, "started_at", None)
    if started_at is None:
        return 0.0
    return round(time.time() - started_at, 3)


# ============================================================================
# HEALTH
# ============================================================================


@router.get("/health", summary="Health Report")
def health(
    check: Optional[str] = None,
    manager: HealthCheckManager = Depends(get_health_manager),
) -> Dict[str, Any]:
    """
    Run all registered health checks.

    With ?check=<name> only that check runs; unknown names are a 404.
    """
    if check:
        result = manager.check(check)
        if result is None:
            raise NotFoundException(f"Health check '{check}' not found")
        return result.to_dict()
    return manager.check_health()


@router.get("/healthz", summary="Health Probe")
def healthz(manager: HealthCheckManager = Depends(get_health_manager)) -> JSONResponse:
    report = manager.check_health()
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if report["status"] == HealthStatus.UNHEALTHY.value
        else status.HTTP_200_OK
    )
    if status_code != status.HTTP_200_OK:
        logger.warning("health_probe_unhealthy", checks=report["summary"])
    return JSONResponse(status_code=status_code, content=report)


@router.get("/ping", response_class=PlainTextResponse, summary="Liveness")
def ping() -> str:
    return "pong"


# ============================================================================
# STATUS
# ============================================================================


@router.get("/_status", summary="Application Status")
@router.get("/api/status", summary="Application Status")
def app_status(
    request: Request,
    settings: Settings = Depends(get_settings_dependency),
    modules: ModuleManager = Depends(get_module_manager),
    monitor: PerformanceMonitor = Depends(get_performance_monitor),
) -> Dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat() + "Z",
        "version": settings.app_version,
        "uptime_seconds": uptime_seconds(request),
        "app": {
            "name": settings.app_name,
            "environment": settings.app_env,
            "debug": settings.app_debug,
            "timezone": settings.app_timezone,
        },
        "runtime": {
            "python_version": platform.python_version(),
            "platform": platform.platform(),
            "pid": os.getpid(),
            "memory": memory_usage(),
        },
        "modules": modules.get_statistics(),
        "performance": monitor.get_metrics(),
    }


@router.get("/api/info", response_model=ServiceInfo, summary="Service Info")
def service_info(
    request: Request,
    settings: Settings = Depends(get_settings_dependency),
    modules: ModuleManager = Depends(get_module_manager),
    manager: HealthCheckManager = Depends(get_health_manager),
) -> ServiceInfo:
    report = manager.check_health()
    return ServiceInfo(
        service_name=settings.app_name,
        version=settings.app_version,
        environment=settings.app_env,
        status=HealthStatus(report["status"]),
        uptime_seconds=uptime_seconds(request),
        modules={name: manifest.type.value for name, manifest in modules.get_loaded_modules().items()},
    )


# ============================================================================
# METRICS
# ============================================================================


@router.get("/metrics", response_class=PlainTextResponse, summary="Prometheus Metrics")
def metrics(
    settings: Settings = Depends(get_settings_dependency),
    app_metrics: AppMetrics = Depends(get_app_metrics),
) -> Response:
    if not settings.metrics_enabled:
        raise NotFoundException("Metrics are disabled")
    handler = get_metrics_handler(app_metrics.registry)
    return Response(content=handler(), media_type=CONTENT_TYPE_LATEST)
