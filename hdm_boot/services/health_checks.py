"""
Health checks for the monitoring endpoints.

A check returns a HealthCheckResult; the manager runs every registered
check and folds the results into one report. A check that raises is
reported as unhealthy instead of failing the endpoint.
"""

import importlib.util
import os
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import structlog

from hdm_boot.database import Database
from shared.models import HealthStatus

logger = structlog.get_logger(__name__)


@dataclass
class HealthCheckResult:
    name: str
    status: HealthStatus
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    critical: bool = True

    @classmethod
    def healthy(cls, name: str, message: str, data: Optional[Dict[str, Any]] = None, **kwargs) -> "HealthCheckResult":
        return cls(name, HealthStatus.HEALTHY, message, data or {}, **kwargs)

    @classmethod
    def degraded(cls, name: str, message: str, data: Optional[Dict[str, Any]] = None, **kwargs) -> "HealthCheckResult":
        return cls(name, HealthStatus.DEGRADED, message, data or {}, **kwargs)

    @classmethod
    def unhealthy(cls, name: str, message: str, data: Optional[Dict[str, Any]] = None, **kwargs) -> "HealthCheckResult":
        return cls(name, HealthStatus.UNHEALTHY, message, data or {}, **kwargs)

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "data": self.data,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp.isoformat(),
            "critical": self.critical,
        }


class HealthCheck:
    """Base class for health checks."""

    name = "check"
    critical = True

    def check(self) -> HealthCheckResult:
        raise NotImplementedError


class DatabaseHealthCheck(HealthCheck):
    """Runs SELECT 1 against the application database."""

    name = "database"

    def __init__(self, database: Database, slow_seconds: float = 1.0):
        self.database = database
        self.slow_seconds = slow_seconds

    def check(self) -> HealthCheckResult:
        started = time.perf_counter()
        try:
            self.database.ping()
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return HealthCheckResult.unhealthy(
                self.name,
                f"Database connection failed: {e}",
                {"error_type": type(e).__name__},
            )

        elapsed = time.perf_counter() - started
        data: Dict[str, Any] = {
            "response_time_ms": round(elapsed * 1000, 2),
            "sqlite_version": self.database.sqlite_version(),
        }
        path = self.database.file_path
        if path is not None and path.exists():
            data["database_size"] = path.stat().st_size

        if elapsed > self.slow_seconds:
            return HealthCheckResult.degraded(self.name, "Database is responding slowly", data)
        return HealthCheckResult.healthy(self.name, "Database connection is healthy", data)


class FilesystemHealthCheck(HealthCheck):
    """Checks runtime directories, free disk space and write access."""

    name = "filesystem"

    def __init__(
        self,
        log_dir: Path,
        temp_dir: Path,
        cache_dir: Path,
        base_dir: Path = Path("."),
        warning_percent: float = 80.0,
        critical_percent: float = 90.0,
    ):
        self.log_dir = Path(log_dir)
        self.temp_dir = Path(temp_dir)
        self.cache_dir = Path(cache_dir)
        self.base_dir = Path(base_dir)
        self.warning_percent = warning_percent
        self.critical_percent = critical_percent

    def _check_directory(self, label: str, path: Path, create: bool = False) -> Dict[str, Any]:
        if not path.is_dir():
            if not create:
                return {"success": False, "message": f"{label} directory does not exist"}
            path.mkdir(parents=True, exist_ok=True)

        if not os.access(path, os.W_OK):
            return {"success": False, "message": f"{label} directory is not writable"}

        return {"success": True, "message": f"{label} directory is accessible", "path": str(path.resolve())}

    def _check_disk_space(self) -> Dict[str, Any]:
        usage = shutil.disk_usage(self.base_dir)
        percentage = round(usage.used / usage.total * 100, 2) if usage.total else 0.0
        success = percentage < self.critical_percent
        return {
            "success": success,
            "message": "Sufficient disk space available" if success else "Disk space critically low",
            "free_bytes": usage.free,
            "total_bytes": usage.total,
            "used_bytes": usage.used,
            "usage_percentage": percentage,
            "free_gb": round(usage.free / 1024 ** 3, 2),
            "total_gb": round(usage.total / 1024 ** 3, 2),
        }

    def _check_write_permissions(self) -> Dict[str, Any]:
        test_file = self.log_dir / "health_check_test.tmp"
        try:
            test_file.write_text("health check test", encoding="utf-8")
            if test_file.read_text(encoding="utf-8") != "health check test":
                return {"success": False, "message": "Test file content mismatch"}
            test_file.unlink()
        except OSError as e:
            return {"success": False, "message": f"Write permission test failed: {e}"}
        return {"success": True, "message": "Write permissions are working"}

    def check(self) -> HealthCheckResult:
        checks = {
            "log_directory": self._check_directory("Log", self.log_dir),
            "temp_directory": self._check_directory("Temp", self.temp_dir, create=True),
            "cache_directory": self._check_directory("Cache", self.cache_dir, create=True),
            "disk_space": self._check_disk_space(),
        }
        if checks["log_directory"]["success"]:
            checks["write_permissions"] = self._check_write_permissions()

        failures = [check["message"] for check in checks.values() if not check["success"]]
        if failures:
            return HealthCheckResult.unhealthy(
                self.name, "Filesystem checks failed: " + ", ".join(failures), checks
            )

        usage = checks["disk_space"]["usage_percentage"]
        if usage >= self.warning_percent:
            return HealthCheckResult.degraded(self.name, f"Disk usage is high: {usage}%", checks)

        return HealthCheckResult.healthy(
            self.name, "Filesystem is accessible and has sufficient space", checks
        )


DEFAULT_REQUIRED_MODULES = ("sqlalchemy", "jose", "passlib", "jinja2", "yaml", "structlog")
DEFAULT_OPTIONAL_MODULES = ("markdown", "prometheus_client")


class DependencyHealthCheck(HealthCheck):
    """Checks that runtime libraries are importable."""

    name = "dependencies"
    critical = False

    def __init__(
        self,
        required: Sequence[str] = DEFAULT_REQUIRED_MODULES,
        optional: Sequence[str] = DEFAULT_OPTIONAL_MODULES,
    ):
        self.required = list(required)
        self.optional = list(optional)

    @staticmethod
    def _available(module: str) -> bool:
        return importlib.util.find_spec(module) is not None

    def check(self) -> HealthCheckResult:
        missing_required = [name for name in self.required if not self._available(name)]
        missing_optional = [name for name in self.optional if not self._available(name)]
        data = {
            "required": self.required,
            "optional": self.optional,
            "missing_required": missing_required,
            "missing_optional": missing_optional,
        }

        if missing_required:
            return HealthCheckResult.unhealthy(
                self.name, "Missing required modules: " + ", ".join(missing_required), data
            )
        if missing_optional:
            return HealthCheckResult.degraded(
                self.name, "Missing optional modules: " + ", ".join(missing_optional), data
            )
        return HealthCheckResult.healthy(self.name, "All runtime dependencies are available", data)


class HealthCheckManager:
    """Registry and runner of health checks."""

    def __init__(self):
        self._checks: Dict[str, HealthCheck] = {}

    def register(self, check: HealthCheck) -> None:
        self._checks[check.name] = check
        logger.debug("health_check_registered", name=check.name, critical=check.critical)

    def unregister(self, name: str) -> bool:
        return self._checks.pop(name, None) is not None

    def get_check_names(self) -> List[str]:
        return list(self._checks)

    def _run(self, check: HealthCheck) -> HealthCheckResult:
        started = time.perf_counter()
        try:
            result = check.check()
        except Exception as e:
            logger.error("health_check_execution_failed", name=check.name, error=str(e))
            result = HealthCheckResult.unhealthy(
                check.name,
                f"Health check failed: {e}",
                {"error_type": type(e).__name__},
            )
        result.duration_ms = (time.perf_counter() - started) * 1000
        result.critical = check.critical
        return result

    def check(self, name: str) -> Optional[HealthCheckResult]:
        check = self._checks.get(name)
        if check is None:
            return None
        return self._run(check)

    @staticmethod
    def overall_status(results: Sequence[HealthCheckResult]) -> HealthStatus:
        if any(r.critical and r.status == HealthStatus.UNHEALTHY for r in results):
            return HealthStatus.UNHEALTHY
        if any(r.status != HealthStatus.HEALTHY for r in results):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def check_health(self) -> Dict[str, Any]:
        started = time.perf_counter()
        results = [self._run(check) for check in self._checks.values()]
        status = self.overall_status(results)

        summary = {
            "total": len(results),
            "healthy": sum(1 for r in results if r.status == HealthStatus.HEALTHY),
            "degraded": sum(1 for r in results if r.status == HealthStatus.DEGRADED),
            "unhealthy": sum(1 for r in results if r.status == HealthStatus.UNHEALTHY),
        }
        report = {
            "status": status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "checks": {r.name: r.to_dict() for r in results},
            "summary": summary,
        }
        logger.info("health_checks_completed", overall_status=status.value, **summary)
        return report
