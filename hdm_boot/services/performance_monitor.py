"""
Performance monitor.

Keeps timers, counters and last-value metrics in memory and writes every
measurement to the "performance" logger, which the application routes to
<log_dir>/performance.log.
"""

import resource
import sys
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

import structlog

T = TypeVar("T")

QUERY_TYPES = ("SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER")


def memory_usage() -> Dict[str, float]:
    """Current and peak resident memory of this process in bytes."""
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is kilobytes on Linux and bytes on macOS
    if sys.platform != "darwin":
        peak *= 1024

    current = peak
    statm = Path("/proc/self/statm")
    if statm.exists():
        pages = int(statm.read_text().split()[1])
        current = pages * resource.getpagesize()

    return {
        "current_usage": current,
        "peak_usage": peak,
        "current_usage_mb": round(current / 1024 / 1024, 2),
        "peak_usage_mb": round(peak / 1024 / 1024, 2),
    }


def query_type(query: str) -> str:
    normalized = query.strip().upper()
    for kind in QUERY_TYPES:
        if normalized.startswith(kind):
            return kind
    return "OTHER"


class PerformanceMonitor:
    """Timers, counters and metrics logged to the performance channel."""

    def __init__(
        self,
        slow_query_seconds: float = 1.0,
        slow_request_seconds: float = 2.0,
        logger: Optional[Any] = None,
    ):
        self.slow_query_seconds = slow_query_seconds
        self.slow_request_seconds = slow_request_seconds
        self.logger = logger or structlog.get_logger("performance")
        self._timers: Dict[str, float] = {}
        self._counters: Dict[str, int] = {}
        self._metrics: Dict[str, Any] = {}
        # Handlers run in the threadpool and share this instance
        self._lock = threading.Lock()

    # =========================================================================
    # Timers
    # =========================================================================

    def start_timer(self, name: str) -> None:
        with self._lock:
            self._timers[name] = time.perf_counter()

    def stop_timer(self, name: str) -> float:
        """
        Stop a timer and record its duration as metric timer.<name>.

        Raises:
            ValueError: the timer was not started
        """
        with self._lock:
            started = self._timers.pop(name, None)
        if started is None:
            raise ValueError(f"Timer '{name}' was not started")

        duration = time.perf_counter() - started
        self.record_metric(f"timer.{name}", duration)
        return duration

    def measure(self, name: str, fn: Callable[[], T]) -> T:
        """Run fn and log how long it took, also when it raises."""
        self.start_timer(name)
        try:
            return fn()
        finally:
            duration = self.stop_timer(name)
            memory = memory_usage()
            self.logger.info(
                "performance_measurement",
                metric=name,
                duration=duration,
                memory_usage=memory["current_usage"],
                memory_peak=memory["peak_usage"],
            )

    # =========================================================================
    # Counters & metrics
    # =========================================================================

    def increment_counter(self, name: str, value: int = 1) -> int:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value
            current = self._counters[name]
        self.record_metric(f"counter.{name}", current)
        return current

    def record_metric(self, name: str, value: Any) -> None:
        with self._lock:
            self._metrics[name] = value
        self.logger.debug("metric_recorded", metric_name=name, metric_value=value)

    def record_memory_usage(self, context: str = "general") -> Dict[str, float]:
        memory = memory_usage()
        self.record_metric(f"memory.usage.{context}", memory["current_usage"])
        self.record_metric(f"memory.peak.{context}", memory["peak_usage"])
        self.logger.info(
            "memory_usage_recorded",
            context=context,
            memory_usage_mb=memory["current_usage_mb"],
            memory_peak_mb=memory["peak_usage_mb"],
        )
        return memory

    def record_database_query(self, query: str, duration: float, success: bool = True) -> None:
        self.increment_counter("database.queries.total")
        self.increment_counter("database.queries.successful" if success else "database.queries.failed")
        self.record_metric("database.query.last_duration", duration)

        if duration > self.slow_query_seconds:
            self.increment_counter("database.queries.slow")
            self.logger.warning(
                "slow_database_query",
                query=query[:200],
                duration=duration,
                success=success,
            )

        self.logger.info(
            "database_query_executed",
            duration=duration,
            success=success,
            query_type=query_type(query),
        )

    def record_http_request(self, method: str, path: str, status_code: int, duration: float) -> None:
        self.increment_counter("http.requests.total")
        self.increment_counter(f"http.requests.method.{method}")
        self.increment_counter(f"http.requests.status.{status_code}")
        if status_code >= 400:
            self.increment_counter("http.requests.errors")

        self.record_metric("http.request.last_duration", duration)

        if duration > self.slow_request_seconds:
            self.increment_counter("http.requests.slow")
            self.logger.warning(
                "slow_http_request",
                method=method,
                path=path,
                status_code=status_code,
                duration=duration,
            )

        self.logger.info(
            "http_request_recorded",
            method=method,
            path=path,
            status_code=status_code,
            duration=duration,
        )

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            metrics = dict(self._metrics)
        return {
            "counters": counters,
            "metrics": metrics,
            "memory": memory_usage(),
            "timestamp": time.time(),
        }

    def reset(self) -> None:
        with self._lock:
            self._timers.clear()
            self._counters.clear()
            self._metrics.clear()
        self.logger.info("performance_metrics_reset")
