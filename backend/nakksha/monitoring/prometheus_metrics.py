"""
Prometheus metrics module for Nakksha.

Service timings come from the @measure_operation decorator; the domain
counters below track slot generation, reconciliation and booking outcomes.
"""

from threading import Lock
from typing import Optional, cast

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

http_request_duration_seconds = Histogram(
    "nakksha_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_total = Counter(
    "nakksha_http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

service_operation_duration_seconds = Histogram(
    "nakksha_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "nakksha_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "nakksha_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

slots_generated_total = Counter(
    "nakksha_slots_generated_total",
    "Slots inserted by the generator",
    ["trigger"],  # manual | bulk_replace | scheduled
    registry=REGISTRY,
)

slots_reconciled_total = Counter(
    "nakksha_slots_reconciled_total",
    "Slots blocked, restored or retimed by pattern changes",
    ["action"],  # blocked | restored | retimed
    registry=REGISTRY,
)

booking_attempts_total = Counter(
    "nakksha_booking_attempts_total",
    "Outcomes of slot booking attempts",
    ["outcome"],  # booked | conflict | released
    registry=REGISTRY,
)

pattern_lock_total = Counter(
    "nakksha_pattern_lock_total",
    "Pattern update lock operations",
    ["action", "status"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None

    @staticmethod
    def record_http_request(method: str, endpoint: str, duration: float, status_code: int) -> None:
        """Record HTTP request metrics."""
        labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}

        http_request_duration_seconds.labels(**labels).observe(duration)
        http_requests_total.labels(**labels).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'SlotGenerator')
            operation: Operation/method name (e.g., 'generate_slots')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_slots_generated(count: int, trigger: str = "manual") -> None:
        if count > 0:
            slots_generated_total.labels(trigger=trigger).inc(count)
            PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_slots_reconciled(action: str, count: int) -> None:
        if count > 0:
            slots_reconciled_total.labels(action=action).inc(count)
            PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_booking_attempt(outcome: str) -> None:
        booking_attempts_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_pattern_lock(action: str, status: str) -> None:
        pattern_lock_total.labels(action=action, status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        The payload is cached until the next recorded metric.
        """
        with PrometheusMetrics._cache_lock:
            if PrometheusMetrics._cache_payload is None:
                PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = None


# Global instance
prometheus_metrics = PrometheusMetrics()
