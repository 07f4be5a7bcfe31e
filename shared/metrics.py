"""
Shared metrics configuration for the Cloud Save Backend.
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from typing import Dict, Any, Optional


METRICS_NAMESPACE = "cloud_save_backend"


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several service instances (tests
    build one per case) never collide on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Process-level defaults (cpu, memory, fds, python version)
        ProcessCollector(namespace=METRICS_NAMESPACE, registry=self.registry)
        PlatformCollector(registry=self.registry)

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=(0.05, 0.1, 0.2, 0.3, 0.4, 0.5, 1.0, 2.0, 5.0),
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        if self.service_name == "saves":
            self._setup_saves_metrics()

    def _setup_saves_metrics(self):
        """Set up save-file service metrics."""
        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["cache"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses",
            ["cache"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        self._metrics["cache_evictions_total"] = Counter(
            "cache_evictions_total",
            "Cache entries removed, by reason",
            ["cache", "reason"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        self._metrics["cache_entries"] = Gauge(
            "cache_entries",
            "Entries physically held by the cache, expired ones included",
            ["cache"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        self._metrics["save_operations_total"] = Counter(
            "save_operations_total",
            "Save file operations by outcome",
            ["operation", "status"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

        self._metrics["save_upload_bytes"] = Histogram(
            "save_upload_bytes",
            "Size of uploaded save files in bytes",
            buckets=(1024, 16 * 1024, 256 * 1024, 1024 * 1024, 8 * 1024 * 1024, 50 * 1024 * 1024),
            namespace=METRICS_NAMESPACE,
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in Prometheus text exposition format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_save_operation(self, operation: str, status: str):
        """Record the outcome of a save-file operation."""
        self.increment_counter("save_operations_total", operation=operation, status=status)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
