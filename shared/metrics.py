"""
Shared metrics configuration for the render cache layer.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Collectors register into their own registry unless one is shared explicitly
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
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
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_cache_metrics()

    def _setup_cache_metrics(self):
        """Set up render cache metrics."""
        self._metrics["render_cache_reads_total"] = Counter(
            "render_cache_reads_total",
            "Total fragment store reads",
            ["strategy", "result"],
            registry=self.registry
        )

        self._metrics["render_cache_writes_total"] = Counter(
            "render_cache_writes_total",
            "Total fragment store writes",
            ["strategy"],
            registry=self.registry
        )

        self._metrics["render_cache_skipped_writes_total"] = Counter(
            "render_cache_skipped_writes_total",
            "Rendered bodies not persisted because the response was not cacheable",
            ["reason"],
            registry=self.registry
        )

        self._metrics["render_cache_expirations_total"] = Counter(
            "render_cache_expirations_total",
            "Total explicit cache expirations",
            registry=self.registry
        )

        self._metrics["render_cache_render_duration_seconds"] = Histogram(
            "render_cache_render_duration_seconds",
            "Time spent rendering on a cache miss",
            ["strategy"],
            registry=self.registry
        )

        self._metrics["forgery_checks_total"] = Counter(
            "forgery_checks_total",
            "Cache-aware forgery verifications",
            ["result"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

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

    def record_cache_read(self, strategy: str, hit: bool):
        """Record a fragment store lookup."""
        self._metrics["render_cache_reads_total"].labels(
            strategy=strategy,
            result="hit" if hit else "miss"
        ).inc()

    def record_render(self, strategy: str, duration: float):
        """Record time spent rendering on a cache miss."""
        self._metrics["render_cache_render_duration_seconds"].labels(strategy=strategy).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).inc()

    def get_sample_value(self, name: str, **labels) -> Optional[float]:
        """Read back a sample from this collector's registry."""
        return self.registry.get_sample_value(name, labels)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
