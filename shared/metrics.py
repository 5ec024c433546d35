"""
Shared metrics configuration for the pricing access layer.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, start_http_server, CollectorRegistry
from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector registers its metrics on its own ``CollectorRegistry``
    unless one is passed in, so several collectors (and test cases) can
    coexist in one process without duplicate-timeseries errors.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        if self.service_name == "pricing":
            self._setup_pricing_metrics()

    def _setup_pricing_metrics(self):
        """Set up pricing-specific metrics."""
        self._metrics["pricing_quotes_total"] = Counter(
            "pricing_quotes_total",
            "Total price quotes served",
            ["route"],
            registry=self.registry
        )

        self._metrics["pricing_fee_adjustments_total"] = Counter(
            "pricing_fee_adjustments_total",
            "Total fee recomputations",
            ["route", "direction"],
            registry=self.registry
        )

        self._metrics["pricing_degenerate_target_total"] = Counter(
            "pricing_degenerate_target_total",
            "Adjustments skipped because the target rate was not positive",
            ["route"],
            registry=self.registry
        )

        self._metrics["pricing_current_fee_usd"] = Gauge(
            "pricing_current_fee_usd",
            "Current per-request fee in USD",
            ["route"],
            registry=self.registry
        )

        self._metrics["pricing_current_rps"] = Gauge(
            "pricing_current_rps",
            "Last sampled request rate per second",
            ["route"],
            registry=self.registry
        )

        self._metrics["pricing_target_rps"] = Gauge(
            "pricing_target_rps",
            "Target request rate per second",
            ["route"],
            registry=self.registry
        )

        self._metrics["pricing_quote_duration_seconds"] = Histogram(
            "pricing_quote_duration_seconds",
            "Time spent computing a quote",
            ["route"],
            registry=self.registry
        )

    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        start_http_server(port, registry=self.registry)

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_quote(self, route: str, fee_usd: float, rps: float, target_rps: float):
        """Record a served quote and the controller state behind it."""
        with self._lock:
            self.increment_counter("pricing_quotes_total", route=route)
            self.set_gauge("pricing_current_fee_usd", fee_usd, route=route)
            self.set_gauge("pricing_current_rps", rps, route=route)
            self.set_gauge("pricing_target_rps", target_rps, route=route)

    def record_adjustment(self, route: str, direction: str, fee_usd: float):
        """Record a fee recomputation; direction is up, down or stable."""
        with self._lock:
            self.increment_counter("pricing_fee_adjustments_total", route=route, direction=direction)
            self.set_gauge("pricing_current_fee_usd", fee_usd, route=route)

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).set(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
