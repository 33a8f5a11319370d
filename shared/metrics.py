"""
Shared metrics configuration for the feature access service.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, start_http_server, CollectorRegistry, REGISTRY


class MetricsCollector:
    """Centralized metrics collector for services."""
    
    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()
    
    def _setup_metrics(self):
        """Set up common metrics for the service."""
        
        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )
        
        # Service-specific metrics
        if self.service_name == "features":
            self._setup_features_metrics()
    
    def _setup_features_metrics(self):
        """Set up feature access metrics."""
        self._metrics["entitlement_checks_total"] = Counter(
            "entitlement_checks_total",
            "Total entitlement checks",
            ["decision", "reason"],
            registry=self.registry
        )
        
        self._metrics["entitlement_faults_total"] = Counter(
            "entitlement_faults_total",
            "Infrastructure faults absorbed during context assembly",
            ["fault", "severity"],
            registry=self.registry
        )
        
        self._metrics["entitlement_assembly_duration_seconds"] = Histogram(
            "entitlement_assembly_duration_seconds",
            "Entitlement context assembly duration in seconds",
            registry=self.registry
        )
    
    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        start_http_server(port, registry=self.registry or REGISTRY)
    
    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()
    
    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            with self._lock:
                self._metrics[metric_name].labels(**labels).inc()
    
    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name not in self._metrics:
            return
        metric = self._metrics[metric_name]
        if labels:
            metric = metric.labels(**labels)
        metric.observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
