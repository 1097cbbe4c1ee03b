"""
Monitoring and metrics collection for the gemini crawler.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


@dataclass
class MetricPoint:
    """Individual metric data point."""
    timestamp: float
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class Metric:
    """Metric container with history."""
    name: str
    description: str
    metric_type: str  # counter, gauge, histogram
    points: List[MetricPoint] = field(default_factory=list)
    current_value: float = 0.0


class MetricsCollector:
    """Collects crawler metrics in memory and in a Prometheus registry."""

    MAX_POINTS = 1000

    def __init__(self, enable_prometheus: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.metrics: Dict[str, Metric] = {}
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port

        self.prometheus_registry = CollectorRegistry()
        self.prometheus_metrics = {
            'fetches_total': Counter(
                'gemcrawl_fetches_total',
                'Completed fetches by response status class',
                ['category'],
                registry=self.prometheus_registry
            ),
            'errors_total': Counter(
                'gemcrawl_errors_total',
                'Fetch failures by kind',
                ['error_type'],
                registry=self.prometheus_registry
            ),
            'links_discovered_total': Counter(
                'gemcrawl_links_discovered_total',
                'Newly discovered addresses',
                registry=self.prometheus_registry
            ),
            'fetch_time_seconds': Histogram(
                'gemcrawl_fetch_time_seconds',
                'Time spent fetching one address',
                registry=self.prometheus_registry
            ),
            'queue_size': Gauge(
                'gemcrawl_queue_size',
                'Number of addresses in the frontier',
                registry=self.prometheus_registry
            ),
            'entries': Gauge(
                'gemcrawl_entries',
                'Number of entries in the entry table',
                registry=self.prometheus_registry
            )
        }

    def start_prometheus_server(self):
        """Start the Prometheus metrics HTTP server if enabled."""
        if not self.enable_prometheus:
            return
        try:
            start_http_server(self.prometheus_port, registry=self.prometheus_registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_metric(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                      description: str = "", metric_type: str = "gauge"):
        """Record a metric value."""
        labels = labels or {}

        if name not in self.metrics:
            self.metrics[name] = Metric(name=name, description=description, metric_type=metric_type)

        metric = self.metrics[name]
        metric.points.append(MetricPoint(timestamp=time.time(), value=value, labels=labels))
        metric.current_value = value
        if len(metric.points) > self.MAX_POINTS:
            metric.points = metric.points[-self.MAX_POINTS:]

    def increment_counter(self, name: str, labels: Optional[Dict[str, str]] = None,
                          description: str = ""):
        current_value = self.metrics[name].current_value if name in self.metrics else 0
        self.record_metric(name, current_value + 1, labels, description, "counter")

        prom_metric = self.prometheus_metrics.get(name)
        if prom_metric is not None:
            (prom_metric.labels(**labels) if labels else prom_metric).inc()

    def set_gauge(self, name: str, value: float, description: str = ""):
        self.record_metric(name, value, None, description, "gauge")
        if name in self.prometheus_metrics:
            self.prometheus_metrics[name].set(value)

    def observe_histogram(self, name: str, value: float, description: str = ""):
        self.record_metric(name, value, None, description, "histogram")
        if name in self.prometheus_metrics:
            self.prometheus_metrics[name].observe(value)

    def get_metric(self, name: str) -> Optional[Metric]:
        return self.metrics.get(name)

    def get_current_values(self) -> Dict[str, float]:
        return {name: metric.current_value for name, metric in self.metrics.items()}


class CrawlerMonitor:
    """High-level monitoring interface for the crawler."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.logger = logging.getLogger(__name__)
        self.start_time = time.time()

    def record_fetch(self, category: str, fetch_time: float):
        self.metrics.increment_counter('fetches_total', {'category': category},
                                       'Completed fetches')
        self.metrics.observe_histogram('fetch_time_seconds', fetch_time, 'Fetch time')

    def record_error(self, error_type: str):
        self.metrics.increment_counter('errors_total', {'error_type': error_type},
                                       'Fetch failures')

    def record_discovery(self):
        self.metrics.increment_counter('links_discovered_total',
                                       description='Newly discovered addresses')

    def update_frontier(self, queued: int, entries: int):
        self.metrics.set_gauge('queue_size', queued, 'Addresses in frontier')
        self.metrics.set_gauge('entries', entries, 'Entries in entry table')

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        current_values = self.metrics.get_current_values()
        runtime = time.time() - self.start_time
        fetches = self.metrics.get_metric('fetches_total')

        return {
            'runtime_seconds': runtime,
            'metrics': current_values,
            'rates': {
                'fetches_per_second': (fetches.current_value / runtime) if fetches and runtime > 0 else 0,
            }
        }
