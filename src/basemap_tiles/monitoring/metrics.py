"""
Metrics Collection

Prometheus metrics for overzoom runs and the tile server. Each collector
owns its own ``CollectorRegistry`` so several collectors (one per batch run,
one per server app, one per test) never clash on metric names.

Recent values are also kept in a ring buffer so a run can report a summary
without scraping Prometheus.
"""

import statistics
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    push_to_gateway,
)


@dataclass
class MetricValue:
    """Represents a single metric value with metadata."""
    name: str
    value: Union[int, float]
    timestamp: datetime
    labels: Dict[str, str] = field(default_factory=dict)


class MetricsCollector:
    """
    Thread-safe metrics collector backed by prometheus_client.

    Unknown metric names are still buffered for ``get_summary`` but are not
    exported to Prometheus.
    """

    def __init__(
        self,
        enable_prometheus: bool = True,
        prometheus_gateway: Optional[str] = None,
        job_name: str = "basemap_tiles"
    ):
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Enable Prometheus metrics collection
            prometheus_gateway: Prometheus pushgateway URL
            job_name: Job label used when pushing to the gateway
        """
        self.enable_prometheus = enable_prometheus
        self.prometheus_gateway = prometheus_gateway
        self.job_name = job_name

        self.logger = structlog.get_logger(collector_type="MetricsCollector")

        self.metrics_buffer = deque(maxlen=10000)
        self.lock = threading.RLock()
        self.start_time = time.time()
        self.total_collected = 0

        if self.enable_prometheus:
            self._init_prometheus()

    def _init_prometheus(self) -> None:
        """Initialize Prometheus metrics."""
        self.prometheus_registry = CollectorRegistry()
        self.prometheus_counters: Dict[str, Counter] = {}
        self.prometheus_histograms: Dict[str, Histogram] = {}
        self.prometheus_gauges: Dict[str, Gauge] = {}

        self._create_prometheus_metric(
            'counter', 'overzoom_tiles_total',
            'Synthesized tile requests by terminal state',
            ['status']
        )

        self._create_prometheus_metric(
            'counter', 'tile_payload_errors_total',
            'Ancestor tiles that could not be decoded',
            ['kind']
        )

        self._create_prometheus_metric(
            'histogram', 'overzoom_tile_duration_seconds',
            'Duration of single tile synthesis'
        )

        self._create_prometheus_metric(
            'histogram', 'overzoom_batch_duration_seconds',
            'Duration of batch overzoom runs'
        )

        self._create_prometheus_metric(
            'gauge', 'overzoom_batch_tiles',
            'Candidate tiles of the current batch per zoom level',
            ['zoom_level']
        )

        self._create_prometheus_metric(
            'counter', 'tile_server_requests_total',
            'Tile server requests by outcome',
            ['source', 'status']
        )

    def _create_prometheus_metric(
        self,
        metric_type: str,
        name: str,
        description: str,
        labels: List[str] = None
    ) -> None:
        """Create a Prometheus metric."""
        if labels is None:
            labels = []

        if metric_type == 'counter':
            self.prometheus_counters[name] = Counter(
                name, description, labels,
                registry=self.prometheus_registry
            )
        elif metric_type == 'histogram':
            self.prometheus_histograms[name] = Histogram(
                name, description, labels,
                registry=self.prometheus_registry
            )
        elif metric_type == 'gauge':
            self.prometheus_gauges[name] = Gauge(
                name, description, labels,
                registry=self.prometheus_registry
            )
        else:
            raise ValueError(f"Unsupported metric type: {metric_type}")

    def _buffer(self, name: str, value: Union[int, float], labels: Dict[str, str]) -> None:
        self.metrics_buffer.append(MetricValue(
            name=name,
            value=value,
            timestamp=datetime.utcnow(),
            labels=labels
        ))
        self.total_collected += 1

    def increment_counter(
        self,
        name: str,
        value: Union[int, float] = 1,
        labels: Dict[str, str] = None
    ) -> None:
        """
        Increment a counter metric.

        Args:
            name: Metric name
            value: Value to increment by
            labels: Metric labels
        """
        labels = labels or {}
        with self.lock:
            self._buffer(name, value, labels)
            if self.enable_prometheus and name in self.prometheus_counters:
                metric = self.prometheus_counters[name]
                (metric.labels(**labels) if labels else metric).inc(value)

    def record_histogram(
        self,
        name: str,
        value: Union[int, float],
        labels: Dict[str, str] = None
    ) -> None:
        """
        Record a histogram metric.

        Args:
            name: Metric name
            value: Value to record
            labels: Metric labels
        """
        labels = labels or {}
        with self.lock:
            self._buffer(name, value, labels)
            if self.enable_prometheus and name in self.prometheus_histograms:
                metric = self.prometheus_histograms[name]
                (metric.labels(**labels) if labels else metric).observe(value)

    def set_gauge(
        self,
        name: str,
        value: Union[int, float],
        labels: Dict[str, str] = None
    ) -> None:
        """Set a gauge metric."""
        labels = labels or {}
        with self.lock:
            self._buffer(name, value, labels)
            if self.enable_prometheus and name in self.prometheus_gauges:
                metric = self.prometheus_gauges[name]
                (metric.labels(**labels) if labels else metric).set(value)

    def time_function(self, name: str, labels: Dict[str, str] = None):
        """
        Decorator to time function execution.

        Args:
            name: Metric name
            labels: Metric labels

        Returns:
            Decorator function
        """
        def decorator(func: Callable) -> Callable:
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_histogram(name, time.time() - start_time, labels)
            return wrapper
        return decorator

    def get_summary(self) -> Dict[str, Any]:
        """Per-metric count/sum/mean over the buffered values."""
        with self.lock:
            grouped: Dict[str, List[float]] = defaultdict(list)
            for metric in self.metrics_buffer:
                grouped[metric.name].append(metric.value)

        summary: Dict[str, Any] = {
            'uptime_seconds': time.time() - self.start_time,
            'total_metrics_collected': self.total_collected,
            'metrics': {}
        }
        for name, values in grouped.items():
            summary['metrics'][name] = {
                'count': len(values),
                'sum': sum(values),
                'mean': statistics.mean(values),
            }
        return summary

    def export_prometheus(self) -> bytes:
        """Prometheus text exposition of this collector's registry."""
        if not self.enable_prometheus:
            return b""
        return generate_latest(self.prometheus_registry)

    def push_to_prometheus_gateway(self) -> bool:
        """Push metrics to Prometheus pushgateway."""
        if not self.enable_prometheus or not self.prometheus_gateway:
            return False

        try:
            push_to_gateway(
                self.prometheus_gateway,
                job=self.job_name,
                registry=self.prometheus_registry
            )
        except OSError as e:
            self.logger.error(
                "Failed to push metrics to Prometheus gateway",
                gateway=self.prometheus_gateway,
                error=str(e)
            )
            return False

        self.logger.info(
            "Pushed metrics to Prometheus gateway",
            gateway=self.prometheus_gateway,
            job=self.job_name
        )
        return True
