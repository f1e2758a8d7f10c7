"""
Monitoring Module

Prometheus-backed metrics for overzoom batch runs and the tile server.
"""

from .metrics import MetricsCollector, MetricValue

__all__ = [
    "MetricValue",
    "MetricsCollector",
]
