"""Observability layer - logging and metrics."""

from devfeed.observability.logging import setup_logging
from devfeed.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
