"""
Prometheus metrics for monitoring feed aggregation.

Counters, gauges and histograms covering:
- Upstream request and error rates per source
- Cache hits and misses (per-client and aggregate layers)
- Per-source fetch latency
- Aggregate result size

`devfeed watch --metrics` exposes them on a scrape endpoint.
"""

import logging

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from devfeed.config.settings import get_settings

logger = logging.getLogger(__name__)

# Fetch latency buckets, seconds
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for devfeed.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_request("github", status="success")
        metrics.record_cache("aggregate", hit=True)
    """

    def __init__(self):
        """Register every devfeed metric with the default registry."""

        self.source_requests = Counter(
            "devfeed_source_requests_total",
            "Total upstream HTTP requests issued by source clients",
            ["source", "status"],  # status: success, error
        )

        self.source_errors = Counter(
            "devfeed_source_errors_total",
            "Total source fetch failures recorded by the aggregator",
            ["source", "error_type"],
        )

        self.cache_hits = Counter(
            "devfeed_cache_hits_total",
            "Total cache hits",
            ["layer"],  # layer: source, aggregate
        )

        self.cache_misses = Counter(
            "devfeed_cache_misses_total",
            "Total cache misses",
            ["layer"],
        )

        self.fetch_latency = Histogram(
            "devfeed_source_fetch_latency_seconds",
            "Time to fetch and normalize the latest items from a source",
            ["source"],
            buckets=LATENCY_BUCKETS,
        )

        self.aggregate_items = Gauge(
            "devfeed_aggregate_items",
            "Number of items in the most recent aggregate result",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Serve the default registry over HTTP.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        port = port or get_settings().metrics_port
        start_http_server(port)
        logger.info(f"Metrics server started on port {port}")

    def record_request(self, source: str, status: str) -> None:
        """Record one upstream HTTP request outcome."""
        self.source_requests.labels(source=source, status=status).inc()

    def record_source_error(self, source: str, error_type: str) -> None:
        """Record a source failure captured at the fan-out boundary."""
        self.source_errors.labels(source=source, error_type=error_type).inc()

    def record_cache(self, layer: str, hit: bool) -> None:
        """Record a cache lookup for the given layer."""
        if hit:
            self.cache_hits.labels(layer=layer).inc()
        else:
            self.cache_misses.labels(layer=layer).inc()

    def record_fetch_latency(self, source: str, latency: float) -> None:
        """Record how long a source fetch took, successful or not."""
        self.fetch_latency.labels(source=source).observe(latency)

    def set_aggregate_size(self, count: int) -> None:
        """Set the size of the latest aggregate result."""
        self.aggregate_items.set(count)


# Module-level singleton
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Return the shared MetricsCollector, creating it on first use."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
