"""
Prometheus metrics collection.
"""

from datetime import datetime

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from dbqueue.constants import (
    METRIC_BROKER_ERRORS,
    METRIC_BROKER_LATENCY,
    METRIC_CURSOR_TIMESTAMP,
    METRIC_EMPTY_POLLS,
    METRIC_MESSAGES_CONSUMED,
    METRIC_MESSAGES_PRODUCED,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the broker.

    Collects metrics for:
    - Messages produced and consumed
    - Empty polls
    - Broker failures by operation and kind
    - Produce / consume round-trip latency
    - Cursor position
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.messages_produced = Counter(
            METRIC_MESSAGES_PRODUCED,
            "Total number of messages committed by produce",
            registry=self._registry,
        )

        self.messages_consumed = Counter(
            METRIC_MESSAGES_CONSUMED,
            "Total number of messages returned by consume",
            registry=self._registry,
        )

        self.empty_polls = Counter(
            METRIC_EMPTY_POLLS,
            "Total number of consume calls that returned nothing",
            registry=self._registry,
        )

        self.broker_errors = Counter(
            METRIC_BROKER_ERRORS,
            "Total number of failed broker operations",
            ["operation", "kind"],
            registry=self._registry,
        )

        self.broker_latency = Histogram(
            METRIC_BROKER_LATENCY,
            "Broker operation round-trip time in seconds",
            ["operation"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
            registry=self._registry,
        )

        self.cursor_timestamp = Gauge(
            METRIC_CURSOR_TIMESTAMP,
            "Visibility deadline of the consumer cursor as a Unix timestamp",
            registry=self._registry,
        )

    def record_produced(self, count: int, duration_seconds: float) -> None:
        """Record a committed produce batch."""
        self.messages_produced.inc(count)
        self.broker_latency.labels(operation="produce").observe(duration_seconds)

    def record_consumed(self, count: int, duration_seconds: float) -> None:
        """Record a consume call."""
        if count:
            self.messages_consumed.inc(count)
        else:
            self.empty_polls.inc()
        self.broker_latency.labels(operation="consume").observe(duration_seconds)

    def record_error(self, operation: str, kind: str) -> None:
        """Record a failed broker operation."""
        self.broker_errors.labels(operation=operation, kind=kind).inc()

    def update_cursor(self, cursor: datetime) -> None:
        """Update the cursor gauge."""
        self.cursor_timestamp.set(max(cursor.timestamp(), 0.0))

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics


def serve_metrics(port: int) -> None:
    """
    Expose the default registry over HTTP on a background thread.

    Args:
        port: The port to listen on.
    """
    start_http_server(port)
