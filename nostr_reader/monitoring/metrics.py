"""Prometheus metrics for monitoring the Nostr community client."""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Define metrics
FETCH_OPERATIONS = Counter(
    "nostr_reader_fetch_operations_total",
    "Number of fan-out fetch operations performed",
    ["operation_type"],
)

RELAY_ERRORS = Counter(
    "nostr_reader_relay_errors_total",
    "Number of relay failures encountered",
    ["relay", "error_type"],
)

EVENTS_RECEIVED = Counter(
    "nostr_reader_events_received_total",
    "Number of events received from relays before deduplication",
    ["relay"],
)

CACHE_LOOKUPS = Counter(
    "nostr_reader_cache_lookups_total",
    "Number of cache lookups",
    ["cache", "result"],
)

PUBLISH_RESULTS = Counter(
    "nostr_reader_publish_results_total",
    "Per-relay outcome of publish operations",
    ["outcome"],
)

REQUEST_DURATION = Histogram(
    "nostr_reader_fetch_duration_seconds",
    "Duration of fan-out fetch operations in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the Nostr community client."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except OSError as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_fetch_operation(self, operation_type: str) -> None:
        """
        Record a fetch operation.

        Args:
            operation_type: Type of fetch operation (e.g., 'feed', 'thread', 'lookup')
        """
        FETCH_OPERATIONS.labels(operation_type=operation_type).inc()

    def record_relay_error(self, relay: str, error_type: str) -> None:
        """
        Record a relay failure.

        Args:
            relay: Relay URL
            error_type: Kind of failure (e.g., 'connect', 'query', 'timeout', 'publish')
        """
        RELAY_ERRORS.labels(relay=relay, error_type=error_type).inc()

    def record_events_received(self, relay: str, count: int) -> None:
        if count:
            EVENTS_RECEIVED.labels(relay=relay).inc(count)

    def record_cache_lookup(self, cache: str, hit: bool) -> None:
        CACHE_LOOKUPS.labels(cache=cache, result="hit" if hit else "miss").inc()

    def record_publish_result(self, ok: bool) -> None:
        PUBLISH_RESULTS.labels(outcome="accepted" if ok else "rejected").inc()

    def time_request(self) -> "RequestTimer":
        """
        Create a context manager for timing fetch operations.

        Returns:
            RequestTimer context manager
        """
        return RequestTimer()


class RequestTimer:
    """Context manager for timing fetch operations."""

    def __init__(self):
        self.start_time: Optional[float] = None

    def __enter__(self) -> "RequestTimer":
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            duration = time.time() - self.start_time
            REQUEST_DURATION.observe(duration)


def exporter_from_config(monitoring) -> Optional[PrometheusExporter]:
    """
    Build and start an exporter when monitoring is enabled.

    Args:
        monitoring: ``MonitoringConfig`` section of the application config

    Returns:
        A started exporter, or None when Prometheus is disabled
    """
    if not monitoring.enable_prometheus:
        return None

    exporter = PrometheusExporter(port=monitoring.prometheus_port)
    exporter.start_server()
    return exporter
