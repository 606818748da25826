"""
Prometheus metrics integration for casport.

Quick Start:
    >>> from casport.monitoring.prometheus import MigrationMetrics, start_metrics_server
    >>>
    >>> start_metrics_server(port=8000)
    >>> engine = MigrationEngine(source, metrics=MigrationMetrics())
"""

import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)


class MigrationMetrics:
    """
    Prometheus metrics collector for migration runs.

    Exposes the following metrics:
        - casport_items_total: Counter of item outcomes (migrated, skipped, failed)
        - casport_transfer_retries_total: Counter of retried transfer attempts
        - casport_runs_total: Counter of finished runs by terminal status
        - casport_transfer_duration_seconds: Histogram of per-item transfer time
        - casport_transfers_in_flight: Gauge of transfers currently running

    Example:
        >>> metrics = MigrationMetrics(registry=CollectorRegistry())
        >>> engine = MigrationEngine(source, metrics=metrics)
    """

    def __init__(self, prefix: str = "casport", registry: CollectorRegistry = REGISTRY):
        """
        Args:
            prefix: Metric name prefix (default: "casport")
            registry: Registry to register with (pass a fresh one in tests)
        """
        self._prefix = prefix

        self._items_total = Counter(
            f"{prefix}_items_total",
            "Migration item outcomes",
            ["result"],
            registry=registry,
        )

        self._retries_total = Counter(
            f"{prefix}_transfer_retries_total",
            "Transfer attempts that were retried",
            registry=registry,
        )

        self._runs_total = Counter(
            f"{prefix}_runs_total",
            "Finished migration runs",
            ["status"],
            registry=registry,
        )

        self._transfer_duration = Histogram(
            f"{prefix}_transfer_duration_seconds",
            "Time to transfer one item to the target",
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0, 30.0],
            registry=registry,
        )

        self._in_flight = Gauge(
            f"{prefix}_transfers_in_flight",
            "Transfers currently running",
            registry=registry,
        )

    def record_item(self, result: str, duration: float | None = None) -> None:
        """
        Record one item outcome.

        Args:
            result: "migrated", "skipped" or "failed"
            duration: Transfer time in seconds (omitted for skipped items)
        """
        self._items_total.labels(result=result).inc()
        if duration is not None:
            self._transfer_duration.observe(duration)

    def record_retry(self, count: int = 1) -> None:
        if count > 0:
            self._retries_total.inc(count)

    def record_run(self, status: str) -> None:
        """Record a run reaching a terminal status."""
        self._runs_total.labels(status=status).inc()

    def transfer_started(self) -> None:
        self._in_flight.inc()

    def transfer_finished(self) -> None:
        self._in_flight.dec()


def start_metrics_server(port: int = 8000, addr: str = "0.0.0.0") -> None:
    """
    Start a Prometheus HTTP metrics server.

    Example:
        >>> start_metrics_server(port=8000)
        >>> # Metrics available at http://localhost:8000/metrics
    """
    start_http_server(port, addr=addr)
    logger.info(f"Prometheus metrics server started on {addr}:{port}")
