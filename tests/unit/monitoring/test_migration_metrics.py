"""
Tests for the Prometheus migration metrics.
"""

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from casport.monitoring.prometheus import MigrationMetrics, start_metrics_server


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return MigrationMetrics(registry=registry)


class TestMigrationMetrics:
    """Tests for MigrationMetrics."""

    def test_record_item(self, metrics, registry):
        metrics.record_item("migrated", 0.02)
        metrics.record_item("migrated", 0.03)
        metrics.record_item("skipped")

        assert registry.get_sample_value("casport_items_total", {"result": "migrated"}) == 2
        assert registry.get_sample_value("casport_items_total", {"result": "skipped"}) == 1
        assert registry.get_sample_value("casport_transfer_duration_seconds_count") == 2

    def test_record_retry_ignores_zero(self, metrics, registry):
        metrics.record_retry(0)
        metrics.record_retry(3)

        assert registry.get_sample_value("casport_transfer_retries_total") == 3

    def test_record_run(self, metrics, registry):
        metrics.record_run("cancelled")

        assert registry.get_sample_value("casport_runs_total", {"status": "cancelled"}) == 1

    def test_in_flight_gauge(self, metrics, registry):
        metrics.transfer_started()
        metrics.transfer_started()
        metrics.transfer_finished()

        assert registry.get_sample_value("casport_transfers_in_flight") == 1

    def test_custom_prefix(self, registry):
        MigrationMetrics(prefix="nightly", registry=registry).record_run("completed")

        assert registry.get_sample_value("nightly_runs_total", {"status": "completed"}) == 1

    def test_start_metrics_server(self):
        with patch("casport.monitoring.prometheus.start_http_server") as mock_start:
            start_metrics_server(port=9100, addr="127.0.0.1")

        mock_start.assert_called_once_with(9100, addr="127.0.0.1")
