"""Tests for Prometheus metrics."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from cloud_resource_operator.metrics import (
    api_call_duration_seconds,
    api_call_total,
    credentials_reconcile_total,
    error_total,
    provider_operations_total,
    reconcile_duration_seconds,
    reconcile_total,
    resource_status_total,
)


class TestMetricsExist:
    """Test that all expected metrics are defined."""

    @pytest.mark.parametrize("metric,name", [
        (reconcile_total, "cloud_resource_operator_reconcile"),
        (provider_operations_total, "cloud_resource_operator_provider_operations"),
        (credentials_reconcile_total, "cloud_resource_operator_credentials_reconcile"),
        (api_call_total, "cloud_resource_operator_api_call"),
        (error_total, "cloud_resource_operator_error"),
        (resource_status_total, "cloud_resource_operator_resource_status"),
    ])
    def test_counter_names(self, metric, name):
        """Prometheus counters don't include "_total" in their _name attribute."""
        assert metric._name == name

    def test_histogram_names(self):
        assert reconcile_duration_seconds._name == "cloud_resource_operator_reconcile_duration_seconds"
        assert api_call_duration_seconds._name == "cloud_resource_operator_api_call_duration_seconds"


class TestMetricsRecording:
    """Test that metrics record samples with their labels."""

    def test_reconcile_total_increments(self):
        labels = {"kind": "Redis", "result": "pending"}
        before = REGISTRY.get_sample_value("cloud_resource_operator_reconcile_total", labels) or 0.0

        reconcile_total.labels(**labels).inc()

        assert REGISTRY.get_sample_value("cloud_resource_operator_reconcile_total", labels) == before + 1

    def test_provider_operations_labels(self):
        labels = {"provider": "aws", "kind": "BlobStorage", "operation": "delete", "result": "success"}
        before = REGISTRY.get_sample_value("cloud_resource_operator_provider_operations_total", labels) or 0.0

        provider_operations_total.labels(**labels).inc()

        assert REGISTRY.get_sample_value("cloud_resource_operator_provider_operations_total", labels) == before + 1

    def test_api_call_duration_observed(self):
        labels = {"api_type": "elasticache", "operation": "describe_replication_groups"}
        before = REGISTRY.get_sample_value("cloud_resource_operator_api_call_duration_seconds_count", labels) or 0.0

        api_call_duration_seconds.labels(**labels).observe(0.2)

        assert REGISTRY.get_sample_value(
            "cloud_resource_operator_api_call_duration_seconds_count", labels
        ) == before + 1
