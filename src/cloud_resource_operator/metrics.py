"""Prometheus metrics for the Cloud Resource Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "cloud_resource_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "cloud_resource_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

# Provider operation metrics
provider_operations_total = Counter(
    "cloud_resource_operator_provider_operations_total",
    "Total number of provider operations",
    ["provider", "kind", "operation", "result"],
)

# Credential issuing metrics
credentials_reconcile_total = Counter(
    "cloud_resource_operator_credentials_reconcile_total",
    "Total number of credential reconciliations",
    ["result"],
)

# API call metrics
api_call_total = Counter(
    "cloud_resource_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "cloud_resource_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

# Error metrics
error_total = Counter(
    "cloud_resource_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

# Resource status metrics
resource_status_total = Counter(
    "cloud_resource_operator_resource_status_total",
    "Resource status observations",
    ["kind", "status"],
)
