"""Utility functions for the Cloud Resource Operator."""

from .conditions import (
    set_configuration_error_condition,
    set_failed_condition,
    set_provisioning_condition,
    set_ready_condition,
    update_condition,
)
from .context import (
    ReconcileContext,
    get_context_dict,
    get_correlation_id,
    new_correlation_id,
    with_correlation_id,
)
from .events import emit_event
from .naming import build_bucket_name, build_replication_group_id
from .poll import poll_immediate
from .secrets import apply_secret, read_secret_data

__all__ = [
    "update_condition",
    "set_ready_condition",
    "set_provisioning_condition",
    "set_configuration_error_condition",
    "set_failed_condition",
    "ReconcileContext",
    "get_correlation_id",
    "new_correlation_id",
    "with_correlation_id",
    "get_context_dict",
    "emit_event",
    "build_replication_group_id",
    "build_bucket_name",
    "poll_immediate",
    "apply_secret",
    "read_secret_data",
]
