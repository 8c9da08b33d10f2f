"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_AVAILABLE,
    EVENT_REASON_CONFIGURATION_INVALID,
    EVENT_REASON_DELETED,
    EVENT_REASON_PROVISIONING,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource object the event refers to
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_configuration_invalid(body: dict[str, Any], message: str) -> None:
    """Emit configuration invalid event."""
    emit_event(body, EVENT_REASON_CONFIGURATION_INVALID, message, type_="Warning")


def emit_provisioning(body: dict[str, Any], message: str) -> None:
    """Emit provisioning in progress event."""
    emit_event(body, EVENT_REASON_PROVISIONING, message)


def emit_available(body: dict[str, Any], provider: str) -> None:
    """Emit resource available event."""
    emit_event(body, EVENT_REASON_AVAILABLE, f"Resource provisioned by provider {provider}")


def emit_deleted(body: dict[str, Any], provider: str) -> None:
    """Emit resource deleted event."""
    emit_event(body, EVENT_REASON_DELETED, f"External resource removed by provider {provider}")
