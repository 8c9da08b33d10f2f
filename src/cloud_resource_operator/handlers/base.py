"""Base handler translating reconciliation results into kopf outcomes."""

from __future__ import annotations

import logging
from typing import Any

import kopf

from ..config import OperatorConfig
from ..constants import CONTROLLER_NAME
from ..exceptions import ConfigurationError, InvariantViolationError
from ..logging import log_resource_event
from ..models import ReconcileResult, RequestID, ResourceKind
from ..utils.context import ReconcileContext
from ..utils.errors import sanitize_exception


class BaseHandler:
    """Common kopf handler behaviour for one resource kind."""

    def __init__(self, kind: ResourceKind):
        """Initialize base handler.

        Args:
            kind: Resource kind handled (e.g. ResourceKind.CACHE)
        """
        self.kind = kind
        self.logger = logging.getLogger(__name__)

    def request_id(self, meta: dict[str, Any]) -> RequestID:
        return RequestID(kind=self.kind, namespace=meta.get("namespace", "default"), name=meta["name"])

    def make_context(self, memo: Any) -> ReconcileContext:
        """Context for one pass, cancelled when the operator shuts down."""
        config: OperatorConfig = memo.config
        return ReconcileContext(timeout=config.reconcile_timeout, shutdown=getattr(memo, "shutdown", None))

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured log message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            error: Optional exception to include sanitized error details
            event: Event type (default: "error")
            reason: Reason for the event (default: "Error")
            **kwargs: Additional fields to include in the log
        """
        log_data = kwargs.copy()
        if error is not None:
            log_data["error"] = sanitize_exception(error)
            log_data["error_type"] = type(error).__name__

        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind.crd_kind,
            resource_name=meta.get("name", "unknown"),
            namespace=meta.get("namespace", "default"),
            uid=meta.get("uid", "unknown"),
            event=event,
            reason=reason,
            message=message,
            level=logging.ERROR,
            **log_data,
        )

    def reconcile(self, meta: dict[str, Any], memo: Any, retry: int = 0) -> None:
        """Run a reconciliation pass for a create, update, resume or timer event."""
        result = memo.controller.reconcile(self.request_id(meta), self.make_context(memo))
        self.translate(meta, result, retry, memo.config)

    def delete(self, meta: dict[str, Any], memo: Any, retry: int = 0) -> None:
        """Run a reconciliation pass for a deleted resource.

        Every failure is retried, so a fixed configuration eventually lets the
        finalizer go.
        """
        result = memo.controller.reconcile(self.request_id(meta), self.make_context(memo))
        if result.error is not None:
            self.log_error(meta, "Deletion failed", error=result.error, reason="DeletionFailed")
            raise kopf.TemporaryError(
                f"Deletion failed: {sanitize_exception(result.error)}",
                delay=memo.config.retry_delay(retry),
            )

    def translate(
        self,
        meta: dict[str, Any],
        result: ReconcileResult,
        retry: int,
        config: OperatorConfig,
    ) -> None:
        """Map a reconciliation result onto kopf's retry semantics.

        Args:
            meta: Kubernetes resource metadata
            result: Result of the pass
            retry: Number of previous attempts of this handler
            config: Operator configuration providing the backoff bounds

        Raises:
            kopf.TemporaryError: While pending (fixed delay) or after an
                external failure (exponential backoff)
            kopf.PermanentError: After a configuration error or invariant
                violation
        """
        error = result.error
        if error is None:
            if result.pending:
                raise kopf.TemporaryError("Resource is being provisioned", delay=result.requeue_after)
            return

        message = sanitize_exception(error)
        if isinstance(error, (ConfigurationError, InvariantViolationError)):
            raise kopf.PermanentError(f"Reconciliation failed: {message}") from error

        delay = config.retry_delay(retry)
        self.log_error(meta, f"Reconciliation failed, retrying in {delay}s", error=error, reason="RetryScheduled")
        raise kopf.TemporaryError(f"Reconciliation failed: {message}", delay=delay) from error


# Timers are registered at import time, before the startup handler runs
TIMER_INTERVAL = OperatorConfig.from_env().requeue_interval
