"""Reconciliation controller.

One pass loads a request, resolves its strategy, selects the provider serving
that strategy and drives the request toward its desired state: the external
resource provisioned and its connection details materialized, or the external
resource removed once deletion was requested.

Passes for the same request are serialized; passes for different requests run
in parallel and share no mutable state.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator

from . import metrics
from .constants import (
    CONTROLLER_NAME,
    PHASE_COMPLETE,
    PHASE_FAILED,
    PHASE_IN_PROGRESS,
    REASON_DELETION_FAILED,
    REASON_RECONCILE_FAILED,
)
from .exceptions import (
    ConfigurationError,
    ExternalCallError,
    InvariantViolationError,
    OperatorError,
    UnsupportedStrategyError,
)
from .logging import log_resource_event
from .models import (
    Pending,
    ProvisionedInstance,
    ReconcileResult,
    RequestID,
    ResourceRequest,
    StrategyConfig,
)
from .registry import ProviderRegistry
from .services.base import Provider
from .store import RequestStore, SecretSink
from .strategy import StrategyResolver
from .tracing import trace_span
from .utils.conditions import (
    set_configuration_error_condition,
    set_failed_condition,
    set_provisioning_condition,
    set_ready_condition,
)
from .utils.context import ReconcileContext, new_correlation_id, with_correlation_id
from .utils.errors import sanitize_exception
from .utils.events import (
    emit_available,
    emit_configuration_invalid,
    emit_deleted,
    emit_provisioning,
    emit_reconcile_failed,
    emit_reconcile_started,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEUE_AFTER = 30.0


class KeyedLock:
    """Per-key mutual exclusion; locks are dropped when no pass holds or awaits them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list[Any]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ReconcileController:
    """Drives resource requests toward their desired state."""

    def __init__(
        self,
        store: RequestStore,
        secrets: SecretSink,
        resolver: StrategyResolver,
        registry: ProviderRegistry,
        requeue_after: float = DEFAULT_REQUEUE_AFTER,
        timeout: float | None = None,
    ):
        """Initialize the controller.

        Args:
            store: Source of requests and sink of their status
            secrets: Sink for connection details
            resolver: Resolves the strategy of a (kind, tier) pair
            registry: Providers keyed by kind and strategy
            requeue_after: Fixed delay before the next pass of a pending or ready request
            timeout: Deadline of a pass in seconds when no context is given
        """
        self.store = store
        self.secrets = secrets
        self.resolver = resolver
        self.registry = registry
        self.requeue_after = requeue_after
        self.timeout = timeout
        self._locks = KeyedLock()

    def reconcile(self, request_id: RequestID, ctx: ReconcileContext | None = None) -> ReconcileResult:
        """Run one reconciliation pass for a request.

        Errors are returned in the result rather than raised, so the caller
        can decide on redelivery and backoff.

        Args:
            request_id: Identifier of the request
            ctx: Optional context carrying deadline and cancellation

        Returns:
            Scheduling decision of the pass
        """
        ctx = ctx or ReconcileContext(timeout=self.timeout)
        kind = request_id.kind.value

        with self._locks.hold(request_id.key), with_correlation_id(new_correlation_id()):
            with trace_span("reconcile", kind=kind, attributes={
                "resource.namespace": request_id.namespace,
                "resource.name": request_id.name,
            }):
                start_time = time.time()
                try:
                    result = self._reconcile(request_id, ctx)
                finally:
                    metrics.reconcile_duration_seconds.labels(kind=kind).observe(time.time() - start_time)

        if result.error is not None:
            metrics.reconcile_total.labels(kind=kind, result="error").inc()
            metrics.error_total.labels(kind=kind, error_type=type(result.error).__name__).inc()
        elif result.pending:
            metrics.reconcile_total.labels(kind=kind, result="pending").inc()
        else:
            metrics.reconcile_total.labels(kind=kind, result="success").inc()
        return result

    def _reconcile(self, request_id: RequestID, ctx: ReconcileContext) -> ReconcileResult:
        try:
            request = self.store.get(request_id, ctx)
        except ExternalCallError as e:
            logger.warning(f"Failed to load {request_id}: {sanitize_exception(e)}")
            return ReconcileResult.failed(e)

        if request is None:
            logger.info(f"{request_id} no longer exists, nothing to reconcile")
            return ReconcileResult.finished()

        if request.deletion_requested and not request.finalizer_present:
            self._log(request, "skip", "FinalizerAbsent", "Deletion requested and already cleaned up")
            return ReconcileResult.finished()

        try:
            strategy = self.resolver.resolve(request.kind, request.tier, ctx)
            provider = self._select_provider(request, strategy)
            if request.deletion_requested:
                return self._delete(ctx, request, strategy, provider)
            return self._provision(ctx, request, strategy, provider)
        except OperatorError as e:
            self._report_failure(ctx, request, e)
            return ReconcileResult.failed(e)

    def _select_provider(self, request: ResourceRequest, strategy: StrategyConfig) -> Provider:
        provider = self.registry.select(request.kind, strategy.deployment_strategy)
        if provider is None:
            raise UnsupportedStrategyError(
                f"no provider supports strategy {strategy.deployment_strategy} "
                f"for resource type {request.kind.value}"
            )
        return provider

    def _delete(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        strategy: StrategyConfig,
        provider: Provider,
    ) -> ReconcileResult:
        self._log(request, "delete", "Deleting", f"Deleting external resource with provider {provider.get_name()}")
        provider.delete(ctx, request, strategy)
        emit_deleted(request.body, provider.get_name())

        if request.finalizer_present:
            self.store.remove_finalizer(request, ctx)
        self._log(request, "deleted", "Deleted", "External resource deleted, finalizer removed")
        return ReconcileResult.finished()

    def _provision(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        strategy: StrategyConfig,
        provider: Provider,
    ) -> ReconcileResult:
        if request.status.phase is None:
            emit_reconcile_started(request.body)

        # The finalizer must be in place before anything external is created
        if not request.finalizer_present:
            self.store.add_finalizer(request, ctx)

        result = provider.create_or_discover(ctx, request, strategy)

        if isinstance(result, Pending):
            self._record_pending(ctx, request, result)
            return ReconcileResult.wait(self.requeue_after)

        if not isinstance(result, ProvisionedInstance) or not result.data:
            raise InvariantViolationError(
                f"provider {provider.get_name()} returned neither a usable instance nor a pending result"
            )

        secret_ref = self.secrets.materialize(request, result.data, ctx)
        self._record_available(ctx, request, result, strategy, secret_ref)
        return ReconcileResult.requeue(self.requeue_after)

    def _record_pending(self, ctx: ReconcileContext, request: ResourceRequest, pending: Pending) -> None:
        def mutate(status: dict[str, Any]) -> None:
            status["phase"] = PHASE_IN_PROGRESS
            status["message"] = pending.reason
            status["observedGeneration"] = request.generation
            status["conditions"] = set_provisioning_condition(
                status.get("conditions", []), pending.reason, request.generation
            )

        previous_phase = request.status.phase
        self.store.update_status(request.id, mutate, ctx)
        metrics.resource_status_total.labels(kind=request.kind.value, status="not_ready").inc()
        if previous_phase != PHASE_IN_PROGRESS:
            emit_provisioning(request.body, pending.reason)
        self._log(request, "pending", "Provisioning", pending.reason, requeue_after=self.requeue_after)

    def _record_available(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        instance: ProvisionedInstance,
        strategy: StrategyConfig,
        secret_ref: dict[str, str],
    ) -> None:
        message = f"Resource available, connection details in secret {secret_ref['name']}"

        def mutate(status: dict[str, Any]) -> None:
            status["provider"] = instance.provider
            status["strategy"] = strategy.tier
            status["secretRef"] = dict(secret_ref)
            status["phase"] = PHASE_COMPLETE
            status["message"] = message
            status["observedGeneration"] = request.generation
            status["conditions"] = set_ready_condition(status.get("conditions", []), message, request.generation)

        previous_phase = request.status.phase
        self.store.update_status(request.id, mutate, ctx)
        metrics.resource_status_total.labels(kind=request.kind.value, status="ready").inc()
        if previous_phase != PHASE_COMPLETE:
            emit_available(request.body, instance.provider)
        self._log(request, "available", "Available", message, provider=instance.provider, tier=strategy.tier)

    def _report_failure(self, ctx: ReconcileContext, request: ResourceRequest, error: OperatorError) -> None:
        """Surface an error on the request without clearing recorded status."""
        message = sanitize_exception(error)
        configuration = isinstance(error, ConfigurationError)
        permanent = configuration or isinstance(error, InvariantViolationError)
        reason = REASON_DELETION_FAILED if request.deletion_requested else REASON_RECONCILE_FAILED

        self._log(
            request,
            "error",
            type(error).__name__,
            f"Reconciliation failed: {message}",
            level=logging.ERROR,
            error_type=type(error).__name__,
        )
        if configuration:
            emit_configuration_invalid(request.body, message)
        else:
            emit_reconcile_failed(request.body, f"Reconciliation failed: {message}")

        def mutate(status: dict[str, Any]) -> None:
            # Transient failures keep the phase of the last successful step
            if permanent:
                status["phase"] = PHASE_FAILED
            status["message"] = message
            status["observedGeneration"] = request.generation
            conditions = status.get("conditions", [])
            if configuration:
                status["conditions"] = set_configuration_error_condition(conditions, message, request.generation)
            else:
                status["conditions"] = set_failed_condition(conditions, reason, message, request.generation)

        if ctx.cancelled:
            return
        try:
            # Fresh context: the failed pass may already be past its deadline
            self.store.update_status(request.id, mutate, ReconcileContext(timeout=self.timeout))
        except OperatorError as e:
            logger.warning(f"Failed to record error on {request.id}: {sanitize_exception(e)}")

    def _log(
        self,
        request: ResourceRequest,
        event: str,
        reason: str,
        message: str,
        level: int = logging.INFO,
        **kwargs: Any,
    ) -> None:
        log_resource_event(
            logger,
            controller=CONTROLLER_NAME,
            resource_kind=request.kind.crd_kind,
            resource_name=request.name,
            namespace=request.namespace,
            uid=request.uid,
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )
