"""Per-pass reconcile context and correlation ID propagation."""

from __future__ import annotations

import contextvars
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from ..exceptions import ReconcileCancelledError

# Context variable for storing correlation ID
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


class ReconcileContext:
    """Deadline and cancellation signal for one reconciliation pass.

    Every external-call boundary calls :meth:`check`, so a cancelled or expired
    pass aborts before issuing the next call instead of hanging. A pass is
    cancelled through its own event or through the operator-wide ``shutdown``
    event, which the context only reads.
    """

    # Upper bound of a single wait while watching the shutdown event
    WAKE_INTERVAL = 0.5

    def __init__(self, timeout: float | None = None, shutdown: threading.Event | None = None):
        self.deadline = None if timeout is None else time.monotonic() + timeout
        self._cancelled = threading.Event()
        self._shutdown = shutdown

    def cancel(self) -> None:
        """Signal cancellation to this pass only."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set() or (self._shutdown is not None and self._shutdown.is_set())

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without deadline."""
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def check(self, operation: str) -> None:
        """Raise if the pass was cancelled or ran out of time.

        Args:
            operation: Name of the external call about to be issued

        Raises:
            ReconcileCancelledError: If cancelled or past the deadline
        """
        if self.cancelled:
            raise ReconcileCancelledError(f"reconciliation cancelled before {operation}")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise ReconcileCancelledError(f"reconciliation deadline exceeded before {operation}")

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on cancellation or deadline."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if self._shutdown is None:
            if seconds > 0:
                self._cancelled.wait(seconds)
            return

        wake_at = time.monotonic() + seconds
        while not self.cancelled:
            left = wake_at - time.monotonic()
            if left <= 0:
                return
            self._cancelled.wait(min(left, self.WAKE_INTERVAL))


def get_correlation_id() -> str | None:
    """Get the correlation ID from the current context."""
    return correlation_id.get()


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:16]


@contextmanager
def with_correlation_id(corr_id: str) -> Iterator[str]:
    """Context manager to set a correlation ID for the duration of a block.

    Args:
        corr_id: Correlation ID to use

    Yields:
        The correlation ID
    """
    token = correlation_id.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id.reset(token)


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get a dictionary of context values.

    Args:
        additional: Additional key-value pairs to include

    Returns:
        Dictionary with context values including correlation_id
    """
    ctx = {}

    corr_id = get_correlation_id()
    if corr_id:
        ctx["correlation_id"] = corr_id

    if additional:
        ctx.update(additional)

    return ctx
