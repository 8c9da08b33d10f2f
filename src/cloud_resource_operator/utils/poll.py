"""Bounded polling for eventually-consistent external APIs."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from ..exceptions import PollTimeoutError
from .context import ReconcileContext

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def poll_immediate(
    ctx: ReconcileContext,
    condition: Callable[[], _T | None],
    interval: float,
    timeout: float,
    description: str,
    retry_on: tuple[type[BaseException], ...] = (),
) -> _T:
    """Call ``condition`` until it returns a value, with an explicit ceiling.

    The first attempt is made immediately. ``None`` or one of the ``retry_on``
    exceptions means "not yet"; any other exception propagates.

    Args:
        ctx: Reconcile context, checked before every attempt
        condition: Callable returning the result, or None when not done
        interval: Seconds between attempts
        timeout: Ceiling in seconds after which polling gives up
        description: What is being waited for (used in errors and logs)
        retry_on: Exception types that count as "not yet"

    Returns:
        The first non-None value returned by ``condition``

    Raises:
        PollTimeoutError: If the ceiling is reached
        ReconcileCancelledError: If the pass is cancelled while polling
    """
    deadline = time.monotonic() + timeout
    last_error: BaseException | None = None
    attempt = 0
    while True:
        ctx.check(description)
        attempt += 1
        try:
            result = condition()
        except retry_on as e:
            last_error = e
            logger.debug(f"Attempt {attempt} to {description} failed: {e}")
        else:
            if result is not None:
                return result

        if time.monotonic() + interval > deadline:
            raise PollTimeoutError(f"timed out after {attempt} attempts waiting to {description}") from last_error
        ctx.sleep(interval)
