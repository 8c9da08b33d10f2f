"""Handlers for Redis resources."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import API_GROUP_VERSION, KIND_REDIS
from ..models import ResourceKind
from .base import TIMER_INTERVAL, BaseHandler

# Global handler instance
_handler = BaseHandler(ResourceKind.CACHE)


@kopf.on.create(API_GROUP_VERSION, KIND_REDIS)
@kopf.on.update(API_GROUP_VERSION, KIND_REDIS)
@kopf.on.resume(API_GROUP_VERSION, KIND_REDIS)
def handle_redis(meta: dict[str, Any], memo: kopf.Memo, retry: int, **kwargs: Any) -> None:
    """Handle Redis resource reconciliation."""
    _handler.reconcile(meta, memo, retry)


@kopf.timer(API_GROUP_VERSION, KIND_REDIS, interval=TIMER_INTERVAL, initial_delay=TIMER_INTERVAL)
def reconfirm_redis(meta: dict[str, Any], memo: kopf.Memo, retry: int, **kwargs: Any) -> None:
    """Periodically re-confirm the external cache against the request."""
    _handler.reconcile(meta, memo, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_REDIS, optional=True)
def handle_redis_delete(meta: dict[str, Any], memo: kopf.Memo, retry: int, **kwargs: Any) -> None:
    """Handle Redis resource deletion."""
    _handler.delete(meta, memo, retry)
