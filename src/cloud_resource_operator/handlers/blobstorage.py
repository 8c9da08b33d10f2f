"""Handlers for BlobStorage resources."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import API_GROUP_VERSION, KIND_BLOB_STORAGE
from ..models import ResourceKind
from .base import TIMER_INTERVAL, BaseHandler

# Global handler instance
_handler = BaseHandler(ResourceKind.BLOB_STORE)


@kopf.on.create(API_GROUP_VERSION, KIND_BLOB_STORAGE)
@kopf.on.update(API_GROUP_VERSION, KIND_BLOB_STORAGE)
@kopf.on.resume(API_GROUP_VERSION, KIND_BLOB_STORAGE)
def handle_blob_storage(meta: dict[str, Any], memo: kopf.Memo, retry: int, **kwargs: Any) -> None:
    """Handle BlobStorage resource reconciliation."""
    _handler.reconcile(meta, memo, retry)


@kopf.timer(API_GROUP_VERSION, KIND_BLOB_STORAGE, interval=TIMER_INTERVAL, initial_delay=TIMER_INTERVAL)
def reconfirm_blob_storage(meta: dict[str, Any], memo: kopf.Memo, retry: int, **kwargs: Any) -> None:
    """Periodically re-confirm the external bucket against the request."""
    _handler.reconcile(meta, memo, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_BLOB_STORAGE, optional=True)
def handle_blob_storage_delete(meta: dict[str, Any], memo: kopf.Memo, retry: int, **kwargs: Any) -> None:
    """Handle BlobStorage resource deletion."""
    _handler.delete(meta, memo, retry)
