"""Kubernetes-backed request source and secret sink."""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Callable

from kubernetes import client

from . import metrics
from .constants import API_GROUP, API_VERSION, FINALIZER, FIELD_MANAGER, LABEL_REQUEST_NAME, LABEL_RESOURCE_TYPE
from .exceptions import ExternalCallError
from .models import RequestID, ResourceRequest
from .utils.context import ReconcileContext
from .utils.secrets import apply_secret

logger = logging.getLogger(__name__)

StatusMutation = Callable[[dict[str, Any]], None]

STATUS_CONFLICT_RETRIES = 3


class RequestStore:
    """Reads resource requests and writes their finalizers and status."""

    def __init__(self, api: client.CustomObjectsApi, conflict_retries: int = STATUS_CONFLICT_RETRIES):
        self.api = api
        self.conflict_retries = conflict_retries

    def get(self, request_id: RequestID, ctx: ReconcileContext | None = None) -> ResourceRequest | None:
        """Load a request, or None if it no longer exists.

        Raises:
            ExternalCallError: If the request cannot be read
        """
        obj = self._read(request_id, ctx)
        if obj is None:
            return None
        return ResourceRequest.from_object(request_id.kind, obj)

    def add_finalizer(self, request: ResourceRequest, ctx: ReconcileContext | None = None) -> None:
        """Add the operator finalizer to a request."""

        def change(finalizers: list[str]) -> list[str] | None:
            if FINALIZER in finalizers:
                return None
            return finalizers + [FINALIZER]

        if self._update_finalizers(request, change, ctx):
            logger.info(f"Added finalizer to {request.id}")
        request.finalizer_present = True

    def remove_finalizer(self, request: ResourceRequest, ctx: ReconcileContext | None = None) -> None:
        """Remove the operator finalizer from a request, keeping foreign ones."""

        def change(finalizers: list[str]) -> list[str] | None:
            if FINALIZER not in finalizers:
                return None
            return [f for f in finalizers if f != FINALIZER]

        if self._update_finalizers(request, change, ctx):
            logger.info(f"Removed finalizer from {request.id}")
        request.finalizer_present = False

    def update_status(
        self,
        request_id: RequestID,
        mutate: StatusMutation,
        ctx: ReconcileContext | None = None,
    ) -> dict[str, Any] | None:
        """Read-modify-write the status of a request.

        The object is re-read right before each write and its whole status is
        replaced. A write conflict triggers a fresh read and another attempt.

        Args:
            request_id: Identifier of the request
            mutate: Callback changing the status dict in place
            ctx: Optional reconcile context

        Returns:
            The written status, or None if the request no longer exists

        Raises:
            ExternalCallError: If the status cannot be written
        """
        for attempt in range(self.conflict_retries + 1):
            obj = self._read(request_id, ctx)
            if obj is None:
                return None

            status = copy.deepcopy(obj.get("status") or {})
            mutate(status)
            obj["status"] = status

            if ctx is not None:
                ctx.check("replace status")
            start_time = time.time()
            try:
                self.api.replace_namespaced_custom_object_status(
                    group=API_GROUP,
                    version=API_VERSION,
                    namespace=request_id.namespace,
                    plural=request_id.kind.plural,
                    name=request_id.name,
                    body=obj,
                )
                metrics.api_call_total.labels(api_type="k8s", operation="replace_status", result="success").inc()
                return status
            except client.exceptions.ApiException as e:
                metrics.api_call_total.labels(api_type="k8s", operation="replace_status", result="error").inc()
                if e.status == 404:
                    return None
                if e.status == 409 and attempt < self.conflict_retries:
                    logger.debug(f"Status of {request_id} changed concurrently, retrying")
                    continue
                raise ExternalCallError(f"failed to update status of {request_id}: {e.reason}") from e
            finally:
                metrics.api_call_duration_seconds.labels(api_type="k8s", operation="replace_status").observe(
                    time.time() - start_time
                )
        return None

    def _read(self, request_id: RequestID, ctx: ReconcileContext | None) -> dict[str, Any] | None:
        if ctx is not None:
            ctx.check("read request")
        try:
            obj = self.api.get_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=request_id.namespace,
                plural=request_id.kind.plural,
                name=request_id.name,
            )
            metrics.api_call_total.labels(api_type="k8s", operation="get_request", result="success").inc()
            return obj
        except client.exceptions.ApiException as e:
            if e.status == 404:
                metrics.api_call_total.labels(api_type="k8s", operation="get_request", result="not_found").inc()
                return None
            metrics.api_call_total.labels(api_type="k8s", operation="get_request", result="error").inc()
            raise ExternalCallError(f"failed to read {request_id}: {e.reason}") from e

    def _update_finalizers(
        self,
        request: ResourceRequest,
        change: Callable[[list[str]], list[str] | None],
        ctx: ReconcileContext | None,
    ) -> bool:
        """Patch the finalizer list guarded by the request's resourceVersion.

        A conflict means the object changed since it was read: the metadata is
        re-read and ``change`` applied to the current finalizers again.
        ``change`` returns None when no update is needed.

        Returns:
            Whether the finalizers were changed
        """
        for attempt in range(self.conflict_retries + 1):
            finalizers = change(list(request.meta.get("finalizers") or []))
            if finalizers is None:
                return False
            metadata: dict[str, Any] = {"finalizers": finalizers or None}
            if request.meta.get("resourceVersion"):
                metadata["resourceVersion"] = request.meta["resourceVersion"]

            if ctx is not None:
                ctx.check("patch request metadata")
            try:
                response = self.api.patch_namespaced_custom_object(
                    group=API_GROUP,
                    version=API_VERSION,
                    namespace=request.namespace,
                    plural=request.kind.plural,
                    name=request.name,
                    body={"metadata": metadata},
                )
                metrics.api_call_total.labels(api_type="k8s", operation="patch_metadata", result="success").inc()
            except client.exceptions.ApiException as e:
                metrics.api_call_total.labels(api_type="k8s", operation="patch_metadata", result="error").inc()
                if e.status == 409 and attempt < self.conflict_retries:
                    logger.debug(f"Metadata of {request.id} changed concurrently, retrying")
                    obj = self._read(request.id, ctx)
                    if obj is None:
                        raise ExternalCallError(f"{request.id} disappeared while updating finalizers") from e
                    request.meta.clear()
                    request.meta.update(obj.get("metadata") or {})
                    continue
                raise ExternalCallError(f"failed to update metadata of {request.id}: {e.reason}") from e

            request.meta["finalizers"] = finalizers
            if isinstance(response, dict):
                request.meta.update(response.get("metadata") or {})
            return True
        raise ExternalCallError(f"failed to update finalizers of {request.id}: too many conflicts")


class SecretSink:
    """Materializes connection details into a secret owned by the request."""

    def __init__(self, api: client.CoreV1Api):
        self.api = api

    def materialize(
        self,
        request: ResourceRequest,
        data: dict[str, str],
        ctx: ReconcileContext | None = None,
    ) -> dict[str, str]:
        """Create or replace the connection secret of a request.

        Returns:
            Secret reference with ``name`` and ``namespace``

        Raises:
            ExternalCallError: If the secret cannot be written
        """
        if ctx is not None:
            ctx.check("write connection secret")
        labels = {
            LABEL_RESOURCE_TYPE: request.kind.value,
            LABEL_REQUEST_NAME: request.name,
        }
        try:
            apply_secret(
                self.api,
                request.namespace,
                request.secret_name,
                data,
                owner_references=[request.owner_reference()],
                labels=labels,
            )
            metrics.api_call_total.labels(api_type="k8s", operation="apply_secret", result="success").inc()
        except client.exceptions.ApiException as e:
            metrics.api_call_total.labels(api_type="k8s", operation="apply_secret", result="error").inc()
            raise ExternalCallError(
                f"failed to write secret {request.namespace}/{request.secret_name}: {e.reason}"
            ) from e
        logger.debug(f"Wrote connection secret {request.namespace}/{request.secret_name} with keys {sorted(data)}")
        return {"name": request.secret_name, "namespace": request.namespace}
