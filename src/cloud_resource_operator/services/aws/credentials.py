"""Credential broker backed by the cloud credential operator.

Credentials are requested with a ``CredentialsRequest`` whose statement
entries carry exactly the actions needed for one purpose. The issuer writes
the resulting key pair into a Secret in the requesting namespace. Requests
are named deterministically, so repeated reconciliation reuses one grant.
"""

from __future__ import annotations

import logging
from typing import Any

from kubernetes import client

from ... import metrics
from ...constants import (
    CREDENTIALS_REQUEST_GROUP,
    CREDENTIALS_REQUEST_KIND,
    CREDENTIALS_REQUEST_PLURAL,
    CREDENTIALS_REQUEST_VERSION,
    FIELD_MANAGER,
    LABEL_MANAGED_BY,
)
from ...exceptions import CredentialsError, PollTimeoutError
from ...models import Credentials, ResourceKind, ResourceRequest
from ...utils.context import ReconcileContext
from ...utils.poll import poll_immediate
from ...utils.secrets import read_secret_data

logger = logging.getLogger(__name__)

ACCESS_KEY_ID_KEY = "aws_access_key_id"
SECRET_ACCESS_KEY_KEY = "aws_secret_access_key"

# Actions the providers need to create, list and delete their resources
PROVIDER_ACTIONS: dict[ResourceKind, list[str]] = {
    ResourceKind.CACHE: [
        "elasticache:CreateReplicationGroup",
        "elasticache:DescribeReplicationGroups",
        "elasticache:DeleteReplicationGroup",
    ],
    ResourceKind.BLOB_STORE: [
        "s3:CreateBucket",
        "s3:ListAllMyBuckets",
        "s3:ListBucket",
        "s3:ListBucketVersions",
        "s3:DeleteBucket",
        "s3:DeleteObject",
        "s3:DeleteObjectVersion",
        "s3:PutEncryptionConfiguration",
        "s3:PutBucketPublicAccessBlock",
        "s3:GetBucketVersioning",
        "s3:PutBucketVersioning",
        "s3:PutBucketTagging",
    ],
}

BUCKET_OWNER_ACTIONS = [
    "s3:ListBucket",
    "s3:GetObject",
    "s3:PutObject",
    "s3:DeleteObject",
]


def provider_credentials_name(kind: ResourceKind) -> str:
    return f"cloud-resources-aws-{kind.value}-provider"


def bucket_owner_credentials_name(request: ResourceRequest) -> str:
    return f"{request.name}-bucket-owner"


class CredentialManager:
    """Issues least-privilege AWS credentials scoped to a namespace."""

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        core_api: client.CoreV1Api,
        poll_interval: float = 5.0,
        poll_timeout: float = 300.0,
    ):
        self.custom_api = custom_api
        self.core_api = core_api
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout

    def reconcile_provider_credentials(
        self,
        ctx: ReconcileContext,
        namespace: str,
        kind: ResourceKind,
    ) -> Credentials:
        """Issue or reuse the credentials a provider uses for one resource kind.

        Raises:
            CredentialsError: If the credentials cannot be issued
        """
        entries = [{"effect": "Allow", "action": PROVIDER_ACTIONS[kind], "resource": "*"}]
        return self.reconcile_credentials(ctx, namespace, provider_credentials_name(kind), entries)

    def reconcile_bucket_owner_credentials(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        bucket_name: str,
    ) -> Credentials:
        """Issue or reuse end-user credentials scoped to one bucket."""
        entries = [
            {
                "effect": "Allow",
                "action": BUCKET_OWNER_ACTIONS,
                "resource": [f"arn:aws:s3:::{bucket_name}", f"arn:aws:s3:::{bucket_name}/*"],
            }
        ]
        return self.reconcile_credentials(
            ctx,
            request.namespace,
            bucket_owner_credentials_name(request),
            entries,
            owner_references=[request.owner_reference()],
        )

    def delete_bucket_owner_credentials(self, ctx: ReconcileContext, request: ResourceRequest) -> None:
        """Revoke the end-user credentials of a bucket; absent grants are ignored."""
        name = bucket_owner_credentials_name(request)
        ctx.check("delete credentials request")
        try:
            self.custom_api.delete_namespaced_custom_object(
                group=CREDENTIALS_REQUEST_GROUP,
                version=CREDENTIALS_REQUEST_VERSION,
                namespace=request.namespace,
                plural=CREDENTIALS_REQUEST_PLURAL,
                name=name,
            )
            logger.info(f"Deleted credentials request {request.namespace}/{name}")
        except client.exceptions.ApiException as e:
            if e.status != 404:
                raise CredentialsError(f"failed to delete credentials request {name}: {e.reason}") from e

    def reconcile_credentials(
        self,
        ctx: ReconcileContext,
        namespace: str,
        name: str,
        entries: list[dict[str, Any]],
        owner_references: list[dict[str, Any]] | None = None,
    ) -> Credentials:
        """Ensure a credentials request exists and wait for its secret.

        Args:
            ctx: Reconcile context
            namespace: Namespace the credentials are scoped to
            name: Name of the credentials request and of the resulting secret
            entries: IAM statement entries granted to the credentials
            owner_references: Optional owner references for the request

        Returns:
            The issued credentials

        Raises:
            CredentialsError: If the request cannot be reconciled or its secret
                does not appear before the poll ceiling
        """
        try:
            self._apply_credentials_request(ctx, namespace, name, entries, owner_references)
            credentials = poll_immediate(
                ctx,
                lambda: self._read_credentials(namespace, name),
                interval=self.poll_interval,
                timeout=self.poll_timeout,
                description=f"read credentials secret {namespace}/{name}",
                retry_on=(client.exceptions.ApiException,),
            )
        except PollTimeoutError as e:
            metrics.credentials_reconcile_total.labels(result="timeout").inc()
            raise CredentialsError(f"credentials {namespace}/{name} were not issued in time") from e
        except client.exceptions.ApiException as e:
            metrics.credentials_reconcile_total.labels(result="error").inc()
            raise CredentialsError(f"failed to reconcile credentials request {namespace}/{name}: {e.reason}") from e

        metrics.credentials_reconcile_total.labels(result="success").inc()
        return credentials

    def _desired_spec(self, namespace: str, name: str, entries: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "secretRef": {"name": name, "namespace": namespace},
            "providerSpec": {
                "apiVersion": f"{CREDENTIALS_REQUEST_GROUP}/{CREDENTIALS_REQUEST_VERSION}",
                "kind": "AWSProviderSpec",
                "statementEntries": entries,
            },
        }

    def _apply_credentials_request(
        self,
        ctx: ReconcileContext,
        namespace: str,
        name: str,
        entries: list[dict[str, Any]],
        owner_references: list[dict[str, Any]] | None,
    ) -> None:
        spec = self._desired_spec(namespace, name, entries)
        ctx.check("read credentials request")
        try:
            existing = self.custom_api.get_namespaced_custom_object(
                group=CREDENTIALS_REQUEST_GROUP,
                version=CREDENTIALS_REQUEST_VERSION,
                namespace=namespace,
                plural=CREDENTIALS_REQUEST_PLURAL,
                name=name,
            )
        except client.exceptions.ApiException as e:
            if e.status != 404:
                raise
            existing = None

        if existing is None:
            ctx.check("create credentials request")
            body = {
                "apiVersion": f"{CREDENTIALS_REQUEST_GROUP}/{CREDENTIALS_REQUEST_VERSION}",
                "kind": CREDENTIALS_REQUEST_KIND,
                "metadata": {
                    "name": name,
                    "namespace": namespace,
                    "labels": {LABEL_MANAGED_BY: FIELD_MANAGER},
                    "ownerReferences": owner_references or [],
                },
                "spec": spec,
            }
            self.custom_api.create_namespaced_custom_object(
                group=CREDENTIALS_REQUEST_GROUP,
                version=CREDENTIALS_REQUEST_VERSION,
                namespace=namespace,
                plural=CREDENTIALS_REQUEST_PLURAL,
                body=body,
            )
            logger.info(f"Created credentials request {namespace}/{name}")
            return

        if existing.get("spec") != spec:
            ctx.check("update credentials request")
            self.custom_api.patch_namespaced_custom_object(
                group=CREDENTIALS_REQUEST_GROUP,
                version=CREDENTIALS_REQUEST_VERSION,
                namespace=namespace,
                plural=CREDENTIALS_REQUEST_PLURAL,
                name=name,
                body={"spec": spec},
            )
            logger.info(f"Updated permissions of credentials request {namespace}/{name}")

    def _read_credentials(self, namespace: str, name: str) -> Credentials | None:
        data = read_secret_data(self.core_api, namespace, name)
        if not data:
            return None
        access_key_id = data.get(ACCESS_KEY_ID_KEY)
        secret_access_key = data.get(SECRET_ACCESS_KEY_KEY)
        if not access_key_id or not secret_access_key:
            return None
        return Credentials(access_key_id=access_key_id, secret_access_key=secret_access_key)
