"""Utilities for managing Kubernetes secrets."""

from __future__ import annotations

import base64
from typing import Any

from kubernetes import client

from ..constants import FIELD_MANAGER, LABEL_MANAGED_BY


def _encode(data: dict[str, str]) -> dict[str, str]:
    return {k: base64.b64encode(v.encode("utf-8")).decode("utf-8") for k, v in data.items()}


def _build_secret(
    namespace: str,
    secret_name: str,
    data: dict[str, str],
    owner_references: list[dict[str, Any]] | None = None,
    labels: dict[str, str] | None = None,
) -> client.V1Secret:
    return client.V1Secret(
        metadata=client.V1ObjectMeta(
            name=secret_name,
            namespace=namespace,
            owner_references=owner_references or [],
            labels={LABEL_MANAGED_BY: FIELD_MANAGER, **(labels or {})},
        ),
        type="Opaque",
        data=_encode(data),
    )


def create_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    data: dict[str, str],
    owner_references: list[dict[str, Any]] | None = None,
    labels: dict[str, str] | None = None,
) -> None:
    """Create a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace for the secret
        secret_name: Name of the secret
        data: Secret data (will be base64 encoded)
        owner_references: Owner references for the secret
        labels: Additional labels for the secret
    """
    api.create_namespaced_secret(
        namespace=namespace,
        body=_build_secret(namespace, secret_name, data, owner_references, labels),
        field_manager=FIELD_MANAGER,
    )


def replace_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    data: dict[str, str],
    owner_references: list[dict[str, Any]] | None = None,
    labels: dict[str, str] | None = None,
) -> None:
    """Replace the data, owner references and labels of a Kubernetes secret.

    Keys not present in ``data`` are removed.
    """
    api.replace_namespaced_secret(
        name=secret_name,
        namespace=namespace,
        body=_build_secret(namespace, secret_name, data, owner_references, labels),
        field_manager=FIELD_MANAGER,
    )


def apply_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    data: dict[str, str],
    owner_references: list[dict[str, Any]] | None = None,
    labels: dict[str, str] | None = None,
) -> None:
    """Create a Kubernetes secret, or replace it if it already exists."""
    try:
        create_secret(api, namespace, secret_name, data, owner_references, labels)
    except client.exceptions.ApiException as e:
        if e.status != 409:
            raise
        replace_secret(api, namespace, secret_name, data, owner_references, labels)


def read_secret_data(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
) -> dict[str, str] | None:
    """Read all data from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret

    Returns:
        Dictionary of secret data (decoded), or None if the secret does not exist
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            return None
        raise

    result = {}
    for key, value in (secret.data or {}).items():
        if isinstance(value, str):
            result[key] = base64.b64decode(value).decode("utf-8")
        else:
            result[key] = value.decode("utf-8")
    return result
