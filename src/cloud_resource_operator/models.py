"""Data model shared by the controller, the strategy resolver and the providers."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import (
    API_GROUP_VERSION,
    DEFAULT_TIER,
    FINALIZER,
    KIND_BLOB_STORAGE,
    KIND_REDIS,
    PLURAL_BLOB_STORAGE,
    PLURAL_REDIS,
    RESOURCE_TYPE_BLOB_STORAGE,
    RESOURCE_TYPE_REDIS,
)


class ResourceKind(str, Enum):
    """Kind of external resource a request asks for."""

    CACHE = RESOURCE_TYPE_REDIS
    BLOB_STORE = RESOURCE_TYPE_BLOB_STORAGE

    @property
    def crd_kind(self) -> str:
        return KIND_REDIS if self is ResourceKind.CACHE else KIND_BLOB_STORAGE

    @property
    def plural(self) -> str:
        return PLURAL_REDIS if self is ResourceKind.CACHE else PLURAL_BLOB_STORAGE


@dataclass(frozen=True)
class RequestID:
    """Stable identifier of a resource request."""

    kind: ResourceKind
    namespace: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.kind.value}/{self.namespace}/{self.name}"

    def __str__(self) -> str:
        return self.key


@dataclass
class ResourceStatus:
    """Observed state recorded on a resource request."""

    provider: str | None = None
    strategy: str | None = None
    secret_ref: dict[str, str] | None = None
    phase: str | None = None
    message: str | None = None
    conditions: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, status: dict[str, Any] | None) -> ResourceStatus:
        status = status or {}
        return cls(
            provider=status.get("provider"),
            strategy=status.get("strategy"),
            secret_ref=status.get("secretRef"),
            phase=status.get("phase"),
            message=status.get("message"),
            conditions=list(status.get("conditions") or []),
        )


@dataclass
class ResourceRequest:
    """Desired state for one external resource, loaded from the request source."""

    id: RequestID
    uid: str
    tier: str
    secret_name: str
    deletion_requested: bool
    finalizer_present: bool
    generation: int = 0
    status: ResourceStatus = field(default_factory=ResourceStatus)
    body: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def namespace(self) -> str:
        return self.id.namespace

    @property
    def name(self) -> str:
        return self.id.name

    @property
    def kind(self) -> ResourceKind:
        return self.id.kind

    @property
    def meta(self) -> dict[str, Any]:
        return self.body.get("metadata", {})

    @classmethod
    def from_object(cls, kind: ResourceKind, obj: dict[str, Any]) -> ResourceRequest:
        """Build a request from a custom object as returned by the Kubernetes API."""
        meta = obj.get("metadata", {})
        spec = obj.get("spec") or {}
        name = meta["name"]
        secret_ref = spec.get("secretRef") or {}
        return cls(
            id=RequestID(kind=kind, namespace=meta.get("namespace", "default"), name=name),
            uid=meta.get("uid", ""),
            tier=spec.get("tier") or DEFAULT_TIER,
            secret_name=secret_ref.get("name") or f"{name}-connection",
            deletion_requested=meta.get("deletionTimestamp") is not None,
            finalizer_present=FINALIZER in (meta.get("finalizers") or []),
            generation=meta.get("generation", 0),
            status=ResourceStatus.from_dict(obj.get("status")),
            body=copy.deepcopy(obj),
        )

    def owner_reference(self) -> dict[str, Any]:
        """Owner reference linking a derived artifact to this request."""
        return {
            "apiVersion": self.body.get("apiVersion", API_GROUP_VERSION),
            "kind": self.kind.crd_kind,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }


@dataclass(frozen=True)
class StrategyConfig:
    """Resolved provider configuration for one (kind, tier) pair."""

    resource_kind: ResourceKind
    tier: str
    deployment_strategy: str
    region: str
    raw_strategy: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Credentials:
    """Short-lived access key pair for the external provider API."""

    access_key_id: str
    secret_access_key: str = field(repr=False)


@dataclass(frozen=True)
class ProvisionedInstance:
    """Connection details of a provisioned external resource."""

    provider: str
    data: dict[str, str]


@dataclass(frozen=True)
class Pending:
    """The external resource is not ready yet; try again later."""

    reason: str


@dataclass(frozen=True)
class ReconcileResult:
    """Scheduling decision of a reconciliation pass.

    ``pending`` marks a requeue while the external resource is still being
    provisioned, as opposed to the periodic re-confirmation of a ready one.
    """

    requeue_after: float | None = None
    error: Exception | None = None
    pending: bool = False

    @property
    def done(self) -> bool:
        return self.requeue_after is None and self.error is None

    @classmethod
    def finished(cls) -> ReconcileResult:
        return cls()

    @classmethod
    def requeue(cls, after: float) -> ReconcileResult:
        return cls(requeue_after=after)

    @classmethod
    def wait(cls, after: float) -> ReconcileResult:
        return cls(requeue_after=after, pending=True)

    @classmethod
    def failed(cls, error: Exception) -> ReconcileResult:
        return cls(error=error)
