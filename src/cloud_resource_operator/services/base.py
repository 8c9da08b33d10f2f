"""Provider interface driven by the reconciliation controller."""

from __future__ import annotations

from typing import Protocol, Union

from ..models import (
    Pending,
    ProvisionedInstance,
    ResourceKind,
    ResourceRequest,
    StrategyConfig,
)
from ..utils.context import ReconcileContext

ProvisionResult = Union[ProvisionedInstance, Pending]


class Provider(Protocol):
    """Protocol defining the operations of a resource provider.

    One implementation exists per resource kind and deployment backend.
    """

    resource_kind: ResourceKind
    strategies: tuple[str, ...]

    def get_name(self) -> str:
        """Stable provider name used for status reporting."""
        ...

    def supports_strategy(self, strategy: str) -> bool:
        """Whether this provider serves the given deployment strategy."""
        ...

    def create_or_discover(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        strategy: StrategyConfig,
    ) -> ProvisionResult:
        """Create the external resource, or discover it if it already exists.

        Calling this twice for the same request with no external change in
        between must not create a second resource.

        Returns:
            The provisioned instance once it is ready, otherwise Pending

        Raises:
            OperatorError: If the external API or configuration fails
        """
        ...

    def delete(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        strategy: StrategyConfig,
    ) -> None:
        """Tear down the external resource.

        Deleting a resource that is already gone, or was never created,
        succeeds.
        """
        ...
