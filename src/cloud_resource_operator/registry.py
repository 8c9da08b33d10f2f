"""Static registry of providers keyed by resource kind and strategy."""

from __future__ import annotations

import logging

from .models import ResourceKind
from .services.base import Provider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Maps (resource kind, deployment strategy) to exactly one provider.

    Built once by the composition root. Two providers claiming the same
    strategy for the same kind are rejected at registration time.
    """

    def __init__(self) -> None:
        self._providers: dict[tuple[ResourceKind, str], Provider] = {}

    def register(self, provider: Provider) -> None:
        """Register a provider for every strategy it supports.

        Raises:
            ValueError: If another provider already serves one of the strategies
        """
        for strategy in provider.strategies:
            key = (provider.resource_kind, strategy)
            existing = self._providers.get(key)
            if existing is not None:
                raise ValueError(
                    f"provider {provider.get_name()} conflicts with provider {existing.get_name()} "
                    f"for strategy {strategy} of resource type {provider.resource_kind.value}"
                )
            self._providers[key] = provider
            logger.info(
                f"Registered provider {provider.get_name()} for strategy {strategy} "
                f"of resource type {provider.resource_kind.value}"
            )

    def select(self, kind: ResourceKind, strategy: str) -> Provider | None:
        """Return the provider serving a strategy, or None if there is none."""
        provider = self._providers.get((kind, strategy))
        if provider is not None and provider.supports_strategy(strategy):
            return provider
        return None
