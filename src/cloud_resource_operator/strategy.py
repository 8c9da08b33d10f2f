"""Strategy resolution: (resource kind, tier) to provider configuration.

The configuration source is a ConfigMap in the operator namespace. Each data
key is a resource type, its value a JSON object mapping tier names to::

    {"strategy": "aws", "region": "eu-west-1", "createStrategy": {...}}

All fields are optional. ``createStrategy`` is opaque here and only
interpreted by the provider serving the strategy.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from kubernetes import client

from . import metrics
from .constants import DEFAULT_DEPLOYMENT_STRATEGY, DEFAULT_REGION
from .exceptions import ExternalCallError, MalformedStrategyError, StrategyNotFoundError
from .models import ResourceKind, StrategyConfig
from .utils.context import ReconcileContext

logger = logging.getLogger(__name__)


class StrategyResolver:
    """Resolves the strategy configuration for a resource kind and tier."""

    def __init__(self, api: client.CoreV1Api, configmap_name: str, namespace: str):
        self.api = api
        self.configmap_name = configmap_name
        self.namespace = namespace

    def resolve(self, kind: ResourceKind, tier: str, ctx: ReconcileContext | None = None) -> StrategyConfig:
        """Resolve the strategy configuration for a tier of a resource kind.

        Args:
            kind: Resource kind of the request
            tier: Tier name of the request
            ctx: Optional reconcile context checked before reading the source

        Returns:
            Resolved strategy configuration, region defaulted when unset

        Raises:
            StrategyNotFoundError: If the ConfigMap, kind or tier is absent
            MalformedStrategyError: If the payload cannot be parsed
            ExternalCallError: If the configuration source cannot be read
        """
        raw_tiers = self._read_kind(kind, ctx)
        try:
            tiers = json.loads(raw_tiers)
        except ValueError as e:
            raise MalformedStrategyError(
                f"strategy configuration for resource type {kind.value} is not valid JSON: {e}"
            ) from e
        if not isinstance(tiers, dict):
            raise MalformedStrategyError(
                f"strategy configuration for resource type {kind.value} must be a JSON object"
            )

        if tier not in tiers:
            raise StrategyNotFoundError(kind.value, tier)

        return self._parse_tier(kind, tier, tiers[tier])

    def _read_kind(self, kind: ResourceKind, ctx: ReconcileContext | None) -> str:
        if ctx is not None:
            ctx.check("read strategy configuration")

        start_time = time.time()
        try:
            configmap = self.api.read_namespaced_config_map(name=self.configmap_name, namespace=self.namespace)
            metrics.api_call_total.labels(api_type="k8s", operation="get_configmap", result="success").inc()
        except client.exceptions.ApiException as e:
            metrics.api_call_total.labels(api_type="k8s", operation="get_configmap", result="error").inc()
            if e.status == 404:
                raise StrategyNotFoundError(
                    kind.value,
                    detail=f"strategy ConfigMap {self.namespace}/{self.configmap_name} not found",
                ) from e
            raise ExternalCallError(
                f"failed to read strategy ConfigMap {self.namespace}/{self.configmap_name}: {e.reason}"
            ) from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation="get_configmap").observe(duration)

        data = configmap.data or {}
        if kind.value not in data:
            raise StrategyNotFoundError(kind.value)
        return data[kind.value]

    def _parse_tier(self, kind: ResourceKind, tier: str, entry: Any) -> StrategyConfig:
        if not isinstance(entry, dict):
            raise MalformedStrategyError(f"strategy for tier {tier} of {kind.value} must be a JSON object")

        strategy = entry.get("strategy") or DEFAULT_DEPLOYMENT_STRATEGY
        region = entry.get("region") or DEFAULT_REGION
        raw_strategy = entry.get("createStrategy") or {}

        if not isinstance(strategy, str):
            raise MalformedStrategyError(f"strategy name for tier {tier} of {kind.value} must be a string")
        if not isinstance(region, str):
            raise MalformedStrategyError(f"region for tier {tier} of {kind.value} must be a string")
        if isinstance(raw_strategy, str):
            # Payloads may be stored as an embedded JSON document
            try:
                raw_strategy = json.loads(raw_strategy)
            except ValueError as e:
                raise MalformedStrategyError(
                    f"createStrategy for tier {tier} of {kind.value} is not valid JSON: {e}"
                ) from e
        if not isinstance(raw_strategy, dict):
            raise MalformedStrategyError(f"createStrategy for tier {tier} of {kind.value} must be a JSON object")

        logger.debug(f"Resolved tier {tier} of {kind.value} to strategy {strategy} in region {region}")
        return StrategyConfig(
            resource_kind=kind,
            tier=tier,
            deployment_strategy=strategy,
            region=region,
            raw_strategy=raw_strategy,
        )
