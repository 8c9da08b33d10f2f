"""AWS ElastiCache Redis provider."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError, ParamValidationError

from ...builders.cache import create_replication_group_config
from ...exceptions import ExternalCallError, InvariantViolationError, MalformedStrategyError
from ...models import Pending, ProvisionedInstance, ResourceKind, ResourceRequest, StrategyConfig
from ...tracing import trace_span
from ...utils.context import ReconcileContext
from ...utils.naming import build_replication_group_id
from ..base import ProvisionResult
from .base import AWSProviderBase, error_code

logger = logging.getLogger(__name__)

STATUS_AVAILABLE = "available"
STATUS_CREATE_FAILED = "create-failed"
STATUS_DELETING = "deleting"

NOT_FOUND_CODES = {"ReplicationGroupNotFoundFault"}
INVALID_STATE_CODES = {"InvalidReplicationGroupState", "InvalidReplicationGroupStateFault"}


def replication_group_endpoint(group: dict[str, Any]) -> dict[str, Any] | None:
    """Connection endpoint of a replication group.

    Cluster mode groups expose a configuration endpoint, the others the primary
    endpoint of their single node group.
    """
    endpoint = group.get("ConfigurationEndpoint")
    if endpoint:
        return endpoint
    for node_group in group.get("NodeGroups") or []:
        if node_group.get("PrimaryEndpoint"):
            return node_group["PrimaryEndpoint"]
    return None


class AWSRedisProvider(AWSProviderBase):
    """Redis provider implementation for AWS ElastiCache."""

    resource_kind = ResourceKind.CACHE
    service_name = "elasticache"

    def create_or_discover(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        strategy: StrategyConfig,
    ) -> ProvisionResult:
        """Create the replication group of a request, or discover it."""
        group_id = build_replication_group_id(request.namespace, request.name)
        config = create_replication_group_config(strategy.raw_strategy, group_id)

        with trace_span("redis_create_or_discover", kind=self.resource_kind.value,
                        attributes={"replication_group.id": group_id}):
            cache_client = self._session(ctx, request.namespace, strategy.region)

            groups = self._poll_list(
                ctx, "list replication groups", lambda: self._list_replication_groups(cache_client)
            )

            found = next((g for g in groups if g.get("ReplicationGroupId") == group_id), None)
            if found is not None:
                return self._discovered(group_id, found)

            logger.info(f"Creating replication group {group_id} in region {strategy.region}")
            with self._api_call(ctx, "create"):
                try:
                    cache_client.create_replication_group(**config)
                except ParamValidationError as e:
                    raise MalformedStrategyError(
                        f"invalid redis strategy for tier {strategy.tier}: {e}"
                    ) from e
                except ClientError as e:
                    # Lost a race with a concurrent create or a stale list
                    if error_code(e) != "ReplicationGroupAlreadyExistsFault":
                        raise
                    logger.info(f"Replication group {group_id} already exists")

        return Pending(f"replication group {group_id} creation in progress")

    def delete(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        strategy: StrategyConfig,
    ) -> None:
        """Delete the replication group of a request if it exists."""
        group_id = build_replication_group_id(request.namespace, request.name)

        with trace_span("redis_delete", kind=self.resource_kind.value,
                        attributes={"replication_group.id": group_id}):
            cache_client = self._session(ctx, request.namespace, strategy.region)

            with self._api_call(ctx, "delete"):
                try:
                    response = cache_client.describe_replication_groups(ReplicationGroupId=group_id)
                except ClientError as e:
                    if error_code(e) in NOT_FOUND_CODES:
                        logger.info(f"Replication group {group_id} does not exist, nothing to delete")
                        return
                    raise

                groups = response.get("ReplicationGroups", [])
                if groups and groups[0].get("Status") == STATUS_DELETING:
                    logger.info(f"Replication group {group_id} is already being deleted")
                    return

                try:
                    cache_client.delete_replication_group(
                        ReplicationGroupId=group_id,
                        RetainPrimaryCluster=False,
                    )
                    logger.info(f"Deletion of replication group {group_id} started")
                except ClientError as e:
                    code = error_code(e)
                    if code in NOT_FOUND_CODES:
                        logger.info(f"Replication group {group_id} is already gone")
                        return
                    if code not in INVALID_STATE_CODES:
                        raise
                    # Rejected while creating, modifying or snapshotting
                    status = self._current_status(cache_client, group_id)
                    if status is None or status == STATUS_DELETING:
                        logger.info(f"Replication group {group_id} is already gone or being deleted")
                        return
                    raise ExternalCallError(
                        f"replication group {group_id} is {status} and cannot be deleted yet"
                    ) from e

    def _current_status(self, cache_client: Any, group_id: str) -> str | None:
        try:
            response = cache_client.describe_replication_groups(ReplicationGroupId=group_id)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return None
            raise
        groups = response.get("ReplicationGroups", [])
        return groups[0].get("Status") if groups else None

    def _list_replication_groups(self, cache_client: Any) -> list[dict[str, Any]]:
        groups: list[dict[str, Any]] = []
        paginator = cache_client.get_paginator("describe_replication_groups")
        for page in paginator.paginate():
            groups.extend(page.get("ReplicationGroups", []))
        return groups

    def _discovered(self, group_id: str, group: dict[str, Any]) -> ProvisionResult:
        status = group.get("Status")
        if status == STATUS_CREATE_FAILED:
            raise ExternalCallError(f"replication group {group_id} failed to create")
        if status != STATUS_AVAILABLE:
            logger.info(f"Replication group {group_id} found in status {status}, waiting")
            return Pending(f"replication group {group_id} is {status}")

        endpoint = replication_group_endpoint(group)
        if not endpoint or not endpoint.get("Address"):
            raise InvariantViolationError(f"replication group {group_id} is available but has no endpoint")

        return ProvisionedInstance(
            provider=self.get_name(),
            data={
                "uri": endpoint["Address"],
                "port": str(endpoint.get("Port", 6379)),
            },
        )
