"""Builder for ElastiCache replication group configurations."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Defaults applied to every field missing from the strategy payload
DEFAULT_REPLICATION_GROUP_CONFIG: dict[str, Any] = {
    "AutomaticFailoverEnabled": True,
    "CacheNodeType": "cache.t2.micro",
    "Engine": "redis",
    "EngineVersion": "2.8.24",
    "NumCacheClusters": 3,
    "ReplicationGroupDescription": "A Redis replication group.",
    "SnapshotRetentionLimit": 30,
}


def create_replication_group_config(raw_strategy: dict[str, Any], replication_group_id: str) -> dict[str, Any]:
    """Create CreateReplicationGroup parameters from a strategy payload.

    Args:
        raw_strategy: Provider-specific payload from the strategy configuration
        replication_group_id: Deterministic id derived from the request

    Returns:
        Keyword arguments for ``elasticache.create_replication_group``
    """
    config = dict(DEFAULT_REPLICATION_GROUP_CONFIG)
    config.update({k: v for k, v in raw_strategy.items() if v is not None})

    configured_id = config.get("ReplicationGroupId")
    if configured_id and configured_id != replication_group_id:
        logger.warning(
            f"Ignoring ReplicationGroupId {configured_id} from strategy, using derived id {replication_group_id}"
        )
    config["ReplicationGroupId"] = replication_group_id

    return config
