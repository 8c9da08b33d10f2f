"""Builder for bucket configurations."""

from __future__ import annotations

from typing import Any

# Defaults applied to every field missing from the strategy payload
DEFAULT_BUCKET_CONFIG: dict[str, Any] = {
    "ACL": "private",
    "ServerSideEncryption": "AES256",
    "BlockPublicAccess": True,
    "Versioning": False,
    "Tags": {},
}


def create_bucket_config(raw_strategy: dict[str, Any], bucket_name: str, region: str) -> dict[str, Any]:
    """Create a bucket configuration dict from a strategy payload.

    Args:
        raw_strategy: Provider-specific payload from the strategy configuration
        bucket_name: Deterministic bucket name derived from the request
        region: Region resolved for the strategy

    Returns:
        Configuration dict for bucket operations
    """
    config = dict(DEFAULT_BUCKET_CONFIG)
    config.update({k: v for k, v in raw_strategy.items() if v is not None})
    config["Tags"] = dict(config.get("Tags") or {})
    config["BucketName"] = bucket_name
    config["Region"] = region
    return config
