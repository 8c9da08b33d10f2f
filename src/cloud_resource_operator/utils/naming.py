"""Deterministic external identities derived from request identifiers."""

from __future__ import annotations

import hashlib
import re

# ElastiCache replication group ids: 1-40 chars, lowercase letters, digits and
# hyphens, starting with a letter, no consecutive or trailing hyphens.
REPLICATION_GROUP_ID_MAX_LENGTH = 40
# S3 bucket names: 3-63 chars, lowercase letters, digits and hyphens.
BUCKET_NAME_MAX_LENGTH = 63

_DIGEST_LENGTH = 8


def _normalize(value: str) -> str:
    value = re.sub(r"[^a-z0-9-]", "-", value.lower())
    value = re.sub(r"-{2,}", "-", value)
    return value.strip("-")


def _digest(namespace: str, name: str) -> str:
    return hashlib.sha256(f"{namespace}/{name}".encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]


def _with_digest(base: str, namespace: str, name: str, max_length: int) -> str:
    """Truncate a readable base and suffix the digest of the raw identifier.

    The joined ``namespace-name`` form is ambiguous once normalized, so the
    digest is always appended.
    """
    digest = _digest(namespace, name)
    prefix = base[: max_length - _DIGEST_LENGTH - 1].rstrip("-")
    return f"{prefix}-{digest}" if prefix else digest


def build_replication_group_id(namespace: str, name: str) -> str:
    """Derive the ElastiCache replication group id for a request.

    Args:
        namespace: Namespace of the request
        name: Name of the request

    Returns:
        A valid replication group id that depends only on namespace and name
    """
    base = _normalize(f"{namespace}-{name}")
    if not base or not base[0].isalpha():
        base = f"r-{base}"
    return _with_digest(base, namespace, name, REPLICATION_GROUP_ID_MAX_LENGTH)


def build_bucket_name(namespace: str, name: str) -> str:
    """Derive the S3 bucket name for a request."""
    return _with_digest(_normalize(f"{namespace}-{name}"), namespace, name, BUCKET_NAME_MAX_LENGTH)
