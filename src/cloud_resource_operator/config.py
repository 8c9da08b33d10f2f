"""Operator configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class OperatorConfig:
    """Runtime settings for the operator.

    Environment Variables:
        OPERATOR_NAMESPACE: Namespace holding the strategy ConfigMap
        STRATEGY_CONFIGMAP_NAME: Name of the strategy ConfigMap
        REQUEUE_INTERVAL_SECONDS: Delay before re-confirming a resource (default: 30)
        RECONCILE_TIMEOUT_SECONDS: Deadline for a single reconciliation pass
        POLL_INTERVAL_SECONDS: Interval of bounded polls against external APIs
        POLL_TIMEOUT_SECONDS: Ceiling of bounded polls against external APIs
        RETRY_MIN_DELAY_SECONDS: First backoff delay after a failed pass
        RETRY_MAX_DELAY_SECONDS: Maximum backoff delay after repeated failures
        METRICS_PORT: Port of the metrics and health check server
    """

    operator_namespace: str = "cloud-resource-operator"
    strategy_configmap: str = "cloud-resource-config"
    requeue_interval: float = 30.0
    reconcile_timeout: float = 600.0
    poll_interval: float = 5.0
    poll_timeout: float = 300.0
    retry_min_delay: float = 1.0
    retry_max_delay: float = 60.0
    metrics_port: int = 8080

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> OperatorConfig:
        """Build configuration from environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            operator_namespace=env.get("OPERATOR_NAMESPACE", defaults.operator_namespace),
            strategy_configmap=env.get("STRATEGY_CONFIGMAP_NAME", defaults.strategy_configmap),
            requeue_interval=float(env.get("REQUEUE_INTERVAL_SECONDS", defaults.requeue_interval)),
            reconcile_timeout=float(env.get("RECONCILE_TIMEOUT_SECONDS", defaults.reconcile_timeout)),
            poll_interval=float(env.get("POLL_INTERVAL_SECONDS", defaults.poll_interval)),
            poll_timeout=float(env.get("POLL_TIMEOUT_SECONDS", defaults.poll_timeout)),
            retry_min_delay=float(env.get("RETRY_MIN_DELAY_SECONDS", defaults.retry_min_delay)),
            retry_max_delay=float(env.get("RETRY_MAX_DELAY_SECONDS", defaults.retry_max_delay)),
            metrics_port=int(env.get("METRICS_PORT", defaults.metrics_port)),
        )

    def retry_delay(self, retry: int) -> float:
        """Exponential backoff delay for the given retry count."""
        return min(self.retry_min_delay * (2 ** max(retry, 0)), self.retry_max_delay)
