"""Main entry point for the Cloud Resource Operator.

Builds the controller and its collaborators once at startup and hands them to
the kopf handlers through the operator memo.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import kopf
from kubernetes import client, config

from . import health
from . import logging as structured_logging
from .config import OperatorConfig
from .controller import ReconcileController
from .registry import ProviderRegistry
from .services.aws.blobstorage import AWSBlobStorageProvider
from .services.aws.credentials import CredentialManager
from .services.aws.redis import AWSRedisProvider
from .store import RequestStore, SecretSink
from .strategy import StrategyResolver
from .tracing import initialize_tracing

# Register the kopf handlers of every resource kind
from . import handlers  # noqa: F401

logger = logging.getLogger(__name__)


def load_kubernetes_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def build_registry(credential_manager: CredentialManager, operator_config: OperatorConfig) -> ProviderRegistry:
    """Register every provider known to the operator."""
    registry = ProviderRegistry()
    for provider_cls in (AWSRedisProvider, AWSBlobStorageProvider):
        registry.register(
            provider_cls(
                credential_manager,
                poll_interval=operator_config.poll_interval,
                poll_timeout=operator_config.poll_timeout,
            )
        )
    return registry


def build_controller(
    operator_config: OperatorConfig,
    custom_api: client.CustomObjectsApi | None = None,
    core_api: client.CoreV1Api | None = None,
) -> ReconcileController:
    """Wire the controller to the Kubernetes APIs and the providers.

    Args:
        operator_config: Operator configuration
        custom_api: Custom objects API, created from the loaded config when omitted
        core_api: Core API, created from the loaded config when omitted

    Returns:
        Ready to use controller
    """
    custom_api = custom_api or client.CustomObjectsApi()
    core_api = core_api or client.CoreV1Api()

    credential_manager = CredentialManager(
        custom_api,
        core_api,
        poll_interval=operator_config.poll_interval,
        poll_timeout=operator_config.poll_timeout,
    )
    resolver = StrategyResolver(
        core_api,
        configmap_name=operator_config.strategy_configmap,
        namespace=operator_config.operator_namespace,
    )
    return ReconcileController(
        store=RequestStore(custom_api),
        secrets=SecretSink(core_api),
        resolver=resolver,
        registry=build_registry(credential_manager, operator_config),
        requeue_after=operator_config.requeue_interval,
        timeout=operator_config.reconcile_timeout,
    )


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    """Configure the operator."""
    # Set up structured JSON logging
    structured_logging.setup_structured_logging()
    initialize_tracing()

    operator_config = OperatorConfig.from_env()

    # Progress in annotations keeps the status subresource owned by the controller
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()

    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = 4

    load_kubernetes_config()
    memo.config = operator_config
    memo.shutdown = threading.Event()
    memo.controller = build_controller(operator_config)

    # Metrics and health checks on one port
    memo.health_server = health.start_health_server(
        operator_config.metrics_port,
        ready_check=lambda: memo.get("controller") is not None and not memo.shutdown.is_set(),
    )
    logger.info(
        f"Operator started, strategies from ConfigMap "
        f"{operator_config.operator_namespace}/{operator_config.strategy_configmap}"
    )


@kopf.on.cleanup()
def shutdown(memo: kopf.Memo, **_: Any) -> None:
    """Cancel in-flight passes and stop the health server."""
    if memo.get("shutdown") is not None:
        memo.shutdown.set()
    if memo.get("health_server") is not None:
        memo.health_server.shutdown()
    logger.info("Operator stopped")
