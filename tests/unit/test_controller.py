"""Tests for the reconciliation controller."""

from __future__ import annotations

import json
import threading
from typing import Any
from unittest.mock import MagicMock, Mock

import pytest
from botocore.exceptions import ClientError
from kubernetes import client

from cloud_resource_operator.constants import FINALIZER, PHASE_COMPLETE, PHASE_FAILED, PHASE_IN_PROGRESS
from cloud_resource_operator.controller import KeyedLock, ReconcileController
from cloud_resource_operator.exceptions import (
    ExternalCallError,
    InvariantViolationError,
    StrategyNotFoundError,
    UnsupportedStrategyError,
)
from cloud_resource_operator.models import (
    Pending,
    ProvisionedInstance,
    RequestID,
    ResourceKind,
    StrategyConfig,
)
from cloud_resource_operator.registry import ProviderRegistry
from cloud_resource_operator.services.aws.redis import AWSRedisProvider
from cloud_resource_operator.store import RequestStore, SecretSink
from cloud_resource_operator.strategy import StrategyResolver
from cloud_resource_operator.utils.context import ReconcileContext
from cloud_resource_operator.utils.naming import build_replication_group_id

GROUP_ID = build_replication_group_id("apps", "example")

REQUEST_ID = RequestID(kind=ResourceKind.CACHE, namespace="apps", name="example")


class FakeCluster:
    """Custom objects API double keeping one request object."""

    def __init__(self, obj: dict[str, Any] | None):
        self.obj = obj
        self.api = Mock()
        self.api.get_namespaced_custom_object.side_effect = self._get
        self.api.patch_namespaced_custom_object.side_effect = self._patch
        self.api.replace_namespaced_custom_object_status.side_effect = self._replace_status

    def _get(self, **kwargs: Any) -> dict[str, Any]:
        if self.obj is None:
            raise client.exceptions.ApiException(status=404)
        return json.loads(json.dumps(self.obj))

    def _patch(self, **kwargs: Any) -> dict[str, Any]:
        self.obj["metadata"].update(kwargs["body"]["metadata"])
        return self.obj

    def _replace_status(self, **kwargs: Any) -> dict[str, Any]:
        self.obj["status"] = kwargs["body"]["status"]
        return self.obj


def _configmap_api(strategies: dict[str, Any] | None = None) -> Mock:
    core_api = Mock()
    configmap = Mock()
    configmap.data = {"redis": json.dumps(strategies if strategies is not None else {"default": {}})}
    core_api.read_namespaced_config_map.return_value = configmap
    return core_api


def _cache_client(groups: list[dict[str, Any]]) -> MagicMock:
    cache_client = MagicMock()
    cache_client.get_paginator.return_value.paginate.return_value = [{"ReplicationGroups": groups}]
    return cache_client


def _controller(cluster: FakeCluster, core_api: Mock, provider: Any) -> ReconcileController:
    registry = ProviderRegistry()
    registry.register(provider)
    return ReconcileController(
        store=RequestStore(cluster.api),
        secrets=SecretSink(core_api),
        resolver=StrategyResolver(core_api, configmap_name="cloud-resource-config", namespace="cro"),
        registry=registry,
    )


def _mock_provider(result: Any = None) -> Mock:
    provider = Mock()
    provider.resource_kind = ResourceKind.CACHE
    provider.strategies = ("aws",)
    provider.get_name.return_value = "aws"
    provider.supports_strategy.side_effect = lambda strategy: strategy == "aws"
    provider.create_or_discover.return_value = result
    return provider


class TestCacheScenario:
    """End-to-end passes of a cache request against API doubles."""

    def test_first_pass_creates_and_waits(self, credential_manager, request_object):
        """Test the first pass: finalizer added, create issued, pending, requeue in 30s."""
        cluster = FakeCluster(request_object)
        core_api = _configmap_api()
        cache_client = _cache_client([])
        provider = AWSRedisProvider(credential_manager, client_factory=Mock(return_value=cache_client))
        controller = _controller(cluster, core_api, provider)

        result = controller.reconcile(REQUEST_ID)

        assert result.requeue_after == 30
        assert result.pending
        assert result.error is None
        assert FINALIZER in cluster.obj["metadata"]["finalizers"]
        cache_client.create_replication_group.assert_called_once()
        core_api.create_namespaced_secret.assert_not_called()
        status = cluster.obj["status"]
        assert "provider" not in status
        assert "strategy" not in status
        assert "secretRef" not in status
        assert status["phase"] == PHASE_IN_PROGRESS

    def test_second_pass_discovers_and_materializes(self, credential_manager, finalized_request_object):
        """Test the second pass: cluster ready, secret written, status set, requeue in 30s."""
        cluster = FakeCluster(finalized_request_object)
        core_api = _configmap_api()
        cache_client = _cache_client([
            {
                "ReplicationGroupId": GROUP_ID,
                "Status": "available",
                "NodeGroups": [{"PrimaryEndpoint": {"Address": "cache.example", "Port": 6379}}],
            }
        ])
        provider = AWSRedisProvider(credential_manager, client_factory=Mock(return_value=cache_client))
        controller = _controller(cluster, core_api, provider)

        result = controller.reconcile(REQUEST_ID)

        assert result.requeue_after == 30
        assert not result.pending
        assert result.error is None
        cache_client.create_replication_group.assert_not_called()
        secret = core_api.create_namespaced_secret.call_args.kwargs["body"]
        assert secret.metadata.owner_references[0]["uid"] == "uid-1234"
        status = cluster.obj["status"]
        assert status["provider"] == "aws"
        assert status["strategy"] == "default"
        assert status["secretRef"] == {"name": "example-connection", "namespace": "apps"}
        assert status["phase"] == PHASE_COMPLETE
        assert status["conditions"][0]["status"] == "True"
        cluster.api.patch_namespaced_custom_object.assert_not_called()

    def test_tombstone_with_resource_already_gone(self, credential_manager, make_request):
        """Test deletion when the cluster was removed out-of-band."""
        cluster = FakeCluster(make_request(finalizers=[FINALIZER], deleting=True))
        core_api = _configmap_api()
        cache_client = _cache_client([])
        cache_client.describe_replication_groups.side_effect = ClientError(
            {"Error": {"Code": "ReplicationGroupNotFoundFault"}}, "DescribeReplicationGroups"
        )
        provider = AWSRedisProvider(credential_manager, client_factory=Mock(return_value=cache_client))
        controller = _controller(cluster, core_api, provider)

        result = controller.reconcile(REQUEST_ID)

        assert result.done
        cache_client.delete_replication_group.assert_not_called()
        cluster.api.patch_namespaced_custom_object.assert_called_once()
        assert FINALIZER not in (cluster.obj["metadata"]["finalizers"] or [])

        second = controller.reconcile(REQUEST_ID)

        assert second.done
        cluster.api.patch_namespaced_custom_object.assert_called_once()


class TestReconcileController:
    """Test cases for ReconcileController with a provider double."""

    def test_absent_request_is_done(self):
        """Test that a vanished request ends the pass without error."""
        cluster = FakeCluster(None)
        provider = _mock_provider()
        controller = _controller(cluster, _configmap_api(), provider)

        result = controller.reconcile(REQUEST_ID)

        assert result.done
        provider.create_or_discover.assert_not_called()

    def test_finalizer_set_before_create(self, request_object):
        """Test that no external mutation happens before the finalizer exists."""
        cluster = FakeCluster(request_object)
        provider = _mock_provider(Pending("creating"))
        order = Mock()
        order.attach_mock(cluster.api.patch_namespaced_custom_object, "patch")
        order.attach_mock(provider.create_or_discover, "create")
        controller = _controller(cluster, _configmap_api(), provider)

        controller.reconcile(REQUEST_ID)

        names = [c[0] for c in order.mock_calls]
        assert names.index("patch") < names.index("create")

    def test_unknown_tier_is_configuration_error(self, make_request):
        """Test that a missing tier is reported without retrying provisioning."""
        cluster = FakeCluster(make_request(tier="gold", status={"provider": "aws", "strategy": "gold"}))
        provider = _mock_provider()
        controller = _controller(cluster, _configmap_api(), provider)

        result = controller.reconcile(REQUEST_ID)

        assert isinstance(result.error, StrategyNotFoundError)
        assert result.requeue_after is None
        provider.create_or_discover.assert_not_called()
        status = cluster.obj["status"]
        assert status["phase"] == PHASE_FAILED
        assert status["conditions"][0]["reason"] == "ConfigurationError"
        assert status["provider"] == "aws"

    def test_unsupported_strategy(self, request_object):
        """Test that a strategy no provider serves is a configuration error."""
        cluster = FakeCluster(request_object)
        provider = _mock_provider()
        controller = _controller(cluster, _configmap_api({"default": {"strategy": "openshift"}}), provider)

        result = controller.reconcile(REQUEST_ID)

        assert isinstance(result.error, UnsupportedStrategyError)
        provider.create_or_discover.assert_not_called()

    @pytest.mark.parametrize("outcome", [None, ProvisionedInstance(provider="aws", data={})])
    def test_empty_result_is_invariant_violation(self, finalized_request_object, outcome):
        """Test that an empty provider result never materializes a secret."""
        cluster = FakeCluster(finalized_request_object)
        core_api = _configmap_api()
        controller = _controller(cluster, core_api, _mock_provider(outcome))

        result = controller.reconcile(REQUEST_ID)

        assert isinstance(result.error, InvariantViolationError)
        core_api.create_namespaced_secret.assert_not_called()

    def test_external_error_keeps_recorded_status(self, make_request):
        """Test that a transient failure does not destroy recorded status."""
        recorded = {"provider": "aws", "strategy": "default", "phase": PHASE_COMPLETE}
        cluster = FakeCluster(make_request(finalizers=[FINALIZER], status=dict(recorded)))
        provider = _mock_provider()
        provider.create_or_discover.side_effect = ExternalCallError("elasticache list failed")
        controller = _controller(cluster, _configmap_api(), provider)

        result = controller.reconcile(REQUEST_ID)

        assert isinstance(result.error, ExternalCallError)
        status = cluster.obj["status"]
        assert status["provider"] == "aws"
        assert status["strategy"] == "default"
        assert status["phase"] == PHASE_COMPLETE
        assert status["message"] == "elasticache list failed"
        assert status["conditions"][0]["reason"] == "ReconcileFailed"

    def test_status_write_failure_keeps_original_error(self, finalized_request_object):
        """Test that a failing error report does not mask the error."""
        cluster = FakeCluster(finalized_request_object)
        cluster.api.replace_namespaced_custom_object_status.side_effect = client.exceptions.ApiException(status=500)
        provider = _mock_provider()
        provider.create_or_discover.side_effect = ExternalCallError("boom")
        controller = _controller(cluster, _configmap_api(), provider)

        result = controller.reconcile(REQUEST_ID)

        assert str(result.error) == "boom"

    def test_deletion_failure_surfaces(self, make_request):
        """Test that a failed delete keeps the finalizer."""
        cluster = FakeCluster(make_request(finalizers=[FINALIZER], deleting=True))
        provider = _mock_provider()
        provider.delete.side_effect = ExternalCallError("delete failed")
        controller = _controller(cluster, _configmap_api(), provider)

        result = controller.reconcile(REQUEST_ID)

        assert isinstance(result.error, ExternalCallError)
        assert FINALIZER in cluster.obj["metadata"]["finalizers"]
        assert cluster.obj["status"]["conditions"][0]["reason"] == "DeletionFailed"

    def test_tombstone_without_finalizer_skips_delete(self, make_request):
        """Test that an already cleaned up request is not deleted again."""
        cluster = FakeCluster(make_request(finalizers=["other/finalizer"], deleting=True))
        provider = _mock_provider()
        controller = _controller(cluster, _configmap_api(), provider)

        result = controller.reconcile(REQUEST_ID)

        assert result.done
        provider.delete.assert_not_called()

    def test_cancelled_pass(self, finalized_request_object):
        """Test that a cancelled pass stops before the provider is called."""
        cluster = FakeCluster(finalized_request_object)
        provider = _mock_provider(Pending("creating"))
        controller = _controller(cluster, _configmap_api(), provider)
        ctx = ReconcileContext()
        ctx.cancel()

        result = controller.reconcile(REQUEST_ID, ctx)

        assert isinstance(result.error, ExternalCallError)
        provider.create_or_discover.assert_not_called()

    def test_provider_receives_resolved_strategy(self, finalized_request_object):
        """Test that the provider gets the strategy resolved for the tier."""
        cluster = FakeCluster(finalized_request_object)
        provider = _mock_provider(Pending("creating"))
        controller = _controller(
            cluster, _configmap_api({"default": {"region": "us-east-1", "createStrategy": {"EngineVersion": "7.0"}}}),
            provider,
        )

        controller.reconcile(REQUEST_ID)

        strategy = provider.create_or_discover.call_args.args[2]
        assert strategy == StrategyConfig(
            resource_kind=ResourceKind.CACHE,
            tier="default",
            deployment_strategy="aws",
            region="us-east-1",
            raw_strategy={"EngineVersion": "7.0"},
        )


class TestKeyedLock:
    """Test cases for KeyedLock."""

    def test_serializes_same_key(self):
        """Test that a key is held by one holder at a time."""
        locks = KeyedLock()
        entered = threading.Event()
        release = threading.Event()
        events: list[str] = []

        def first() -> None:
            with locks.hold("redis/apps/example"):
                events.append("first-in")
                entered.set()
                release.wait(5)
                events.append("first-out")

        def second() -> None:
            with locks.hold("redis/apps/example"):
                events.append("second-in")

        t1 = threading.Thread(target=first)
        t1.start()
        entered.wait(5)
        t2 = threading.Thread(target=second)
        t2.start()
        t2.join(0.1)
        assert "second-in" not in events
        release.set()
        t1.join(5)
        t2.join(5)

        assert events == ["first-in", "first-out", "second-in"]
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        """Test that different keys are independent."""
        locks = KeyedLock()
        with locks.hold("redis/apps/a"):
            with locks.hold("redis/apps/b"):
                assert len(locks) == 2
