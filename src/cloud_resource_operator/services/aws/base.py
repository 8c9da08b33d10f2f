"""Shared plumbing for AWS-backed providers."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ... import metrics
from ...constants import AWS_DEPLOYMENT_STRATEGY
from ...exceptions import ExternalCallError
from ...models import Credentials, ResourceKind
from ...utils.context import ReconcileContext
from ...utils.poll import poll_immediate

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str, Credentials], Any]


def create_boto3_client(service: str, region: str, credentials: Credentials) -> Any:
    """Create a boto3 client for one provider session.

    Args:
        service: AWS service name (e.g. "elasticache", "s3")
        region: AWS region
        credentials: Credentials issued for the provider

    Returns:
        boto3 client
    """
    config = Config(
        region_name=region,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    return boto3.client(
        service,
        region_name=region,
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        config=config,
    )


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class AWSProviderBase:
    """Common behaviour of the AWS providers."""

    resource_kind: ResourceKind
    strategies: tuple[str, ...] = (AWS_DEPLOYMENT_STRATEGY,)
    service_name: str = ""

    def __init__(
        self,
        credential_manager: Any,
        client_factory: ClientFactory = create_boto3_client,
        poll_interval: float = 5.0,
        poll_timeout: float = 300.0,
    ):
        """Initialize AWS provider.

        Args:
            credential_manager: Broker issuing provider credentials
            client_factory: Factory creating service clients from credentials
            poll_interval: Interval of the bounded list poll in seconds
            poll_timeout: Ceiling of the bounded list poll in seconds
        """
        self.credential_manager = credential_manager
        self.client_factory = client_factory
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout

    def get_name(self) -> str:
        return AWS_DEPLOYMENT_STRATEGY

    def supports_strategy(self, strategy: str) -> bool:
        return strategy in self.strategies

    def _session(self, ctx: ReconcileContext, namespace: str, region: str) -> Any:
        """Issue provider credentials and build a service client for this pass."""
        credentials = self.credential_manager.reconcile_provider_credentials(ctx, namespace, self.resource_kind)
        return self.client_factory(self.service_name, region, credentials)

    def _poll_list(self, ctx: ReconcileContext, description: str, list_fn: Callable[[], Any]) -> Any:
        """List external resources, retrying while new credentials propagate."""
        with self._api_call(ctx, "list"):
            return poll_immediate(
                ctx,
                list_fn,
                interval=self.poll_interval,
                timeout=self.poll_timeout,
                description=description,
                retry_on=(ClientError, BotoCoreError),
            )

    @contextmanager
    def _api_call(self, ctx: ReconcileContext, operation: str) -> Iterator[None]:
        """Track an external API call and translate vendor errors."""
        ctx.check(f"{self.service_name} {operation}")
        start_time = time.time()
        try:
            yield
        except (ClientError, BotoCoreError) as e:
            self._record(operation, "error")
            raise ExternalCallError(f"{self.service_name} {operation} failed: {e}") from e
        except Exception:
            self._record(operation, "error")
            raise
        else:
            self._record(operation, "success")
        finally:
            metrics.api_call_duration_seconds.labels(api_type=self.service_name, operation=operation).observe(
                time.time() - start_time
            )

    def _record(self, operation: str, result: str) -> None:
        metrics.api_call_total.labels(api_type=self.service_name, operation=operation, result=result).inc()
        metrics.provider_operations_total.labels(
            provider=self.get_name(), kind=self.resource_kind.value, operation=operation, result=result
        ).inc()
