"""AWS S3 blob storage provider."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError

from ...builders.bucket import create_bucket_config
from ...models import Pending, ProvisionedInstance, ResourceKind, ResourceRequest, StrategyConfig
from ...tracing import trace_span
from ...utils.context import ReconcileContext
from ...utils.naming import build_bucket_name
from ..base import ProvisionResult
from .base import AWSProviderBase, error_code

logger = logging.getLogger(__name__)

NO_LOCATION_CONSTRAINT_REGION = "us-east-1"
NOT_FOUND_CODES = {"NoSuchBucket", "404", "NotFound"}
ALREADY_OWNED_CODES = {"BucketAlreadyOwnedByYou"}


class AWSBlobStorageProvider(AWSProviderBase):
    """Blob storage provider implementation for AWS S3."""

    resource_kind = ResourceKind.BLOB_STORE
    service_name = "s3"

    def create_or_discover(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        strategy: StrategyConfig,
    ) -> ProvisionResult:
        """Create the bucket of a request, or discover it."""
        bucket_name = build_bucket_name(request.namespace, request.name)
        config = create_bucket_config(strategy.raw_strategy, bucket_name, strategy.region)

        with trace_span("blobstorage_create_or_discover", kind=self.resource_kind.value,
                        attributes={"bucket.name": bucket_name}):
            s3_client = self._session(ctx, request.namespace, strategy.region)

            buckets = self._poll_list(ctx, "list buckets", lambda: self._list_buckets(s3_client))

            if bucket_name not in buckets:
                self._create_bucket(ctx, s3_client, config)
                return Pending(f"bucket {bucket_name} creation in progress")

            # Re-applied on every pass to undo out-of-band changes
            self._ensure_bucket_configuration(ctx, s3_client, config)

            owner_credentials = self.credential_manager.reconcile_bucket_owner_credentials(
                ctx, request, bucket_name
            )

        return ProvisionedInstance(
            provider=self.get_name(),
            data={
                "bucketName": bucket_name,
                "bucketRegion": strategy.region,
                "credentialKeyID": owner_credentials.access_key_id,
                "credentialSecretKey": owner_credentials.secret_access_key,
            },
        )

    def delete(
        self,
        ctx: ReconcileContext,
        request: ResourceRequest,
        strategy: StrategyConfig,
    ) -> None:
        """Empty and delete the bucket of a request, and revoke its owner credentials."""
        bucket_name = build_bucket_name(request.namespace, request.name)

        with trace_span("blobstorage_delete", kind=self.resource_kind.value,
                        attributes={"bucket.name": bucket_name}):
            s3_client = self._session(ctx, request.namespace, strategy.region)

            with self._api_call(ctx, "delete"):
                if self._bucket_exists(s3_client, bucket_name):
                    self._empty_bucket(ctx, s3_client, bucket_name)
                    try:
                        s3_client.delete_bucket(Bucket=bucket_name)
                        logger.info(f"Deleted bucket {bucket_name}")
                    except ClientError as e:
                        if error_code(e) not in NOT_FOUND_CODES:
                            raise
                else:
                    logger.info(f"Bucket {bucket_name} does not exist, nothing to delete")

            self.credential_manager.delete_bucket_owner_credentials(ctx, request)

    def _list_buckets(self, s3_client: Any) -> set[str]:
        response = s3_client.list_buckets()
        return {bucket["Name"] for bucket in response.get("Buckets", [])}

    def _bucket_exists(self, s3_client: Any, bucket_name: str) -> bool:
        try:
            s3_client.head_bucket(Bucket=bucket_name)
            return True
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return False
            raise

    def _create_bucket(self, ctx: ReconcileContext, s3_client: Any, config: dict[str, Any]) -> None:
        bucket_name = config["BucketName"]
        region = config["Region"]
        create_params: dict[str, Any] = {"Bucket": bucket_name, "ACL": config["ACL"]}
        if region != NO_LOCATION_CONSTRAINT_REGION:
            create_params["CreateBucketConfiguration"] = {"LocationConstraint": region}

        logger.info(f"Creating bucket {bucket_name} in region {region}")
        with self._api_call(ctx, "create"):
            try:
                s3_client.create_bucket(**create_params)
            except ClientError as e:
                if error_code(e) not in ALREADY_OWNED_CODES:
                    raise
                logger.info(f"Bucket {bucket_name} already exists")

    def _ensure_bucket_configuration(self, ctx: ReconcileContext, s3_client: Any, config: dict[str, Any]) -> None:
        bucket_name = config["BucketName"]
        with self._api_call(ctx, "configure"):
            if config.get("ServerSideEncryption"):
                s3_client.put_bucket_encryption(
                    Bucket=bucket_name,
                    ServerSideEncryptionConfiguration={
                        "Rules": [
                            {"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": config["ServerSideEncryption"]}}
                        ]
                    },
                )
            if config.get("BlockPublicAccess"):
                s3_client.put_public_access_block(
                    Bucket=bucket_name,
                    PublicAccessBlockConfiguration={
                        "BlockPublicAcls": True,
                        "IgnorePublicAcls": True,
                        "BlockPublicPolicy": True,
                        "RestrictPublicBuckets": True,
                    },
                )
            if config.get("Versioning"):
                s3_client.put_bucket_versioning(
                    Bucket=bucket_name,
                    VersioningConfiguration={"Status": "Enabled"},
                )
            elif s3_client.get_bucket_versioning(Bucket=bucket_name).get("Status") == "Enabled":
                # Versioning can only be suspended once enabled
                s3_client.put_bucket_versioning(
                    Bucket=bucket_name,
                    VersioningConfiguration={"Status": "Suspended"},
                )
            if config.get("Tags"):
                s3_client.put_bucket_tagging(
                    Bucket=bucket_name,
                    Tagging={"TagSet": [{"Key": k, "Value": str(v)} for k, v in config["Tags"].items()]},
                )
            else:
                s3_client.delete_bucket_tagging(Bucket=bucket_name)

    def _empty_bucket(self, ctx: ReconcileContext, s3_client: Any, bucket_name: str) -> None:
        """Delete all objects, versions and delete markers of a bucket."""
        paginator = s3_client.get_paginator("list_object_versions")
        for page in paginator.paginate(Bucket=bucket_name):
            ctx.check(f"empty bucket {bucket_name}")
            objects = [
                {"Key": item["Key"], "VersionId": item["VersionId"]}
                for item in page.get("Versions", []) + page.get("DeleteMarkers", [])
            ]
            if objects:
                s3_client.delete_objects(Bucket=bucket_name, Delete={"Objects": objects, "Quiet": True})
                logger.debug(f"Deleted {len(objects)} object versions from bucket {bucket_name}")
