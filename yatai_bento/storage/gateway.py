"""Object store gateway for Bento archives.

This module handles:
- Creating the organization bucket when it does not exist yet
- Issuing presigned PUT URLs for a single archive object

Clients are built per call from the organization's StorageConfig, so
different organizations never share credentials.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from yatai_bento.types import StorageConfig

logger = logging.getLogger(__name__)

# Validity window of presigned upload URLs
UPLOAD_URL_TTL = timedelta(hours=1)

# us-east-1 rejects an explicit LocationConstraint
_DEFAULT_REGION = "us-east-1"

_ALREADY_OWNED_CODES = frozenset({"BucketAlreadyOwnedByYou"})


class ObjectStoreError(Exception):
    """Raised when the object store rejects a request or is unreachable."""

    def __init__(
        self,
        message: str,
        operation: str,
        bucket_name: str | None = None,
        code: str = "object_store_error",
    ) -> None:
        """Initialize ObjectStoreError.

        Args:
            message: Error description.
            operation: Object store operation that failed.
            bucket_name: Bucket involved, if any.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.operation = operation
        self.bucket_name = bucket_name
        self.code = code


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def default_client_factory(config: StorageConfig) -> Any:
    """Create a boto3 S3 client for a storage configuration."""
    session = boto3.session.Session(
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        region_name=config.region,
    )
    return session.client("s3", endpoint_url=config.endpoint_url)


class ObjectStoreGateway:
    """Thin authenticated access to an S3-compatible store."""

    def __init__(
        self,
        client_factory: Callable[[StorageConfig], Any] | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            client_factory: Builds an S3 client from a StorageConfig.
                Defaults to a boto3 client.
        """
        self._client_factory = client_factory or default_client_factory

    def _client(self, config: StorageConfig) -> Any:
        try:
            return self._client_factory(config)
        except BotoCoreError as e:
            raise ObjectStoreError(
                f"create s3 client: {e}",
                operation="create_client",
                bucket_name=config.bucket_name,
            ) from e

    def ensure_bucket(self, config: StorageConfig) -> bool:
        """Create the configured bucket unless it already exists.

        Args:
            config: Organization storage configuration.

        Returns:
            True if the bucket was created, False if it already existed.

        Raises:
            ObjectStoreError: If the bucket is missing and cannot be created.
        """
        client = self._client(config)
        bucket = config.bucket_name

        params: dict[str, Any] = {"Bucket": bucket}
        if config.region and config.region != _DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {
                "LocationConstraint": config.region
            }

        try:
            client.create_bucket(**params)
        except ClientError as e:
            if _error_code(e) in _ALREADY_OWNED_CODES:
                logger.debug("Bucket %s already owned", bucket)
                return False
            # Creation can also fail when the bucket exists but the key lacks
            # CreateBucket permission; accept it if we can reach it.
            if self._bucket_exists(client, bucket):
                logger.debug("Bucket %s already exists", bucket)
                return False
            raise ObjectStoreError(
                f"create bucket {bucket}: {e}",
                operation="create_bucket",
                bucket_name=bucket,
            ) from e
        except BotoCoreError as e:
            raise ObjectStoreError(
                f"create bucket {bucket}: {e}",
                operation="create_bucket",
                bucket_name=bucket,
            ) from e

        logger.info("Created bucket %s in %s", bucket, config.region)
        return True

    @staticmethod
    def _bucket_exists(client: Any, bucket: str) -> bool:
        try:
            client.head_bucket(Bucket=bucket)
        except (ClientError, BotoCoreError):
            return False
        return True

    def presign_upload(
        self,
        config: StorageConfig,
        object_name: str,
        ttl: timedelta = UPLOAD_URL_TTL,
    ) -> str:
        """Return a presigned URL allowing a PUT of exactly one object.

        Args:
            config: Organization storage configuration.
            object_name: Key of the object to upload.
            ttl: Validity window of the URL.

        Returns:
            Presigned URL string.

        Raises:
            ObjectStoreError: If signing fails.
        """
        client = self._client(config)
        try:
            url = client.generate_presigned_url(
                "put_object",
                Params={"Bucket": config.bucket_name, "Key": object_name},
                ExpiresIn=int(ttl.total_seconds()),
                HttpMethod="PUT",
            )
        except (ClientError, BotoCoreError) as e:
            raise ObjectStoreError(
                f"presigned put object {object_name}: {e}",
                operation="presign_put_object",
                bucket_name=config.bucket_name,
            ) from e

        logger.debug(
            "Presigned upload for s3://%s/%s", config.bucket_name, object_name
        )
        return str(url)


__all__ = [
    "ObjectStoreError",
    "ObjectStoreGateway",
    "UPLOAD_URL_TTL",
    "default_client_factory",
]
