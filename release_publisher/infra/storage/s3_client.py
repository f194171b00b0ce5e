"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, Iterator, Mapping, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from release_publisher.infra.storage.client import (
    DeleteOutcome,
    ObjectNotFoundError,
    StorageError,
    TransferCallback,
)

logger = logging.getLogger("publisher.storage")

# DeleteObjects accepts at most this many keys per request.
MAX_DELETE_BATCH = 1000

_MISSING_OBJECT_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
# Options consumed by botocore's Config rather than by the client factory.
_CONFIG_OPTIONS = ("signature_version", "addressing_style")


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations.
    """

    def __init__(self, *, provider_options: Mapping[str, Any]) -> None:
        """Initialize the S3 client from explicit provider options.

        Args:
            provider_options: boto3 client keyword arguments, plus the
                optional ``signature_version`` and ``addressing_style``
                shortcuts which are folded into a botocore ``Config``.
        """
        self._client = self._build_client(provider_options)

    @staticmethod
    def _build_client(provider_options: Mapping[str, Any]) -> Any:
        """Create a boto3 S3 client on a private session."""
        options = dict(provider_options)
        signature_version = options.pop("signature_version", None)
        addressing_style = options.pop("addressing_style", None)

        config_kwargs: dict[str, Any] = {}
        if signature_version:
            config_kwargs["signature_version"] = signature_version
        if addressing_style:
            config_kwargs["s3"] = {"addressing_style": str(addressing_style).strip().lower()}
        config = Config(**config_kwargs)
        user_config = options.pop("config", None)
        if user_config is not None:
            config = config.merge(user_config)

        session = boto3.session.Session()
        return session.client("s3", config=config, **options)

    def bucket_exists(self, *, bucket: str) -> bool:
        """Check if bucket exists."""
        try:
            self._client.head_bucket(Bucket=bucket)
        except (ClientError, BotoCoreError) as exc:
            logger.debug("head_bucket failed for %s: %s", bucket, exc)
            return False
        return True

    def create_bucket(self, *, bucket_spec: Mapping[str, Any]) -> None:
        """Create a bucket from a creation descriptor."""
        try:
            self._client.create_bucket(**dict(bucket_spec))
        except Exception as exc:
            raise StorageError(f"Failed to create bucket: {exc}") from exc

    def upload_fileobj(
        self,
        *,
        bucket: str,
        object_key: str,
        fileobj: BinaryIO,
        acl: str | None = None,
        content_type: str | None = None,
        callback: TransferCallback | None = None,
    ) -> None:
        """Stream a file-like object into an object."""
        extra_args: dict[str, Any] = {}
        if acl:
            extra_args["ACL"] = acl
        if content_type:
            extra_args["ContentType"] = content_type

        try:
            self._client.upload_fileobj(
                fileobj,
                bucket,
                object_key,
                ExtraArgs=extra_args or None,
                Callback=callback,
            )
        except Exception as exc:
            raise StorageError(f"Failed to upload object: {exc}") from exc

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        acl: str | None = None,
        content_type: str | None = None,
    ) -> None:
        """Write an in-memory payload to an object."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key, "Body": body}
        if acl:
            params["ACL"] = acl
        if content_type:
            params["ContentType"] = content_type

        try:
            self._client.put_object(**params)
        except Exception as exc:
            raise StorageError(f"Failed to put object: {exc}") from exc

    def get_object(self, *, bucket: str, object_key: str) -> bytes:
        """Read an object's content."""
        try:
            response = self._client.get_object(Bucket=bucket, Key=object_key)
            return response["Body"].read()
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_OBJECT_CODES:
                raise ObjectNotFoundError(f"Object not found: {object_key}") from exc
            raise StorageError(f"Failed to get object: {exc}") from exc
        except Exception as exc:
            raise StorageError(f"Failed to get object: {exc}") from exc

    def iter_object_keys(self, *, bucket: str, prefix: str | None = None) -> Iterator[str]:
        """Iterate over every object key, following continuation tokens."""
        kwargs: dict[str, Any] = {"Bucket": bucket}
        if prefix:
            kwargs["Prefix"] = prefix

        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**kwargs):
                for obj in page.get("Contents", []):
                    yield obj["Key"]
        except Exception as exc:
            raise StorageError(f"Failed to list objects: {exc}") from exc

    def delete_objects(self, *, bucket: str, object_keys: Sequence[str]) -> DeleteOutcome:
        """Delete keys in batches of at most ``MAX_DELETE_BATCH``."""
        outcome = DeleteOutcome()
        for start in range(0, len(object_keys), MAX_DELETE_BATCH):
            batch = object_keys[start : start + MAX_DELETE_BATCH]
            try:
                response = self._client.delete_objects(
                    Bucket=bucket,
                    Delete={"Objects": [{"Key": key} for key in batch]},
                )
            except Exception as exc:
                raise StorageError(f"Failed to delete objects: {exc}") from exc

            outcome.deleted.extend(item["Key"] for item in response.get("Deleted", []))
            outcome.errors.extend(response.get("Errors", []))
        return outcome
