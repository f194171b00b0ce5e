"""S3 transport: publishes builds and ``updates.json`` to an S3 bucket.

Every public operation waits on one shared bucket-provisioning task, started
by ``init()`` (or lazily by the first operation). The task checks the bucket
with HEAD and creates it when the check fails; its outcome is cached, so the
bucket is provisioned at most once per transport instance.

Objects are laid out as::

    <build id>/<file name>    build artifacts
    updates.json              the manifest
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import posixpath
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping

from release_publisher.common.config import Settings
from release_publisher.infra.storage.client import (
    DeleteOutcome,
    ObjectNotFoundError,
    StorageClient,
    StorageError,
)
from release_publisher.infra.storage.s3_client import S3StorageClient
from release_publisher.transport.base import (
    UPDATES_JSON_KEY,
    BuildIdResolver,
    ConfigError,
    DeleteError,
    ListError,
    ProgressCallback,
    ProvisionError,
    UploadError,
)
from release_publisher.transport.build import (
    Build,
    default_build_id,
    is_build_id,
    normalize_file_name,
)

logger = logging.getLogger("publisher.transport")

PUBLIC_READ = "public-read"
SIGNATURE_VERSION = "s3v4"
JSON_CONTENT_TYPE = "application/json"


@dataclass
class S3TransportOptions:
    """Raw transport options as supplied by the publishing pipeline.

    ``bucket`` is a bucket name or a ``create_bucket`` descriptor such as
    ``{"Bucket": "name", "CreateBucketConfiguration": {...}}``. ``aws`` holds
    boto3 client options (``region_name``, ``endpoint_url``, ...).
    """

    access_key_id: str | None = None
    secret_access_key: str | None = None
    bucket: str | Mapping[str, Any] | None = None
    aws: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3TransportOptions":
        aws: dict[str, Any] = {}
        if settings.S3_REGION:
            aws["region_name"] = settings.S3_REGION
        if settings.S3_ENDPOINT_URL:
            aws["endpoint_url"] = settings.S3_ENDPOINT_URL
        if settings.S3_ADDRESSING_STYLE:
            aws["addressing_style"] = settings.S3_ADDRESSING_STYLE
        return cls(
            access_key_id=settings.S3_ACCESS_KEY_ID,
            secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            bucket=settings.S3_BUCKET,
            aws=aws,
        )


class _ProgressRelay:
    """Turns boto3 byte increments into cumulative ``(loaded, total)`` events.

    boto3 invokes the callback from transfer threads and may report negative
    increments when it retries a part. Events are handed to the event loop
    in the order they were computed, and ``loaded`` never decreases.
    """

    def __init__(
        self,
        sink: ProgressCallback,
        loop: asyncio.AbstractEventLoop,
        total: int,
    ) -> None:
        self._sink = sink
        self._loop = loop
        self._total = total
        self._transferred = 0
        self._loaded = 0
        self._completed = False
        self._lock = threading.Lock()

    def __call__(self, bytes_amount: int) -> None:
        with self._lock:
            self._transferred += bytes_amount
            self._loaded = max(self._loaded, min(self._transferred, self._total))
            self._completed = self._loaded == self._total
            self._loop.call_soon_threadsafe(self._sink, self._loaded, self._total)

    def finish(self) -> None:
        """Emit the closing ``loaded == total`` event if boto3 did not."""
        with self._lock:
            if self._completed:
                return
            self._loaded = self._total
            self._completed = True
        self._sink(self._total, self._total)


class S3Transport:
    """Publishes release artifacts to S3."""

    def __init__(
        self,
        options: S3TransportOptions,
        *,
        package_name: str | None = None,
        storage_client: StorageClient | None = None,
        build_id_resolver: BuildIdResolver | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self.provider_options = self._normalize_provider_options(options)
        self.bucket_spec = self._normalize_bucket(options.bucket, package_name)
        self._storage = storage_client
        self._resolve_build_id = build_id_resolver or default_build_id
        self._progress = progress
        self._bucket_ready: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "S3Transport":
        kwargs.setdefault("package_name", settings.PUBLISHER_PACKAGE_NAME)
        return cls(S3TransportOptions.from_settings(settings), **kwargs)

    @staticmethod
    def _normalize_provider_options(options: S3TransportOptions) -> dict[str, Any]:
        provider_options: dict[str, Any] = {
            "aws_access_key_id": options.access_key_id,
            "aws_secret_access_key": options.secret_access_key,
            "signature_version": SIGNATURE_VERSION,
        }
        provider_options.update(options.aws or {})
        for name in ("aws_access_key_id", "aws_secret_access_key"):
            if not provider_options.get(name):
                raise ConfigError(f"The transport {name} option is not set")
        return provider_options

    @staticmethod
    def _normalize_bucket(
        bucket: str | Mapping[str, Any] | None, package_name: str | None
    ) -> dict[str, Any]:
        if bucket is None or bucket == "":
            if not package_name:
                raise ConfigError(
                    "The transport bucket option is not set and no package name "
                    "is available to derive one"
                )
            bucket = f"{package_name}-updates"

        if isinstance(bucket, str):
            spec: dict[str, Any] = {"Bucket": bucket}
        elif isinstance(bucket, Mapping):
            spec = dict(bucket)
        else:
            raise ConfigError(
                f"The transport bucket option must be a name or a mapping, "
                f"got {type(bucket).__name__}"
            )

        if not spec.get("Bucket"):
            raise ConfigError("The transport bucket option is not set")
        return spec

    @property
    def bucket(self) -> str:
        return self.bucket_spec["Bucket"]

    def init(self) -> asyncio.Task[None]:
        """Create the storage client and start provisioning the bucket.

        Must be called from a running event loop. Calling it again returns
        the same provisioning task.
        """
        if self._storage is None:
            self._storage = S3StorageClient(provider_options=self.provider_options)
        # A task cancelled with its event loop holds no outcome; start over.
        if self._bucket_ready is None or self._bucket_ready.cancelled():
            loop = asyncio.get_running_loop()
            self._bucket_ready = loop.create_task(self._provision_bucket())
        return self._bucket_ready

    async def _provision_bucket(self) -> None:
        storage = self._storage
        bucket = self.bucket
        if await asyncio.to_thread(storage.bucket_exists, bucket=bucket):
            logger.debug("Bucket %s is available", bucket)
            return

        logger.info("Bucket %s not found, creating it", bucket)
        try:
            await asyncio.to_thread(storage.create_bucket, bucket_spec=self.bucket_spec)
        except StorageError as exc:
            raise ProvisionError(f"Unable to provision bucket {bucket}: {exc}") from exc

    async def _ready(self) -> StorageClient:
        # Shielded so that a cancelled caller does not cancel the shared task.
        await asyncio.shield(self.init())
        return self._storage

    async def upload_file(self, file_path: str, build: Build) -> str:
        """Upload a build artifact and return its public URL."""
        remote_path = self.get_remote_file_path(file_path, build)
        storage = await self._ready()
        loop = asyncio.get_running_loop()

        try:
            total = await asyncio.to_thread(os.path.getsize, file_path)
        except OSError as exc:
            raise UploadError(f"Cannot read {file_path}: {exc}") from exc

        relay = _ProgressRelay(self._progress, loop, total) if self._progress else None
        logger.info("Uploading %s to s3://%s/%s", file_path, self.bucket, remote_path)
        try:
            await asyncio.to_thread(
                self._upload_sync, storage, file_path, remote_path, relay
            )
        except (OSError, StorageError) as exc:
            raise UploadError(f"Failed to upload {file_path}: {exc}") from exc

        if relay is not None:
            relay.finish()
        return self.get_file_url(remote_path)

    def _upload_sync(
        self,
        storage: StorageClient,
        file_path: str,
        remote_path: str,
        callback: _ProgressRelay | None,
    ) -> None:
        with open(file_path, "rb") as fileobj:
            storage.upload_fileobj(
                bucket=self.bucket,
                object_key=remote_path,
                fileobj=fileobj,
                acl=PUBLIC_READ,
                callback=callback,
            )

    async def push_updates_json(self, data: Any) -> str:
        """Overwrite ``updates.json`` and return its public URL."""
        body = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
        storage = await self._ready()
        try:
            await asyncio.to_thread(
                storage.put_object,
                bucket=self.bucket,
                object_key=UPDATES_JSON_KEY,
                body=body,
                acl=PUBLIC_READ,
                content_type=JSON_CONTENT_TYPE,
            )
        except StorageError as exc:
            raise UploadError(f"Failed to push {UPDATES_JSON_KEY}: {exc}") from exc
        logger.info("Pushed %s to bucket %s", UPDATES_JSON_KEY, self.bucket)
        return self.get_updates_json_url()

    async def fetch_updates_json(self) -> dict[str, Any]:
        """Return the published manifest, or an empty one if none exists yet."""
        storage = await self._ready()
        try:
            raw = await asyncio.to_thread(
                storage.get_object, bucket=self.bucket, object_key=UPDATES_JSON_KEY
            )
        except ObjectNotFoundError:
            return {}
        except StorageError as exc:
            raise ListError(f"Failed to fetch {UPDATES_JSON_KEY}: {exc}") from exc

        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise ListError(f"Corrupt {UPDATES_JSON_KEY}: {exc}") from exc
        if not isinstance(data, dict):
            raise ListError(f"Corrupt {UPDATES_JSON_KEY}: expected an object")
        return data

    async def update_updates_json(self, build: Build, url: str) -> str:
        """Point the manifest entry of ``build`` at ``url`` and push it."""
        data = await self.fetch_updates_json()
        data[build.manifest_key] = {
            "version": build.version,
            "update": url,
            "install": url,
        }
        return await self.push_updates_json(data)

    async def fetch_builds_list(self) -> list[str]:
        """Return published build ids in order of first appearance."""
        keys = await self._list_keys()
        prefixes = (key.split("/", 1)[0] for key in keys)
        return list(dict.fromkeys(p for p in prefixes if is_build_id(p)))

    async def list_build_keys(self, build: Build) -> list[str]:
        """Return every object key stored under the build's id."""
        return await self._list_keys(prefix=f"{self.get_build_id(build)}/")

    async def remove_build(self, build: Build) -> DeleteOutcome:
        """Delete every object of ``build``.

        Per-key failures reported by S3 are returned in the outcome's
        ``errors`` without raising.
        """
        keys = await self.list_build_keys(build)
        if not keys:
            logger.info("No objects found for build %s", self.get_build_id(build))
            return DeleteOutcome()

        storage = await self._ready()
        try:
            outcome = await asyncio.to_thread(
                storage.delete_objects, bucket=self.bucket, object_keys=keys
            )
        except StorageError as exc:
            raise DeleteError(
                f"Failed to remove build {self.get_build_id(build)}: {exc}"
            ) from exc

        if outcome.errors:
            logger.warning(
                "Build %s removed with %d errors",
                self.get_build_id(build),
                len(outcome.errors),
            )
        else:
            logger.info("Removed %d objects of build %s", len(keys), self.get_build_id(build))
        return outcome

    async def close(self) -> None:
        task, self._bucket_ready = self._bucket_ready, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _list_keys(self, prefix: str | None = None) -> list[str]:
        storage = await self._ready()

        def collect() -> list[str]:
            return list(storage.iter_object_keys(bucket=self.bucket, prefix=prefix))

        try:
            return await asyncio.to_thread(collect)
        except StorageError as exc:
            raise ListError(f"Failed to list bucket {self.bucket}: {exc}") from exc

    def get_build_id(self, build: Build) -> str:
        return self._resolve_build_id(build)

    def get_remote_file_path(self, local_file_path: str, build: Build) -> str:
        return posixpath.join(
            self.get_build_id(build), normalize_file_name(local_file_path)
        )

    def get_file_url(self, remote_path: str) -> str:
        return f"https://{self.bucket}.s3.amazonaws.com/{remote_path}"

    def get_updates_json_url(self) -> str:
        return self.get_file_url(UPDATES_JSON_KEY)
