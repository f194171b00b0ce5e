"""Storage client protocol and data types.

This module defines the abstract interface for the object storage operations
a release transport needs: bucket provisioning, object upload, listing,
reading and batch deletion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Iterator, Mapping, Protocol, Sequence

# Callback receiving the number of bytes transferred since the previous call.
TransferCallback = Callable[[int], None]


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class ObjectNotFoundError(StorageError):
    """Raised when a requested object does not exist."""


@dataclass(slots=True)
class DeleteOutcome:
    """Merged result of one or more batch delete requests."""

    deleted: list[str] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations must provide all methods defined here.
    Currently supports S3-compatible storage services.
    """

    def bucket_exists(self, *, bucket: str) -> bool:
        """Check whether a bucket exists and is accessible.

        Args:
            bucket: Bucket name.

        Returns:
            False when the check fails for any reason, True otherwise.
        """
        ...

    def create_bucket(self, *, bucket_spec: Mapping[str, Any]) -> None:
        """Create a bucket from a creation descriptor.

        Args:
            bucket_spec: Descriptor with at least a ``Bucket`` entry; other
                entries are passed to the provider unchanged.

        Raises:
            StorageError: If the operation fails.
        """
        ...

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
        """Stream a file-like object into an object.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            fileobj: Binary file-like object to read from.
            acl: Canned ACL, e.g. ``public-read``.
            content_type: MIME type of the object.
            callback: Receives transferred byte increments.

        Raises:
            StorageError: If the transfer fails.
        """
        ...

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        acl: str | None = None,
        content_type: str | None = None,
    ) -> None:
        """Write an in-memory payload to an object.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def get_object(self, *, bucket: str, object_key: str) -> bytes:
        """Read an object's content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageError: If the operation fails.
        """
        ...

    def iter_object_keys(self, *, bucket: str, prefix: str | None = None) -> Iterator[str]:
        """Iterate over every object key in the bucket.

        Implementations must follow continuation tokens until the listing
        is exhausted.

        Raises:
            StorageError: If a listing request fails.
        """
        ...

    def delete_objects(self, *, bucket: str, object_keys: Sequence[str]) -> DeleteOutcome:
        """Delete the given keys with batch delete requests.

        An empty ``object_keys`` issues no request.

        Raises:
            StorageError: If a delete request itself fails.
        """
        ...
