"""Storage client protocol and data types.

This module defines the asynchronous interface the upload store uses to talk
to an S3-compatible object store: multipart uploads, plain objects used for
upload state, and paginated listings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Protocol, Sequence


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class StorageUnavailableError(StorageError):
    """Raised when the storage backend cannot be reached."""


class ObjectNotFoundError(StorageError):
    """Raised when a required object does not exist."""


class ObjectExistsError(StorageError):
    """Raised when a conditional create finds the object already present."""


class MultipartUploadNotFoundError(StorageError):
    """Raised when a multipart upload id is unknown to the backend."""


class TransferCancelledError(Exception):
    """Raised when the backend interrupts a transfer on request.

    Not a :class:`StorageError`: cancellation is an expected outcome, not a
    backend fault.
    """


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """A multipart upload handle known to the backend."""

    upload_id: str
    bucket: str
    object_key: str
    initiated: datetime | None = None


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    etag: str | None
    content_type: str | None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ObjectSummary:
    """One entry of an object listing."""

    object_key: str
    size_bytes: int
    last_modified: datetime | None = None


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    All network calls are coroutines. Listings are async iterators that fetch
    one page at a time, so memory use does not grow with the bucket size.
    """

    async def create_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    async def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> str:
        """Upload one part and return the ETag assigned by the backend.

        Raises:
            MultipartUploadNotFoundError: If the upload no longer exists.
            TransferCancelledError: If the transfer was interrupted.
            StorageError: If the operation fails.
        """
        ...

    async def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts.

        Raises:
            MultipartUploadNotFoundError: If the upload no longer exists.
            StorageError: If the operation fails.
        """
        ...

    async def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> bool:
        """Abort a multipart upload and clean up uploaded parts.

        Returns:
            False if the backend did not know the upload, True otherwise.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def list_multipart_uploads(
        self,
        *,
        bucket: str,
        prefix: str,
        page_size: int,
    ) -> AsyncIterator[MultipartUpload]:
        """Iterate over incomplete multipart uploads below ``prefix``."""
        ...

    async def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
        if_absent: bool = False,
    ) -> None:
        """Store an object.

        Raises:
            ObjectExistsError: If ``if_absent`` is set and the key exists.
            StorageError: If the operation fails.
        """
        ...

    async def get_object(self, *, bucket: str, object_key: str) -> bytes | None:
        """Return the whole object body, or None if it does not exist."""
        ...

    def iter_object(
        self,
        *,
        bucket: str,
        object_key: str,
        chunk_size: int,
    ) -> AsyncIterator[bytes]:
        """Stream an object in chunks of at most ``chunk_size`` bytes.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        ...

    async def head_object(self, *, bucket: str, object_key: str) -> ObjectHead | None:
        """Get object metadata, or None if the object does not exist."""
        ...

    async def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object; deleting a missing key is not an error."""
        ...

    def list_objects(
        self,
        *,
        bucket: str,
        prefix: str,
        page_size: int,
    ) -> AsyncIterator[ObjectSummary]:
        """Iterate over objects directly below ``prefix``."""
        ...
