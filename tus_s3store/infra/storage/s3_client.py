"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

boto3 is synchronous; every call is dispatched to a worker thread with
``asyncio.to_thread`` so the event loop is never blocked on network I/O.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, AsyncIterator, Iterator, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ConnectionError as BotoConnectionError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from tus_s3store.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    MultipartUploadNotFoundError,
    ObjectExistsError,
    ObjectHead,
    ObjectNotFoundError,
    ObjectSummary,
    StorageError,
    StorageUnavailableError,
)

if TYPE_CHECKING:
    from tus_s3store.common.config import Settings

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
_NO_SUCH_UPLOAD = "NoSuchUpload"
_PRECONDITION_CODES = frozenset(
    {"412", "PreconditionFailed", "ConditionalRequestConflict"}
)
_UNAVAILABLE_ERRORS = (
    BotoConnectionError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


def _error_code(exc: BaseException) -> str:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return ""
    return str(response.get("Error", {}).get("Code", ""))


def _storage_error(message: str, exc: Exception) -> StorageError:
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return StorageUnavailableError(f"{message}: {exc}")
    return StorageError(f"{message}: {exc}")


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Settings containing the S3 connection configuration.
        """
        self._settings = settings
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        config = Config(s3={"addressing_style": addressing_style})

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    async def _call(self, operation: str, **params: Any) -> Any:
        method = getattr(self._client, operation)
        return await asyncio.to_thread(method, **params)

    async def create_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata

        try:
            response = await self._call("create_multipart_upload", **params)
        except Exception as exc:
            raise _storage_error("Failed to create multipart upload", exc) from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=bucket,
            object_key=object_key,
        )

    async def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> str:
        """Upload one part of a multipart upload."""
        try:
            response = await self._call(
                "upload_part",
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=int(part_number),
                Body=body,
                ContentLength=len(body),
            )
        except Exception as exc:
            if _error_code(exc) == _NO_SUCH_UPLOAD:
                raise MultipartUploadNotFoundError(
                    f"Multipart upload {upload_id} does not exist"
                ) from exc
            raise _storage_error("Failed to upload part", exc) from exc

        etag = response.get("ETag")
        if not etag:
            raise StorageError("S3 response missing ETag")
        return str(etag)

    async def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }

        try:
            await self._call(
                "complete_multipart_upload",
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            if _error_code(exc) == _NO_SUCH_UPLOAD:
                raise MultipartUploadNotFoundError(
                    f"Multipart upload {upload_id} does not exist"
                ) from exc
            raise _storage_error("Failed to complete multipart upload", exc) from exc

    async def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> bool:
        """Abort a multipart upload and clean up uploaded parts."""
        try:
            await self._call(
                "abort_multipart_upload",
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
            )
        except Exception as exc:
            if _error_code(exc) == _NO_SUCH_UPLOAD:
                return False
            raise _storage_error("Failed to abort multipart upload", exc) from exc
        return True

    async def _iter_pages(
        self, operation: str, **params: Any
    ) -> AsyncIterator[dict[str, Any]]:
        try:
            paginator = self._client.get_paginator(operation)
            pages: Iterator[dict[str, Any]] = iter(paginator.paginate(**params))
        except Exception as exc:
            raise _storage_error(f"Failed to list ({operation})", exc) from exc
        while True:
            try:
                page = await asyncio.to_thread(next, pages, None)
            except Exception as exc:
                raise _storage_error(f"Failed to list ({operation})", exc) from exc
            if page is None:
                return
            yield page

    async def list_multipart_uploads(
        self,
        *,
        bucket: str,
        prefix: str,
        page_size: int,
    ) -> AsyncIterator[MultipartUpload]:
        """Iterate over incomplete multipart uploads below ``prefix``."""
        async for page in self._iter_pages(
            "list_multipart_uploads",
            Bucket=bucket,
            Prefix=prefix,
            Delimiter="/",
            PaginationConfig={"PageSize": int(page_size)},
        ):
            for upload in page.get("Uploads", []) or []:
                yield MultipartUpload(
                    upload_id=str(upload["UploadId"]),
                    bucket=bucket,
                    object_key=str(upload["Key"]),
                    initiated=upload.get("Initiated"),
                )

    async def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
        if_absent: bool = False,
    ) -> None:
        """Store an object, optionally only if the key is still free."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if if_absent:
            params["IfNoneMatch"] = "*"

        try:
            await self._call("put_object", **params)
        except Exception as exc:
            if if_absent and _error_code(exc) in _PRECONDITION_CODES:
                raise ObjectExistsError(f"Object {object_key} already exists") from exc
            raise _storage_error("Failed to put object", exc) from exc

    async def _open_object(self, bucket: str, object_key: str) -> Any | None:
        try:
            response = await self._call("get_object", Bucket=bucket, Key=object_key)
        except Exception as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return None
            raise _storage_error("Failed to get object", exc) from exc
        return response["Body"]

    async def get_object(self, *, bucket: str, object_key: str) -> bytes | None:
        """Return the whole object body, or None if it does not exist."""
        body = await self._open_object(bucket, object_key)
        if body is None:
            return None
        try:
            return await asyncio.to_thread(body.read)
        except Exception as exc:
            raise _storage_error("Failed to read object", exc) from exc
        finally:
            body.close()

    async def iter_object(
        self,
        *,
        bucket: str,
        object_key: str,
        chunk_size: int,
    ) -> AsyncIterator[bytes]:
        """Stream an object in chunks of at most ``chunk_size`` bytes."""
        body = await self._open_object(bucket, object_key)
        if body is None:
            raise ObjectNotFoundError(f"Object {object_key} does not exist")
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(body.read, chunk_size)
                except Exception as exc:
                    raise _storage_error("Failed to read object", exc) from exc
                if not chunk:
                    return
                yield chunk
        finally:
            body.close()

    async def head_object(self, *, bucket: str, object_key: str) -> ObjectHead | None:
        """Get object metadata without downloading the content."""
        try:
            response = await self._call("head_object", Bucket=bucket, Key=object_key)
        except Exception as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return None
            raise _storage_error("Failed to get object metadata", exc) from exc

        size = response.get("ContentLength")
        return ObjectHead(
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            metadata=dict(response.get("Metadata") or {}),
        )

    async def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            await self._call("delete_object", Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise _storage_error("Failed to delete object", exc) from exc

    async def list_objects(
        self,
        *,
        bucket: str,
        prefix: str,
        page_size: int,
    ) -> AsyncIterator[ObjectSummary]:
        """Iterate over objects directly below ``prefix``."""
        async for page in self._iter_pages(
            "list_objects_v2",
            Bucket=bucket,
            Prefix=prefix,
            Delimiter="/",
            PaginationConfig={"PageSize": int(page_size)},
        ):
            for item in page.get("Contents", []) or []:
                size = item.get("Size")
                yield ObjectSummary(
                    object_key=str(item["Key"]),
                    size_bytes=int(size) if size is not None else 0,
                    last_modified=item.get("LastModified"),
                )
