"""Resumable upload store backed by S3 multipart uploads.

This module provides the entry point a resumable-upload protocol engine talks
to: creating uploads, appending data, deferred lengths, termination,
expiration and read access.

The store takes no locks. Two callers working on the same file id at the same
time are not supported and must be prevented by the caller: the backend is
only eventually consistent, so read-then-write sequences on one record cannot
be made safe here. Termination racing with an append is fenced by the
multipart upload itself: termination aborts the upload first, after which any
further part transfer fails and the append reports ``NOT_FOUND``.

Required IAM permissions on the bucket and its subresources:
``s3:ListMultipartUploadParts``, ``s3:ListBucketMultipartUploads``,
``s3:AbortMultipartUpload``, ``s3:ListBucket``, ``s3:GetObject``,
``s3:PutObject``, ``s3:DeleteObject``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import AsyncIterable

from tus_s3store.common.cancellation import CancellationToken
from tus_s3store.common.config import Settings, get_settings
from tus_s3store.common.ids import FileIdProvider, UuidFileIdProvider
from tus_s3store.common.results import ErrorKind, Result
from tus_s3store.domain.records import UNKNOWN_LENGTH, UploadRecord
from tus_s3store.domain.repositories.upload_state_repository import (
    CorruptUploadStateError,
    UploadStateConflictError,
    UploadStateRepository,
)
from tus_s3store.infra.storage.client import StorageClient
from tus_s3store.infra.storage.s3_client import S3StorageClient
from tus_s3store.services.expiration_service import (
    Clock,
    ExpirationService,
    ExpirationSweeper,
    utc_now,
)
from tus_s3store.services.file_reader import MetadataCodec, UploadFile
from tus_s3store.services.ingestion_service import IngestionService
from tus_s3store.services.multipart_service import MultipartUploadService
from tus_s3store.services.part_size import PartSizePolicy
from tus_s3store.services.sources import (
    ByteStream,
    ChunkSliceSource,
    StreamSliceSource,
)

logger = logging.getLogger(__name__)


class StorageBackendNotConfiguredError(Exception):
    """Raised when the storage backend is not properly configured."""


class TusS3Store:
    """Resumable upload store on top of an S3-compatible bucket."""

    def __init__(
        self,
        *,
        storage_client: StorageClient | None = None,
        settings: Settings | None = None,
        file_id_provider: FileIdProvider | None = None,
        metadata_codec: MetadataCodec | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._settings = settings or get_settings()
        if not self._settings.S3_BUCKET:
            raise StorageBackendNotConfiguredError("S3_BUCKET is required")
        self._bucket = self._settings.S3_BUCKET
        self._storage = storage_client or self._build_storage_client(self._settings)
        self._ids = file_id_provider or UuidFileIdProvider()
        self._codec = metadata_codec
        self._clock = clock

        self._repo = UploadStateRepository(
            self._storage,
            bucket=self._bucket,
            prefix=self._settings.UPLOAD_INFO_OBJECT_PREFIX,
            page_size=self._settings.LIST_PAGE_SIZE,
        )
        self._multipart = MultipartUploadService(
            self._storage,
            self._repo,
            bucket=self._bucket,
            file_prefix=self._settings.FILE_OBJECT_PREFIX,
        )
        self._ingestion = IngestionService(
            self._repo,
            self._multipart,
            PartSizePolicy.from_settings(self._settings),
        )
        self._expiration = ExpirationService(
            self._repo,
            self._multipart,
            self._storage,
            bucket=self._bucket,
            file_prefix=self._settings.FILE_OBJECT_PREFIX,
            page_size=self._settings.LIST_PAGE_SIZE,
            orphan_grace=timedelta(seconds=self._settings.ORPHAN_GRACE_SECONDS),
            clock=clock,
        )

    @staticmethod
    def _build_storage_client(settings: Settings) -> StorageClient:
        if not settings.S3_ACCESS_KEY_ID or not settings.S3_SECRET_ACCESS_KEY:
            raise StorageBackendNotConfiguredError(
                "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY are required"
            )
        return S3StorageClient(settings=settings)

    @property
    def settings(self) -> Settings:
        return self._settings

    async def _load(self, file_id: str) -> UploadRecord | None:
        if not await self._ids.validate_id(file_id):
            logger.debug("Rejected malformed file id '%s'", file_id)
            return None
        return await self._repo.get(file_id)

    @staticmethod
    def _not_found(file_id: str) -> Result:
        return Result.failure(
            ErrorKind.NOT_FOUND, f"No upload found for file id '{file_id}'"
        )

    # Existence and creation

    async def file_exists(self, file_id: str) -> bool:
        if not await self._ids.validate_id(file_id):
            return False
        exists = await self._repo.exists(file_id)
        if not exists:
            logger.debug("File for '%s' not found", file_id)
        return exists

    async def create_file(self, upload_length: int, metadata: str) -> str:
        """Create an upload and return its file id.

        Args:
            upload_length: Declared size in bytes, or -1 to defer it.
            metadata: Opaque metadata stored with the upload.

        Raises:
            ValueError: If ``upload_length`` is below -1.
            UploadStateConflictError: If the generated id is already taken.
            StorageError: If the backend fails.
        """
        if upload_length < UNKNOWN_LENGTH:
            raise ValueError("upload_length must be -1 (deferred) or non-negative")

        file_id = await self._ids.create_id(metadata)
        upload_id = await self._multipart.initiate(file_id)
        record = UploadRecord(
            file_id=file_id,
            upload_id=upload_id,
            metadata=metadata or "",
            upload_length=upload_length,
            expires=self._clock()
            + timedelta(seconds=self._settings.UPLOAD_EXPIRATION_SECONDS),
        )
        try:
            await self._repo.create(record)
        except UploadStateConflictError:
            await self._multipart.abort(file_id, upload_id)
            raise

        logger.debug(
            "Created a new file reference with file id '%s' and length '%s'",
            file_id,
            upload_length,
        )
        return file_id

    # Appending

    async def append_data(
        self,
        file_id: str,
        stream: ByteStream,
        cancel: CancellationToken | None = None,
    ) -> Result[int]:
        """Append bytes pulled from ``stream`` (``read(n)``, sync or async)."""
        logger.debug("Appending data from a stream for file '%s'", file_id)
        if not await self._ids.validate_id(file_id):
            return self._not_found(file_id)
        return await self._ingestion.append(file_id, StreamSliceSource(stream), cancel)

    async def append_chunks(
        self,
        file_id: str,
        chunks: AsyncIterable[bytes],
        cancel: CancellationToken | None = None,
    ) -> Result[int]:
        """Append bytes pushed by an async iterator of chunks."""
        logger.debug("Appending data from a chunk reader for file '%s'", file_id)
        source = ChunkSliceSource(chunks)
        if not await self._ids.validate_id(file_id):
            await source.release()
            return self._not_found(file_id)
        return await self._ingestion.append(file_id, source, cancel)

    # Lengths and metadata

    async def get_upload_length(self, file_id: str) -> Result[int]:
        record = await self._load(file_id)
        if record is None:
            return self._not_found(file_id)
        return Result.success(record.upload_length)

    async def get_upload_offset(self, file_id: str) -> Result[int]:
        record = await self._load(file_id)
        if record is None:
            return self._not_found(file_id)
        return Result.success(record.upload_offset)

    async def set_upload_length(self, file_id: str, upload_length: int) -> Result[None]:
        """Resolve a deferred length. Setting the same length again is a no-op."""
        record = await self._load(file_id)
        if record is None:
            return self._not_found(file_id)
        if record.length_known:
            if record.upload_length == upload_length:
                return Result.success()
            return Result.failure(
                ErrorKind.INVALID_STATE,
                f"Upload length of file '{file_id}' is already {record.upload_length}",
            )
        if upload_length < record.upload_offset:
            return Result.failure(
                ErrorKind.INVALID_STATE,
                f"Upload length {upload_length} is below the current offset "
                f"{record.upload_offset} of file '{file_id}'",
            )

        await self._repo.put(record.with_length(upload_length))
        logger.debug(
            "Upload length '%s' received & stored for file id '%s'",
            upload_length,
            file_id,
        )
        return Result.success()

    async def get_upload_metadata(self, file_id: str) -> Result[str]:
        record = await self._load(file_id)
        if record is None:
            return self._not_found(file_id)
        return Result.success(record.metadata)

    # Termination

    async def delete_file(self, file_id: str) -> None:
        """Terminate an upload; deleting an unknown file is a no-op."""
        try:
            record = await self._load(file_id)
        except CorruptUploadStateError as exc:
            # The multipart upload id is unreadable; the next reconciliation
            # aborts the handle as an orphan.
            logger.warning("Deleting file '%s' with unreadable state: %s", file_id, exc)
            await self._storage.delete_object(
                bucket=self._bucket, object_key=self._multipart.file_key(file_id)
            )
            await self._repo.delete(file_id)
            return

        if record is None:
            logger.warning("Deletion for non existing file id '%s' ignored", file_id)
            return
        await self._multipart.terminate(record)
        logger.debug("File with file id '%s' deleted", file_id)

    # Expiration

    async def set_expiration(self, file_id: str, expires: datetime) -> Result[None]:
        record = await self._load(file_id)
        if record is None:
            return self._not_found(file_id)
        updated = record.with_expires(expires)
        await self._repo.put(updated)
        logger.debug(
            "Expiration for file id '%s' set to value '%s'", file_id, updated.expires
        )
        return Result.success()

    async def get_expiration(self, file_id: str) -> Result[datetime]:
        record = await self._load(file_id)
        if record is None:
            return self._not_found(file_id)
        return Result.success(record.expires)

    async def get_expired_files(
        self, cancel: CancellationToken | None = None
    ) -> Result[list[str]]:
        return await self._expiration.find_expired(cancel)

    async def remove_expired_files(
        self, cancel: CancellationToken | None = None
    ) -> Result[int]:
        return await self._expiration.reconcile(cancel)

    def sweeper(self, interval_seconds: float | None = None) -> ExpirationSweeper:
        return ExpirationSweeper(
            self._expiration,
            interval_seconds=interval_seconds
            or self._settings.RECONCILE_INTERVAL_SECONDS,
        )

    # Reading

    async def get_file(self, file_id: str) -> Result[UploadFile]:
        record = await self._load(file_id)
        if record is None:
            logger.warning("GetFile for file id '%s' not found", file_id)
            return self._not_found(file_id)
        return Result.success(
            UploadFile(
                record,
                self._storage,
                bucket=self._bucket,
                object_key=self._multipart.file_key(file_id),
                chunk_size=self._settings.CONTENT_CHUNK_SIZE_BYTES,
                codec=self._codec,
            )
        )

    async def get_metadata(
        self, file_id: str, codec: MetadataCodec | None = None
    ) -> Result[dict[str, str]]:
        found = await self.get_file(file_id)
        if not found.ok:
            return Result.failure(found.error, found.message)
        return Result.success(found.unwrap().get_metadata(codec))
