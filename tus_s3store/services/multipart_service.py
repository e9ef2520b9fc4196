"""Multipart upload lifecycle.

This module owns every interaction with the backend multipart upload of a
file: initiating it, committing parts, assembling the final object, aborting
it and terminating the whole upload.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from tus_s3store.common.cancellation import CancellationToken, is_cancelled
from tus_s3store.common.results import ErrorKind, Result
from tus_s3store.domain.records import PartRecord, UploadRecord
from tus_s3store.domain.repositories.upload_state_repository import (
    UploadStateRepository,
)
from tus_s3store.infra.observability.metrics import (
    BYTES_COMMITTED,
    MULTIPART_ABORTS,
    PARTS_COMMITTED,
    UPLOADS_FINALIZED,
)
from tus_s3store.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    MultipartUploadNotFoundError,
    StorageClient,
    StorageError,
    TransferCancelledError,
)

logger = logging.getLogger(__name__)


class CommitStatus(str, enum.Enum):
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class FinalizeStatus(str, enum.Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"


@dataclass(frozen=True, slots=True)
class PartCommit:
    """Outcome of :meth:`MultipartUploadService.upload_part`.

    ``record`` is the record as persisted after the commit, or the unchanged
    input record when the commit was cancelled.
    """

    status: CommitStatus
    record: UploadRecord
    part: PartRecord | None = None


class MultipartUploadService:
    """Drives the backend multipart upload behind each file id."""

    def __init__(
        self,
        storage: StorageClient,
        repository: UploadStateRepository,
        *,
        bucket: str,
        file_prefix: str,
    ) -> None:
        self._storage = storage
        self._repo = repository
        self._bucket = bucket
        self._file_prefix = file_prefix

    def file_key(self, file_id: str) -> str:
        return f"{self._file_prefix}{file_id}"

    async def initiate(self, file_id: str) -> str:
        """Open a new multipart upload for ``file_id`` and return its upload id."""
        upload = await self._storage.create_multipart_upload(
            bucket=self._bucket,
            object_key=self.file_key(file_id),
            metadata={"file-id": file_id},
        )
        logger.debug(
            "Initiated multipart upload for file '%s' with upload id '%s'",
            file_id,
            upload.upload_id,
        )
        return upload.upload_id

    async def upload_part(
        self,
        record: UploadRecord,
        data: bytes,
        cancel: CancellationToken | None = None,
    ) -> PartCommit:
        """Upload ``data`` as the next part and persist the updated record.

        The part is acknowledged only after the record has been written, so a
        committed part is never missing from durable state. A cancelled
        transfer leaves the record untouched; the backend may or may not hold
        the part, and a later commit reuses the same part number.

        Raises:
            MultipartUploadNotFoundError: If the multipart upload is gone.
            StorageError: If the transfer or the record write fails.
        """
        if record.length_known and record.upload_offset + len(data) > record.upload_length:
            raise ValueError(
                f"Part of {len(data)} bytes would exceed upload length of file '{record.file_id}'"
            )
        if is_cancelled(cancel):
            return PartCommit(status=CommitStatus.CANCELLED, record=record)

        number = record.next_part_number
        try:
            etag = await self._storage.upload_part(
                bucket=self._bucket,
                object_key=self.file_key(record.file_id),
                upload_id=record.upload_id,
                part_number=number,
                body=data,
            )
        except TransferCancelledError:
            logger.warning(
                "Upload of part %s for file '%s' cancelled", number, record.file_id
            )
            return PartCommit(status=CommitStatus.CANCELLED, record=record)

        part = PartRecord(number=number, size_in_bytes=len(data), etag=etag)
        updated = record.with_part(part)
        await self._repo.put(updated)

        PARTS_COMMITTED.inc()
        BYTES_COMMITTED.inc(len(data))
        logger.debug(
            "Committed part %s (%s bytes) for file '%s', offset now %s",
            number,
            len(data),
            record.file_id,
            updated.upload_offset,
        )
        return PartCommit(status=CommitStatus.COMMITTED, record=updated, part=part)

    async def finalize(
        self,
        record: UploadRecord,
        cancel: CancellationToken | None = None,
    ) -> Result[FinalizeStatus]:
        """Assemble the committed parts into the final object.

        Safe to repeat: if the backend no longer knows the multipart upload
        but the assembled object exists, a previous attempt already succeeded.
        A cancelled finalize is not retried here; the next append on the file
        attempts it again.
        """
        if not record.is_complete:
            return Result.failure(
                ErrorKind.INVALID_STATE,
                f"File '{record.file_id}' has {record.upload_offset} of "
                f"{record.upload_length} bytes; cannot finalize",
            )
        if is_cancelled(cancel):
            logger.warning(
                "Finalizing multipart upload '%s' for file '%s' cancelled",
                record.upload_id,
                record.file_id,
            )
            return Result.failure(ErrorKind.CANCELLED, "finalize cancelled")

        key = self.file_key(record.file_id)
        if not record.parts:
            # The backend refuses to complete an upload without parts.
            await self._storage.put_object(bucket=self._bucket, object_key=key, body=b"")
            await self.abort(record.file_id, record.upload_id, reason="empty")
            UPLOADS_FINALIZED.inc()
            logger.debug("Stored empty object for file '%s'", record.file_id)
            return Result.success(FinalizeStatus.COMPLETED)

        parts = [
            CompletedPart(part_number=part.number, etag=part.etag)
            for part in sorted(record.parts, key=lambda p: p.number)
        ]
        try:
            await self._storage.complete_multipart_upload(
                bucket=self._bucket,
                object_key=key,
                upload_id=record.upload_id,
                parts=parts,
            )
        except MultipartUploadNotFoundError:
            head = await self._storage.head_object(bucket=self._bucket, object_key=key)
            if head is None:
                return Result.failure(
                    ErrorKind.NOT_FOUND,
                    f"Multipart upload '{record.upload_id}' for file "
                    f"'{record.file_id}' no longer exists",
                )
            logger.debug(
                "Multipart upload for file '%s' was already completed", record.file_id
            )
            return Result.success(FinalizeStatus.ALREADY_COMPLETED)

        UPLOADS_FINALIZED.inc()
        logger.debug(
            "Completed multipart upload '%s' for file '%s' with %s parts",
            record.upload_id,
            record.file_id,
            len(parts),
        )
        return Result.success(FinalizeStatus.COMPLETED)

    async def abort(self, file_id: str, upload_id: str, *, reason: str = "terminated") -> bool:
        """Abort the multipart upload of ``file_id``; best effort."""
        return await self.abort_handle(
            MultipartUpload(
                upload_id=upload_id,
                bucket=self._bucket,
                object_key=self.file_key(file_id),
            ),
            reason=reason,
        )

    async def abort_handle(self, upload: MultipartUpload, *, reason: str) -> bool:
        """Abort a backend multipart upload.

        A handle the backend no longer knows counts as already cleaned up.
        Backend failures are logged, not raised.

        Returns:
            True if the backend aborted the upload.
        """
        try:
            aborted = await self._storage.abort_multipart_upload(
                bucket=upload.bucket,
                object_key=upload.object_key,
                upload_id=upload.upload_id,
            )
        except StorageError as exc:
            logger.warning(
                "Failed to abort multipart upload '%s' for key '%s': %s",
                upload.upload_id,
                upload.object_key,
                exc,
            )
            return False

        if aborted:
            MULTIPART_ABORTS.labels(reason=reason).inc()
            logger.debug(
                "Aborted multipart upload '%s' for key '%s'",
                upload.upload_id,
                upload.object_key,
            )
        else:
            logger.debug(
                "Multipart upload '%s' for key '%s' already gone",
                upload.upload_id,
                upload.object_key,
            )
        return aborted

    async def terminate(self, record: UploadRecord) -> None:
        """Remove every trace of an upload.

        The multipart upload is aborted first, which makes any part transfer
        still racing against the termination fail at the backend. The record
        is deleted last so a failed cleanup can be retried.
        """
        await self.abort(record.file_id, record.upload_id)
        await self._storage.delete_object(
            bucket=self._bucket, object_key=self.file_key(record.file_id)
        )
        await self._repo.delete(record.file_id)
        logger.debug("Terminated file '%s'", record.file_id)
