"""Ingestion pipeline.

Drains a byte source into the multipart upload of a file: the input is cut
into parts sized by :class:`PartSizePolicy`, each part is committed (uploaded
and recorded) strictly one after another, and the upload is finalized as soon
as the declared length is reached.

Cancellation contract, shared by every source:

* a :class:`CancellationToken` is checked before each slice is read and
  before each part transfer; once set, the call stops and returns a
  ``CANCELLED`` result carrying the bytes accepted so far;
* asyncio task cancellation arriving while a part commit is in flight lets
  that commit finish (transfer and record write) before ``CancelledError``
  propagates, so a part is never half-recorded;
* the source is released in all cases; a failing release is logged and
  never hides the original error.
"""

from __future__ import annotations

import asyncio
import logging

from tus_s3store.common.cancellation import CancellationToken, is_cancelled
from tus_s3store.common.results import ErrorKind, Result
from tus_s3store.domain.records import UploadRecord
from tus_s3store.domain.repositories.upload_state_repository import (
    UploadStateRepository,
)
from tus_s3store.infra.storage.client import MultipartUploadNotFoundError
from tus_s3store.services.multipart_service import (
    CommitStatus,
    MultipartUploadService,
    PartCommit,
)
from tus_s3store.services.part_size import PartSizePolicy
from tus_s3store.services.sources import SliceSource

logger = logging.getLogger(__name__)


class IngestionService:
    def __init__(
        self,
        repository: UploadStateRepository,
        multipart: MultipartUploadService,
        policy: PartSizePolicy,
    ) -> None:
        self._repo = repository
        self._multipart = multipart
        self._policy = policy

    async def append(
        self,
        file_id: str,
        source: SliceSource,
        cancel: CancellationToken | None = None,
    ) -> Result[int]:
        """Append everything ``source`` yields to the upload of ``file_id``.

        Returns:
            The number of bytes accepted by this call. On ``CANCELLED``,
            ``CLIENT_OVERRUN`` or ``NOT_FOUND`` the value still holds the
            bytes committed before the call stopped.

        Raises:
            StorageError: If the backend fails while committing.
        """
        try:
            return await self._append(file_id, source, cancel)
        finally:
            await self._release(file_id, source)

    async def _append(
        self,
        file_id: str,
        source: SliceSource,
        cancel: CancellationToken | None,
    ) -> Result[int]:
        record = await self._repo.get(file_id)
        if record is None:
            return Result.failure(
                ErrorKind.NOT_FOUND, f"No upload found for file id '{file_id}'", value=0
            )

        if record.is_complete:
            logger.debug("Upload length for file '%s' reached, finalizing", file_id)
            finalized = await self._multipart.finalize(record, cancel)
            if not finalized.ok:
                return Result.failure(finalized.error, finalized.message, value=0)
            return Result.success(0)

        part_size = self._policy.part_size_for(
            record.upload_length if record.length_known else None
        )
        written = 0

        while True:
            if is_cancelled(cancel):
                logger.warning("Cancelled the upload operation for file '%s'", file_id)
                return Result.failure(
                    ErrorKind.CANCELLED, "append cancelled", value=written
                )

            data = await source.read_slice(part_size)
            if not data:
                break

            requested = record.upload_offset + len(data)
            if record.length_known and requested > record.upload_length:
                logger.warning(
                    "Rejected %s bytes for file '%s': would exceed upload length",
                    len(data),
                    file_id,
                )
                return Result.failure(
                    ErrorKind.CLIENT_OVERRUN,
                    "Request contains more data than the file's upload length. "
                    f"Request data: {requested}, upload length: {record.upload_length}.",
                    value=written,
                )

            logger.debug("Append %s bytes to the file '%s'", len(data), file_id)
            try:
                commit = await self._commit(record, data, cancel)
            except MultipartUploadNotFoundError as exc:
                # The upload was terminated while this call was running.
                logger.warning("Upload of file '%s' is gone: %s", file_id, exc)
                return Result.failure(ErrorKind.NOT_FOUND, str(exc), value=written)

            if commit.status is CommitStatus.CANCELLED:
                logger.warning("Cancelled the upload operation for file '%s'", file_id)
                return Result.failure(
                    ErrorKind.CANCELLED, "append cancelled", value=written
                )

            record = commit.record
            written += len(data)

            if record.is_complete:
                finalized = await self._multipart.finalize(record, cancel)
                if not finalized.ok:
                    return Result.failure(
                        finalized.error, finalized.message, value=written
                    )

        return Result.success(written)

    async def _commit(
        self,
        record: UploadRecord,
        data: bytes,
        cancel: CancellationToken | None,
    ) -> PartCommit:
        task = asyncio.ensure_future(self._multipart.upload_part(record, data, cancel))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.warning(
                "Cancellation requested while committing a part of file '%s'; "
                "waiting for the commit to finish",
                record.file_id,
            )
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    "Part commit for file '%s' failed after cancellation",
                    record.file_id,
                    exc_info=task.exception(),
                )
            raise

    async def _release(self, file_id: str, source: SliceSource) -> None:
        try:
            await source.release()
        except Exception:
            logger.warning(
                "Failed to release the input source for file '%s'",
                file_id,
                exc_info=True,
            )
