"""Upload state repository.

This module persists :class:`UploadRecord` objects as JSON documents below the
upload-info prefix of the bucket, one object per file id.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from pydantic import ValidationError

from tus_s3store.domain.records import UploadRecord
from tus_s3store.infra.observability.metrics import CORRUPT_RECORDS_SKIPPED
from tus_s3store.infra.storage.client import ObjectExistsError, StorageClient

logger = logging.getLogger(__name__)

RECORD_CONTENT_TYPE = "application/json"


class UploadStateConflictError(Exception):
    """Raised when creating a record for a file id that already has one."""


class CorruptUploadStateError(Exception):
    """Raised when a stored record cannot be parsed."""


class UploadStateRepository:
    """Repository for upload state records kept in object storage.

    The backend is only eventually consistent: a record written by ``put`` may
    not be returned by an immediately following ``get``. Callers keep the
    record they last wrote in memory instead of re-reading it.
    """

    def __init__(
        self,
        storage: StorageClient,
        *,
        bucket: str,
        prefix: str,
        page_size: int = 1000,
    ) -> None:
        self._storage = storage
        self._bucket = bucket
        self._prefix = prefix
        self._page_size = page_size

    def key_for(self, file_id: str) -> str:
        return f"{self._prefix}{file_id}"

    async def exists(self, file_id: str) -> bool:
        head = await self._storage.head_object(
            bucket=self._bucket, object_key=self.key_for(file_id)
        )
        return head is not None

    async def create(self, record: UploadRecord) -> None:
        """Store a new record.

        Raises:
            UploadStateConflictError: If a record already exists for the id.
        """
        try:
            await self._storage.put_object(
                bucket=self._bucket,
                object_key=self.key_for(record.file_id),
                body=record.to_json(),
                content_type=RECORD_CONTENT_TYPE,
                if_absent=True,
            )
        except ObjectExistsError as exc:
            raise UploadStateConflictError(
                f"Upload state for file '{record.file_id}' already exists"
            ) from exc
        logger.debug("Created upload state for file '%s'", record.file_id)

    async def get(self, file_id: str) -> UploadRecord | None:
        """Load a record.

        Returns:
            The record, or None if no record exists for the id.

        Raises:
            CorruptUploadStateError: If the stored payload does not parse.
        """
        raw = await self._storage.get_object(
            bucket=self._bucket, object_key=self.key_for(file_id)
        )
        if raw is None:
            logger.debug("No upload state found for file '%s'", file_id)
            return None
        try:
            return UploadRecord.from_json(raw)
        except ValidationError as exc:
            raise CorruptUploadStateError(
                f"Upload state for file '{file_id}' is corrupt: {exc}"
            ) from exc

    async def put(self, record: UploadRecord) -> None:
        await self._storage.put_object(
            bucket=self._bucket,
            object_key=self.key_for(record.file_id),
            body=record.to_json(),
            content_type=RECORD_CONTENT_TYPE,
        )
        logger.debug(
            "Wrote upload state for file '%s' (offset=%s)",
            record.file_id,
            record.upload_offset,
        )

    async def delete(self, file_id: str) -> None:
        await self._storage.delete_object(
            bucket=self._bucket, object_key=self.key_for(file_id)
        )

    async def list(self) -> AsyncIterator[UploadRecord]:
        """Iterate over all records, one listing page at a time.

        Records that vanished between listing and loading are skipped, as are
        records that fail to parse; neither aborts the enumeration.
        """
        async for item in self._storage.list_objects(
            bucket=self._bucket, prefix=self._prefix, page_size=self._page_size
        ):
            file_id = item.object_key[len(self._prefix):].strip()
            if not file_id or "/" in file_id:
                continue
            try:
                record = await self.get(file_id)
            except CorruptUploadStateError as exc:
                CORRUPT_RECORDS_SKIPPED.inc()
                logger.warning("Skipping unreadable upload state: %s", exc)
                continue
            if record is None:
                continue
            yield record
