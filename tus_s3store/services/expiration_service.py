"""Expiration handling and backend reconciliation.

The backend is only eventually consistent and records can be lost (for
example when a process dies between initiating a multipart upload and writing
its record), so a periodic pass compares what the backend holds with the
records that are known and cleans up both orphaned multipart uploads and
uploads whose expiration passed before they were completed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from tus_s3store.common.cancellation import CancellationToken, is_cancelled
from tus_s3store.common.results import ErrorKind, Result
from tus_s3store.domain.records import UploadRecord
from tus_s3store.domain.repositories.upload_state_repository import (
    UploadStateRepository,
)
from tus_s3store.infra.observability.metrics import EXPIRED_UPLOADS_REMOVED
from tus_s3store.infra.storage.client import (
    MultipartUpload,
    StorageClient,
    StorageError,
)
from tus_s3store.services.multipart_service import MultipartUploadService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExpirationService:
    def __init__(
        self,
        repository: UploadStateRepository,
        multipart: MultipartUploadService,
        storage: StorageClient,
        *,
        bucket: str,
        file_prefix: str,
        page_size: int = 1000,
        orphan_grace: timedelta = timedelta(0),
        clock: Clock = utc_now,
    ) -> None:
        self._repo = repository
        self._multipart = multipart
        self._storage = storage
        self._bucket = bucket
        self._file_prefix = file_prefix
        self._page_size = page_size
        self._orphan_grace = orphan_grace
        self._clock = clock

    async def find_expired(
        self, cancel: CancellationToken | None = None
    ) -> Result[list[str]]:
        """Ids of incomplete uploads whose expiration has passed."""
        now = self._clock()
        expired: list[str] = []
        async for record in self._repo.list():
            if is_cancelled(cancel):
                return Result.failure(ErrorKind.CANCELLED, value=expired)
            if record.is_expired(now):
                expired.append(record.file_id)
        return Result.success(expired)

    async def reconcile(self, cancel: CancellationToken | None = None) -> Result[int]:
        """Run one cleanup pass.

        Aborts every multipart upload below the file prefix that no known
        record references, then terminates every expired upload. Failures to
        clean up a single handle or upload are logged and the pass goes on;
        failing to enumerate the records aborts the pass, since without them
        every handle would look orphaned.

        Returns:
            The number of expired uploads removed.
        """
        now = self._clock()
        known_upload_ids: set[str] = set()
        expired: list[UploadRecord] = []
        async for record in self._repo.list():
            if is_cancelled(cancel):
                return Result.failure(ErrorKind.CANCELLED, value=0)
            known_upload_ids.add(record.upload_id)
            if record.is_expired(now):
                expired.append(record)

        orphans = await self._abort_orphans(known_upload_ids, now, cancel)
        if orphans is None:
            return Result.failure(ErrorKind.CANCELLED, value=0)

        removed = 0
        for record in expired:
            if is_cancelled(cancel):
                return Result.failure(ErrorKind.CANCELLED, value=removed)
            try:
                await self._multipart.terminate(record)
            except StorageError as exc:
                logger.warning(
                    "Failed to remove expired file '%s': %s", record.file_id, exc
                )
                continue
            removed += 1
            EXPIRED_UPLOADS_REMOVED.inc()
            logger.debug("Deleted incomplete expired file '%s'", record.file_id)

        logger.info(
            "Reconciliation finished: %s expired uploads removed, %s orphaned multipart uploads aborted",
            removed,
            orphans,
        )
        return Result.success(removed)

    async def _abort_orphans(
        self,
        known_upload_ids: set[str],
        now: datetime,
        cancel: CancellationToken | None,
    ) -> int | None:
        """Abort unreferenced multipart uploads; None when cancelled."""
        aborted = 0
        try:
            async for upload in self._storage.list_multipart_uploads(
                bucket=self._bucket,
                prefix=self._file_prefix,
                page_size=self._page_size,
            ):
                if is_cancelled(cancel):
                    return None
                if upload.upload_id in known_upload_ids or self._is_recent(upload, now):
                    continue
                if await self._multipart.abort_handle(upload, reason="orphan"):
                    aborted += 1
        except StorageError as exc:
            logger.warning("Failed to list multipart uploads: %s", exc)
        return aborted

    def _is_recent(self, upload: MultipartUpload, now: datetime) -> bool:
        if not self._orphan_grace or upload.initiated is None:
            return False
        initiated = upload.initiated
        if initiated.tzinfo is None:
            initiated = initiated.replace(tzinfo=timezone.utc)
        return now - initiated < self._orphan_grace


class ExpirationSweeper:
    """Runs :meth:`ExpirationService.reconcile` periodically until cancelled."""

    def __init__(self, service: ExpirationService, *, interval_seconds: float) -> None:
        self._service = service
        self._interval = interval_seconds

    async def run(self, cancel: CancellationToken) -> None:
        while not cancel.cancelled:
            logger.info("Running cleanup job...")
            try:
                result = await self._service.reconcile(cancel)
            except Exception:
                logger.exception("Failed to run cleanup job")
            else:
                logger.info(
                    "Removed %s expired files. Scheduled to run again in %s s",
                    result.value or 0,
                    self._interval,
                )
            if await cancel.wait(self._interval):
                break
