from __future__ import annotations

from typing import AsyncIterator, Protocol

from tus_s3store.domain.records import UploadRecord
from tus_s3store.infra.storage.client import StorageClient


class MetadataCodec(Protocol):
    """Turns the opaque metadata blob stored with an upload into key/values."""

    def decode(self, raw: str) -> dict[str, str]: ...


class MetadataCodecMissingError(RuntimeError):
    """Raised when metadata is decoded without a codec being configured."""


class UploadFile:
    """Read-only view of one upload.

    ``get_content`` streams the assembled object and may be called any number
    of times; each call opens a fresh read. S3 cannot read an incomplete
    multipart upload, so content is available only once the upload is
    complete (iterating earlier raises ``ObjectNotFoundError``).
    """

    def __init__(
        self,
        record: UploadRecord,
        storage: StorageClient,
        *,
        bucket: str,
        object_key: str,
        chunk_size: int,
        codec: MetadataCodec | None = None,
    ) -> None:
        self._record = record
        self._storage = storage
        self._bucket = bucket
        self._object_key = object_key
        self._chunk_size = chunk_size
        self._codec = codec

    @property
    def id(self) -> str:
        return self._record.file_id

    @property
    def is_complete(self) -> bool:
        return self._record.is_complete

    @property
    def upload_length(self) -> int:
        return self._record.upload_length

    @property
    def upload_offset(self) -> int:
        return self._record.upload_offset

    def get_content(self) -> AsyncIterator[bytes]:
        return self._storage.iter_object(
            bucket=self._bucket,
            object_key=self._object_key,
            chunk_size=self._chunk_size,
        )

    async def read_all(self) -> bytes:
        buffer = bytearray()
        async for chunk in self.get_content():
            buffer += chunk
        return bytes(buffer)

    def get_metadata(self, codec: MetadataCodec | None = None) -> dict[str, str]:
        codec = codec or self._codec
        if codec is None:
            raise MetadataCodecMissingError(
                "A metadata codec is required to decode upload metadata"
            )
        return codec.decode(self._record.metadata)
