"""Persisted upload state.

One :class:`UploadRecord` is stored as a JSON object per file id. The model
validates the bookkeeping invariants on load, so a torn or hand-edited record
fails to parse instead of being trusted.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UNKNOWN_LENGTH = -1


class PartRecord(BaseModel):
    """A part committed to the backend multipart upload."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(ge=1)
    size_in_bytes: int = Field(ge=0)
    etag: str = Field(min_length=1)


class UploadRecord(BaseModel):
    """State of one resumable upload."""

    file_id: str = Field(min_length=1)
    upload_id: str = Field(min_length=1)
    metadata: str = ""
    upload_length: int = Field(default=UNKNOWN_LENGTH, ge=UNKNOWN_LENGTH)
    upload_offset: int = Field(default=0, ge=0)
    parts: list[PartRecord] = Field(default_factory=list)
    expires: datetime

    @field_validator("expires")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_bookkeeping(self) -> "UploadRecord":
        numbers = [part.number for part in self.parts]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError("part numbers must be contiguous starting at 1")
        committed = sum(part.size_in_bytes for part in self.parts)
        if committed != self.upload_offset:
            raise ValueError(
                f"upload_offset {self.upload_offset} does not match committed parts ({committed})"
            )
        if self.length_known and self.upload_offset > self.upload_length:
            raise ValueError("upload_offset exceeds upload_length")
        return self

    @property
    def length_known(self) -> bool:
        return self.upload_length >= 0

    @property
    def is_complete(self) -> bool:
        return self.length_known and self.upload_offset == self.upload_length

    @property
    def next_part_number(self) -> int:
        return max((part.number for part in self.parts), default=0) + 1

    def is_expired(self, now: datetime) -> bool:
        """Expired means the deadline passed while bytes are still missing.

        A complete upload never expires; once assembled the object is no
        longer managed by the reconciler. Uploads whose length is still
        deferred count as incomplete.
        """
        if self.is_complete:
            return False
        return self.expires < now

    def with_part(self, part: PartRecord) -> "UploadRecord":
        return self.model_copy(
            update={
                "parts": [*self.parts, part],
                "upload_offset": self.upload_offset + part.size_in_bytes,
            }
        )

    def with_length(self, upload_length: int) -> "UploadRecord":
        return self.model_copy(update={"upload_length": upload_length})

    def with_expires(self, expires: datetime) -> "UploadRecord":
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return self.model_copy(update={"expires": expires})

    def to_json(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes | str) -> "UploadRecord":
        return cls.model_validate_json(raw)
