"""Result values returned by store operations.

Expected outcomes such as a missing upload, a client sending more bytes than
it declared, or a cooperative cancellation are returned as values rather than
raised. Backend faults remain exceptions (see ``tus_s3store.infra.storage``).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    CLIENT_OVERRUN = "client_overrun"
    CANCELLED = "cancelled"
    INVALID_STATE = "invalid_state"


class ResultError(Exception):
    """Raised by :meth:`Result.unwrap` when the result carries an error."""

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        super().__init__(message or kind.value)
        self.kind = kind


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Outcome of a store operation.

    ``value`` may be populated even when ``error`` is set; a cancelled or
    overrun append still reports the number of bytes accepted before it
    stopped.
    """

    value: T | None = None
    error: ErrorKind | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        error: ErrorKind,
        message: str | None = None,
        *,
        value: T | None = None,
    ) -> "Result[T]":
        return cls(value=value, error=error, message=message)

    def unwrap(self) -> T:
        if self.error is not None:
            raise ResultError(self.error, self.message)
        return self.value  # type: ignore[return-value]
