from .upload_state_repository import (
    CorruptUploadStateError,
    UploadStateConflictError,
    UploadStateRepository,
)

__all__ = [
    "CorruptUploadStateError",
    "UploadStateConflictError",
    "UploadStateRepository",
]
