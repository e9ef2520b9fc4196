"""Resumable uploads stored as S3 multipart uploads."""

from tus_s3store.common.cancellation import CancellationToken
from tus_s3store.common.config import Settings, get_settings
from tus_s3store.common.ids import FileIdProvider, UuidFileIdProvider
from tus_s3store.common.results import ErrorKind, Result, ResultError
from tus_s3store.services.file_reader import MetadataCodec, UploadFile
from tus_s3store.services.store import StorageBackendNotConfiguredError, TusS3Store

__all__ = [
    "CancellationToken",
    "ErrorKind",
    "FileIdProvider",
    "MetadataCodec",
    "Result",
    "ResultError",
    "Settings",
    "StorageBackendNotConfiguredError",
    "TusS3Store",
    "UploadFile",
    "UuidFileIdProvider",
    "get_settings",
]
