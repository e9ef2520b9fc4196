from .expiration_service import ExpirationService, ExpirationSweeper
from .file_reader import MetadataCodec, MetadataCodecMissingError, UploadFile
from .ingestion_service import IngestionService
from .multipart_service import (
    CommitStatus,
    FinalizeStatus,
    MultipartUploadService,
    PartCommit,
)
from .part_size import PartSizePolicy, calculate_optimal_part_size
from .sources import ChunkSliceSource, SliceSource, StreamSliceSource
from .store import StorageBackendNotConfiguredError, TusS3Store

__all__ = [
    "ChunkSliceSource",
    "CommitStatus",
    "ExpirationService",
    "ExpirationSweeper",
    "FinalizeStatus",
    "IngestionService",
    "MetadataCodec",
    "MetadataCodecMissingError",
    "MultipartUploadService",
    "PartCommit",
    "PartSizePolicy",
    "SliceSource",
    "StorageBackendNotConfiguredError",
    "StreamSliceSource",
    "TusS3Store",
    "UploadFile",
    "calculate_optimal_part_size",
]
