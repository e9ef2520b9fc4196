from __future__ import annotations

import pytest

from tus_s3store.common.config import Settings
from tus_s3store.domain.repositories.upload_state_repository import (
    UploadStateRepository,
)
from tus_s3store.services.multipart_service import MultipartUploadService
from tus_s3store.services.store import TusS3Store
from tests.services.fakes import BUCKET, CommaSeparatedCodec, FrozenClock
from tests.services.mock_storage import MockStorageClient


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        S3_BUCKET=BUCKET,
        MIN_PART_SIZE_BYTES=16,
        PREFERRED_PART_SIZE_BYTES=1024,
        MAX_PART_SIZE_BYTES=4096,
        MAX_MULTIPART_PARTS=100,
        CONTENT_CHUNK_SIZE_BYTES=256,
        LIST_PAGE_SIZE=10,
    )


@pytest.fixture()
def mock_storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def codec() -> CommaSeparatedCodec:
    return CommaSeparatedCodec()


@pytest.fixture()
def repository(mock_storage, settings) -> UploadStateRepository:
    return UploadStateRepository(
        mock_storage,
        bucket=BUCKET,
        prefix=settings.UPLOAD_INFO_OBJECT_PREFIX,
        page_size=settings.LIST_PAGE_SIZE,
    )


@pytest.fixture()
def multipart(mock_storage, repository, settings) -> MultipartUploadService:
    return MultipartUploadService(
        mock_storage,
        repository,
        bucket=BUCKET,
        file_prefix=settings.FILE_OBJECT_PREFIX,
    )


@pytest.fixture()
def store(mock_storage, settings, clock, codec) -> TusS3Store:
    return TusS3Store(
        storage_client=mock_storage,
        settings=settings,
        metadata_codec=codec,
        clock=clock,
    )
