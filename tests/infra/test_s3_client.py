"""Tests for S3 storage client."""

import io
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from tus_s3store.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    MultipartUploadNotFoundError,
    ObjectExistsError,
    ObjectNotFoundError,
    StorageError,
    StorageUnavailableError,
)
from tus_s3store.infra.storage.s3_client import S3StorageClient

pytestmark = pytest.mark.asyncio


def _client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestS3StorageClient:
    """Test S3StorageClient implementation."""

    @pytest.fixture
    def mock_s3(self):
        """Mock boto3 S3 client."""
        mock_client = MagicMock()
        with patch.object(S3StorageClient, "_build_client", return_value=mock_client):
            yield mock_client

    @pytest.fixture
    def mock_settings(self):
        """Create mock settings for S3."""
        settings = MagicMock()
        settings.S3_ENDPOINT_URL = "http://localhost:9000"
        settings.S3_REGION = "us-east-1"
        settings.S3_ACCESS_KEY_ID = "test-key"
        settings.S3_SECRET_ACCESS_KEY = "test-secret"
        settings.S3_USE_SSL = False
        settings.S3_ADDRESSING_STYLE = "path"
        return settings

    @pytest.fixture
    def client(self, mock_s3, mock_settings):
        """Create S3StorageClient with mocked boto3."""
        return S3StorageClient(settings=mock_settings)

    async def test_create_multipart_upload(self, client, mock_s3):
        """Test initiating multipart upload."""
        mock_s3.create_multipart_upload.return_value = {
            "UploadId": "test-upload-id",
            "Bucket": "test-bucket",
            "Key": "files/abc",
        }

        result = await client.create_multipart_upload(
            bucket="test-bucket",
            object_key="files/abc",
            metadata={"file-id": "abc"},
        )

        assert isinstance(result, MultipartUpload)
        assert result.upload_id == "test-upload-id"
        assert result.bucket == "test-bucket"
        assert result.object_key == "files/abc"

        mock_s3.create_multipart_upload.assert_called_once_with(
            Bucket="test-bucket",
            Key="files/abc",
            Metadata={"file-id": "abc"},
        )

    async def test_create_multipart_upload_missing_upload_id(self, client, mock_s3):
        """Test a response without UploadId is rejected."""
        mock_s3.create_multipart_upload.return_value = {}

        with pytest.raises(StorageError, match="missing UploadId"):
            await client.create_multipart_upload(bucket="b", object_key="k")

    async def test_upload_part(self, client, mock_s3):
        """Test uploading one part returns its ETag."""
        mock_s3.upload_part.return_value = {"ETag": '"etag-1"'}

        etag = await client.upload_part(
            bucket="test-bucket",
            object_key="files/abc",
            upload_id="test-upload-id",
            part_number=1,
            body=b"hello",
        )

        assert etag == '"etag-1"'
        mock_s3.upload_part.assert_called_once_with(
            Bucket="test-bucket",
            Key="files/abc",
            UploadId="test-upload-id",
            PartNumber=1,
            Body=b"hello",
            ContentLength=5,
        )

    async def test_upload_part_unknown_upload(self, client, mock_s3):
        """Test uploading into an aborted upload raises MultipartUploadNotFoundError."""
        mock_s3.upload_part.side_effect = _client_error("NoSuchUpload", "UploadPart")

        with pytest.raises(MultipartUploadNotFoundError):
            await client.upload_part(
                bucket="b", object_key="k", upload_id="u", part_number=1, body=b"x"
            )

    async def test_upload_part_missing_etag(self, client, mock_s3):
        """Test a response without ETag is rejected."""
        mock_s3.upload_part.return_value = {}

        with pytest.raises(StorageError, match="missing ETag"):
            await client.upload_part(
                bucket="b", object_key="k", upload_id="u", part_number=1, body=b"x"
            )

    async def test_complete_multipart_upload(self, client, mock_s3):
        """Test completing multipart upload."""
        parts = [
            CompletedPart(part_number=2, etag="etag2"),
            CompletedPart(part_number=1, etag="etag1"),
        ]

        await client.complete_multipart_upload(
            bucket="test-bucket",
            object_key="files/abc",
            upload_id="test-upload-id",
            parts=parts,
        )

        # Verify the parts are sorted by part_number
        call_args = mock_s3.complete_multipart_upload.call_args
        assert call_args[1]["Bucket"] == "test-bucket"
        assert call_args[1]["Key"] == "files/abc"
        assert call_args[1]["UploadId"] == "test-upload-id"
        assert call_args[1]["MultipartUpload"]["Parts"] == [
            {"ETag": "etag1", "PartNumber": 1},
            {"ETag": "etag2", "PartNumber": 2},
        ]

    async def test_complete_unknown_upload(self, client, mock_s3):
        """Test completing an upload S3 no longer knows."""
        mock_s3.complete_multipart_upload.side_effect = _client_error("NoSuchUpload")

        with pytest.raises(MultipartUploadNotFoundError):
            await client.complete_multipart_upload(
                bucket="b", object_key="k", upload_id="u", parts=[]
            )

    async def test_abort_multipart_upload(self, client, mock_s3):
        """Test aborting multipart upload."""
        aborted = await client.abort_multipart_upload(
            bucket="test-bucket",
            object_key="files/abc",
            upload_id="test-upload-id",
        )

        assert aborted is True
        mock_s3.abort_multipart_upload.assert_called_once_with(
            Bucket="test-bucket",
            Key="files/abc",
            UploadId="test-upload-id",
        )

    async def test_abort_unknown_upload_returns_false(self, client, mock_s3):
        """Test aborting an upload that is already gone."""
        mock_s3.abort_multipart_upload.side_effect = _client_error("NoSuchUpload")

        assert await client.abort_multipart_upload(
            bucket="b", object_key="k", upload_id="u"
        ) is False

    async def test_abort_failure(self, client, mock_s3):
        """Test other abort failures raise StorageError."""
        mock_s3.abort_multipart_upload.side_effect = _client_error("AccessDenied")

        with pytest.raises(StorageError, match="Failed to abort multipart upload"):
            await client.abort_multipart_upload(bucket="b", object_key="k", upload_id="u")

    async def test_list_multipart_uploads_pages(self, client, mock_s3):
        """Test listing walks every page lazily."""
        initiated = datetime(2024, 1, 1, tzinfo=timezone.utc)
        paginator = mock_s3.get_paginator.return_value
        paginator.paginate.return_value = [
            {"Uploads": [{"Key": "files/a", "UploadId": "u1", "Initiated": initiated}]},
            {"Uploads": [{"Key": "files/b", "UploadId": "u2"}]},
            {},
        ]

        uploads = [
            upload
            async for upload in client.list_multipart_uploads(
                bucket="test-bucket", prefix="files/", page_size=2
            )
        ]

        assert [u.upload_id for u in uploads] == ["u1", "u2"]
        assert uploads[0].initiated == initiated
        assert uploads[1].initiated is None
        mock_s3.get_paginator.assert_called_once_with("list_multipart_uploads")
        paginator.paginate.assert_called_once_with(
            Bucket="test-bucket",
            Prefix="files/",
            Delimiter="/",
            PaginationConfig={"PageSize": 2},
        )

    async def test_list_objects(self, client, mock_s3):
        """Test listing objects below a prefix."""
        mock_s3.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "upload-info/a", "Size": 10}]},
            {"Contents": [{"Key": "upload-info/b", "Size": 20}]},
        ]

        items = [
            item
            async for item in client.list_objects(
                bucket="test-bucket", prefix="upload-info/", page_size=1000
            )
        ]

        assert [(i.object_key, i.size_bytes) for i in items] == [
            ("upload-info/a", 10),
            ("upload-info/b", 20),
        ]
        mock_s3.get_paginator.assert_called_once_with("list_objects_v2")

    async def test_list_failure(self, client, mock_s3):
        """Test a failing page raises StorageError."""
        mock_s3.get_paginator.return_value.paginate.side_effect = _client_error(
            "AccessDenied"
        )

        with pytest.raises(StorageError):
            async for _ in client.list_objects(bucket="b", prefix="p/", page_size=10):
                pass

    async def test_put_object_if_absent(self, client, mock_s3):
        """Test conditional put sends IfNoneMatch."""
        await client.put_object(
            bucket="test-bucket",
            object_key="upload-info/abc",
            body=b"{}",
            content_type="application/json",
            if_absent=True,
        )

        mock_s3.put_object.assert_called_once_with(
            Bucket="test-bucket",
            Key="upload-info/abc",
            Body=b"{}",
            ContentType="application/json",
            IfNoneMatch="*",
        )

    async def test_put_object_if_absent_conflict(self, client, mock_s3):
        """Test a failed precondition becomes ObjectExistsError."""
        mock_s3.put_object.side_effect = _client_error("PreconditionFailed")

        with pytest.raises(ObjectExistsError):
            await client.put_object(bucket="b", object_key="k", body=b"", if_absent=True)

    async def test_put_object_failure(self, client, mock_s3):
        """Test an unconditional put failure raises StorageError."""
        mock_s3.put_object.side_effect = _client_error("PreconditionFailed")

        with pytest.raises(StorageError, match="Failed to put object"):
            await client.put_object(bucket="b", object_key="k", body=b"")

    async def test_get_object(self, client, mock_s3):
        """Test reading a whole object."""
        mock_s3.get_object.return_value = {"Body": io.BytesIO(b"content")}

        assert await client.get_object(bucket="b", object_key="k") == b"content"

    async def test_get_object_not_found(self, client, mock_s3):
        """Test reading a missing object returns None."""
        mock_s3.get_object.side_effect = _client_error("NoSuchKey")

        assert await client.get_object(bucket="b", object_key="k") is None

    async def test_iter_object_chunks(self, client, mock_s3):
        """Test streaming an object in chunks."""
        mock_s3.get_object.return_value = {"Body": io.BytesIO(b"abcdefg")}

        chunks = [
            chunk
            async for chunk in client.iter_object(bucket="b", object_key="k", chunk_size=3)
        ]

        assert chunks == [b"abc", b"def", b"g"]

    async def test_iter_object_not_found(self, client, mock_s3):
        """Test streaming a missing object raises ObjectNotFoundError."""
        mock_s3.get_object.side_effect = _client_error("NoSuchKey")

        with pytest.raises(ObjectNotFoundError):
            async for _ in client.iter_object(bucket="b", object_key="k", chunk_size=3):
                pass

    async def test_head_object(self, client, mock_s3):
        """Test getting object metadata."""
        mock_s3.head_object.return_value = {
            "ContentLength": 1024,
            "ETag": '"test-etag"',
            "ContentType": "application/pdf",
            "Metadata": {"file-id": "abc"},
        }

        result = await client.head_object(bucket="test-bucket", object_key="files/abc")

        assert result is not None
        assert result.size_bytes == 1024
        assert result.etag == '"test-etag"'
        assert result.content_type == "application/pdf"
        assert result.metadata == {"file-id": "abc"}

    async def test_head_object_not_found(self, client, mock_s3):
        """Test getting metadata for non-existent object."""
        mock_s3.head_object.side_effect = _client_error("404", "HeadObject")

        result = await client.head_object(bucket="test-bucket", object_key="missing")

        assert result is None

    async def test_head_object_other_error(self, client, mock_s3):
        """Test other head failures raise StorageError."""
        mock_s3.head_object.side_effect = _client_error("AccessDenied", "HeadObject")

        with pytest.raises(StorageError, match="Failed to get object metadata"):
            await client.head_object(bucket="test-bucket", object_key="key")

    async def test_delete_object(self, client, mock_s3):
        """Test deleting an object."""
        await client.delete_object(bucket="test-bucket", object_key="files/abc")

        mock_s3.delete_object.assert_called_once_with(
            Bucket="test-bucket", Key="files/abc"
        )

    async def test_connection_failure_is_unavailable(self, client, mock_s3):
        """Test network failures raise StorageUnavailableError."""
        mock_s3.delete_object.side_effect = EndpointConnectionError(
            endpoint_url="http://localhost:9000"
        )

        with pytest.raises(StorageUnavailableError, match="Failed to delete object"):
            await client.delete_object(bucket="b", object_key="k")
