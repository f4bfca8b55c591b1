"""Tests for S3 storage client."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import pytest

from upload_gateway.infra.storage.client import (
    CompletedPart,
    CompletedUpload,
    MultipartUpload,
    StorageError,
)
from upload_gateway.infra.storage.s3_client import (
    PART_RESPONSE_PARAMS,
    S3StorageClient,
    add_part_response_params,
    endpoint_url,
)


class TestEndpointUrl:
    def test_bare_host_gets_https(self):
        assert (
            endpoint_url("oss-cn-hangzhou.aliyuncs.com")
            == "https://oss-cn-hangzhou.aliyuncs.com"
        )

    def test_bare_host_gets_http_without_ssl(self):
        assert endpoint_url("localhost:9000/", use_ssl=False) == "http://localhost:9000"

    def test_explicit_scheme_is_kept(self):
        assert endpoint_url("http://minio:9000") == "http://minio:9000"


class TestAddPartResponseParams:
    def test_appends_to_existing_query(self):
        request = SimpleNamespace(url="https://b.host/k?uploadId=u&partNumber=1")

        add_part_response_params(request)

        query = parse_qs(urlsplit(request.url).query)
        assert query["uploadId"] == ["u"]
        assert query["partNumber"] == ["1"]
        for name, value in PART_RESPONSE_PARAMS:
            assert query[name] == [value]

    def test_starts_query_when_missing(self):
        request = SimpleNamespace(url="https://b.host/k")

        add_part_response_params(request)

        assert request.url.startswith("https://b.host/k?response-content-type=")


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
        """Create mock settings for the storage endpoint."""
        settings = MagicMock()
        settings.ALIYUN_OSS_ENDPOINT = "oss-cn-hangzhou.aliyuncs.com"
        settings.ALIYUN_OSS_REGION = "oss-cn-hangzhou"
        settings.ALIYUN_OSS_ACCESS_KEY_ID = "test-key"
        settings.ALIYUN_OSS_ACCESS_KEY_SECRET = "test-secret"
        settings.ALIYUN_OSS_USE_SSL = True
        settings.ALIYUN_OSS_ADDRESSING_STYLE = "virtual"
        return settings

    @pytest.fixture
    def client(self, mock_s3, mock_settings):
        """Create S3StorageClient with mocked boto3."""
        return S3StorageClient(settings=mock_settings)

    def test_init_multipart_upload(self, client, mock_s3):
        mock_s3.create_multipart_upload.return_value = {
            "UploadId": "test-upload-id",
            "Bucket": "test-bucket",
            "Key": "test/key",
        }

        result = client.init_multipart_upload(bucket="test-bucket", object_key="test/key")

        assert result == MultipartUpload(
            upload_id="test-upload-id", bucket="test-bucket", object_key="test/key"
        )
        mock_s3.create_multipart_upload.assert_called_once_with(
            Bucket="test-bucket", Key="test/key"
        )

    def test_init_multipart_upload_falls_back_to_request_values(self, client, mock_s3):
        mock_s3.create_multipart_upload.return_value = {"UploadId": "u"}

        result = client.init_multipart_upload(bucket="b", object_key="k")

        assert result.bucket == "b"
        assert result.object_key == "k"

    def test_init_multipart_upload_missing_upload_id(self, client, mock_s3):
        mock_s3.create_multipart_upload.return_value = {}

        with pytest.raises(StorageError, match="S3 response missing UploadId"):
            client.init_multipart_upload(bucket="test-bucket", object_key="test/key")

    def test_init_multipart_upload_exception(self, client, mock_s3):
        mock_s3.create_multipart_upload.side_effect = Exception("InvalidAccessKeyId")

        with pytest.raises(
            StorageError, match="Failed to create multipart upload: InvalidAccessKeyId"
        ):
            client.init_multipart_upload(bucket="test-bucket", object_key="test/key")

    def test_presign_upload_part(self, client, mock_s3):
        mock_s3.generate_presigned_url.return_value = "https://presigned-url"

        url = client.presign_upload_part(
            bucket="test-bucket",
            object_key="test/key",
            upload_id="test-upload-id",
            part_number=1,
            expires_in=3600,
        )

        assert url == "https://presigned-url"
        mock_s3.generate_presigned_url.assert_called_once_with(
            "upload_part",
            Params={
                "Bucket": "test-bucket",
                "Key": "test/key",
                "UploadId": "test-upload-id",
                "PartNumber": 1,
            },
            ExpiresIn=3600,
            HttpMethod="PUT",
        )

    def test_presign_upload_part_exception(self, client, mock_s3):
        mock_s3.generate_presigned_url.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to generate presigned URL"):
            client.presign_upload_part(
                bucket="test-bucket",
                object_key="test/key",
                upload_id="test-upload-id",
                part_number=1,
                expires_in=3600,
            )

    def test_presign_upload_part_empty_url(self, client, mock_s3):
        mock_s3.generate_presigned_url.return_value = ""

        with pytest.raises(StorageError, match="Generated presigned URL is empty"):
            client.presign_upload_part(
                bucket="test-bucket",
                object_key="test/key",
                upload_id="test-upload-id",
                part_number=1,
                expires_in=3600,
            )

    def test_complete_multipart_upload(self, client, mock_s3):
        mock_s3.complete_multipart_upload.return_value = {
            "Location": "https://test-bucket.oss-cn-hangzhou.aliyuncs.com/test/key",
            "ETag": '"test-etag"',
            "Bucket": "test-bucket",
            "Key": "test/key",
        }
        parts = [
            CompletedPart(part_number=1, etag="etag1"),
            CompletedPart(part_number=2, etag="etag2"),
        ]

        result = client.complete_multipart_upload(
            bucket="test-bucket",
            object_key="test/key",
            upload_id="test-upload-id",
            parts=parts,
        )

        assert result == CompletedUpload(
            location="https://test-bucket.oss-cn-hangzhou.aliyuncs.com/test/key",
            bucket="test-bucket",
            object_key="test/key",
            etag='"test-etag"',
        )
        call_args = mock_s3.complete_multipart_upload.call_args
        assert call_args[1]["UploadId"] == "test-upload-id"
        assert call_args[1]["MultipartUpload"]["Parts"] == [
            {"ETag": "etag1", "PartNumber": 1},
            {"ETag": "etag2", "PartNumber": 2},
        ]

    def test_complete_multipart_upload_exception(self, client, mock_s3):
        mock_s3.complete_multipart_upload.side_effect = Exception("InvalidPartOrder")

        with pytest.raises(StorageError, match="Failed to complete multipart upload"):
            client.complete_multipart_upload(
                bucket="test-bucket",
                object_key="test/key",
                upload_id="test-upload-id",
                parts=[CompletedPart(part_number=1, etag="etag1")],
            )

    def test_presign_download(self, client, mock_s3):
        mock_s3.generate_presigned_url.return_value = "https://download-url"

        url = client.presign_download(
            bucket="test-bucket",
            object_key="test/key",
            expires_in=10,
            filename='a "quoted" name',
        )

        assert url == "https://download-url"
        call_args = mock_s3.generate_presigned_url.call_args
        assert call_args[0] == ("get_object",)
        assert call_args[1]["ExpiresIn"] == 10
        assert (
            call_args[1]["Params"]["ResponseContentDisposition"]
            == 'attachment; filename="a \\"quoted\\" name"'
        )

    def test_presign_download_without_filename(self, client, mock_s3):
        mock_s3.generate_presigned_url.return_value = "https://download-url"

        client.presign_download(bucket="test-bucket", object_key="test/key", expires_in=10)

        call_args = mock_s3.generate_presigned_url.call_args
        assert "ResponseContentDisposition" not in call_args[1]["Params"]

    def test_presign_download_exception(self, client, mock_s3):
        mock_s3.generate_presigned_url.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to generate download URL"):
            client.presign_download(
                bucket="test-bucket", object_key="test/key", expires_in=10
            )

    def test_object_url_is_virtual_hosted(self, client):
        assert (
            client.object_url(bucket="test-bucket", object_key="uploads/a b.txt")
            == "https://test-bucket.oss-cn-hangzhou.aliyuncs.com/uploads/a%20b.txt"
        )


class TestS3StorageClientSigning:
    """Sign with a real boto3 client; presigning never touches the network."""

    @pytest.fixture
    def client(self, settings):
        return S3StorageClient(settings=settings)

    def test_part_url_is_signed_put_for_upload_and_part(self, client):
        url = client.presign_upload_part(
            bucket="test-bucket",
            object_key="uploads/2024_01_01/1_a.txt",
            upload_id="abc123",
            part_number=1,
            expires_in=3600,
        )

        parts = urlsplit(url)
        query = parse_qs(parts.query)
        assert parts.scheme == "https"
        assert parts.netloc == "test-bucket.oss-cn-hangzhou.aliyuncs.com"
        assert parts.path == "/uploads/2024_01_01/1_a.txt"
        assert query["uploadId"] == ["abc123"]
        assert query["partNumber"] == ["1"]
        assert query["X-Amz-Expires"] == ["3600"]
        assert "X-Amz-Signature" in query
        for name, value in PART_RESPONSE_PARAMS:
            assert query[name] == [value]

    def test_download_url_carries_attachment_disposition(self, client):
        url = client.presign_download(
            bucket="test-bucket",
            object_key="uploads/2024_01_01/1_a.txt",
            expires_in=10,
            filename="uploads/2024_01_01/1_a.txt",
        )

        query = parse_qs(urlsplit(url).query)
        assert query["X-Amz-Expires"] == ["10"]
        assert query["response-content-disposition"] == [
            'attachment; filename="uploads/2024_01_01/1_a.txt"'
        ]
        assert "X-Amz-Signature" in query
        assert "response-cache-control" not in query
