"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
Aliyun OSS (through its S3-compatible API), AWS S3, MinIO and other
S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence
from urllib.parse import quote, urlencode, urlsplit

import boto3
from botocore.config import Config

from upload_gateway.infra.storage.client import (
    CompletedPart,
    CompletedUpload,
    MultipartUpload,
    StorageError,
)

if TYPE_CHECKING:
    from upload_gateway.common.config import Settings

# Response overrides signed into every part URL so the browser's direct PUT
# gets permissive CORS headers and can read the part ETag.
PART_RESPONSE_PARAMS: tuple[tuple[str, str], ...] = (
    ("response-content-type", "application/json"),
    ("response-expires", "0"),
    ("response-cache-control", "no-cache"),
    ("response-access-control-allow-headers", "*"),
    ("response-access-control-expose-headers", "ETag,x-oss-request-id"),
)


def endpoint_url(endpoint: str, *, use_ssl: bool = True) -> str:
    """Return ``endpoint`` as an absolute URL, adding a scheme to bare hosts."""
    cleaned = endpoint.strip().rstrip("/")
    if "://" in cleaned:
        return cleaned
    scheme = "https" if use_ssl else "http"
    return f"{scheme}://{cleaned}"


def add_part_response_params(request: Any, **kwargs: Any) -> None:
    """botocore ``before-sign`` hook appending PART_RESPONSE_PARAMS to the URL."""
    separator = "&" if urlsplit(request.url).query else "?"
    request.url = f"{request.url}{separator}{urlencode(PART_RESPONSE_PARAMS)}"


class S3StorageClient:
    """S3-compatible object storage client.

    Uses boto3 for all storage operations. Signing of presigned URLs is a
    local computation; only init and complete talk to the provider.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Application settings containing storage configuration.

        Raises:
            StorageError: If the boto3 client cannot be constructed.
        """
        self._settings = settings
        self._endpoint = endpoint_url(
            settings.ALIYUN_OSS_ENDPOINT or "",
            use_ssl=bool(settings.ALIYUN_OSS_USE_SSL),
        )
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        addressing_style = (
            (settings.ALIYUN_OSS_ADDRESSING_STYLE or "virtual").strip().lower()
        )
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": addressing_style},
        )

        try:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url(
                    settings.ALIYUN_OSS_ENDPOINT or "",
                    use_ssl=bool(settings.ALIYUN_OSS_USE_SSL),
                ),
                region_name=settings.ALIYUN_OSS_REGION,
                aws_access_key_id=settings.ALIYUN_OSS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.ALIYUN_OSS_ACCESS_KEY_SECRET,
                config=config,
            )
        except Exception as exc:
            raise StorageError(f"Failed to create storage client: {exc}") from exc

        client.meta.events.register(
            "before-sign.s3.UploadPart", add_part_response_params
        )
        return client

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        try:
            response = self._client.create_multipart_upload(
                Bucket=bucket, Key=object_key
            )
        except Exception as exc:
            raise StorageError(f"Failed to create multipart upload: {exc}") from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=str(response.get("Bucket") or bucket),
            object_key=str(response.get("Key") or object_key),
        )

    def presign_upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        expires_in: int,
    ) -> str:
        """Generate a presigned PUT URL for uploading a part."""
        try:
            url = self._client.generate_presigned_url(
                "upload_part",
                Params={
                    "Bucket": bucket,
                    "Key": object_key,
                    "UploadId": upload_id,
                    "PartNumber": int(part_number),
                },
                ExpiresIn=int(expires_in),
                HttpMethod="PUT",
            )
        except Exception as exc:
            raise StorageError(f"Failed to generate presigned URL: {exc}") from exc

        if not url:
            raise StorageError("Generated presigned URL is empty")

        return str(url)

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> CompletedUpload:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in parts
            ]
        }

        try:
            response = self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            raise StorageError(f"Failed to complete multipart upload: {exc}") from exc

        return CompletedUpload(
            location=str(response.get("Location") or ""),
            bucket=str(response.get("Bucket") or bucket),
            object_key=str(response.get("Key") or object_key),
            etag=str(response.get("ETag") or ""),
        )

    def presign_download(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
        filename: str | None = None,
    ) -> str:
        """Generate a presigned URL for downloading an object."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if filename:
            # Escape quotes in filename for Content-Disposition header
            safe_filename = filename.replace('"', '\\"')
            params["ResponseContentDisposition"] = (
                f'attachment; filename="{safe_filename}"'
            )

        try:
            url = self._client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=int(expires_in),
            )
        except Exception as exc:
            raise StorageError(f"Failed to generate download URL: {exc}") from exc

        if not url:
            raise StorageError("Generated presigned URL is empty")

        return str(url)

    def object_url(self, *, bucket: str, object_key: str) -> str:
        """Build the virtual-hosted URL of an object, without credentials."""
        parts = urlsplit(self._endpoint)
        return f"{parts.scheme}://{bucket}.{parts.netloc}/{quote(object_key, safe='/')}"
