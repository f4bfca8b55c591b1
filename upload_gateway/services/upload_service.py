"""Upload service brokering direct-to-storage multipart uploads.

The service never sees file bytes. It starts a multipart upload on the
provider, signs one PUT URL per part for the browser, and commits the upload
once the browser reports the part ETags back.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from upload_gateway.common.config import Settings
from upload_gateway.infra.observability.metrics import UPLOAD_OPERATIONS
from upload_gateway.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    StorageClient,
    StorageError,
)
from upload_gateway.infra.storage.s3_client import S3StorageClient
from upload_gateway.services.base import UpstreamError, ValidationError

logger = logging.getLogger("upload_gateway.uploads")

DEFAULT_KEY_PREFIX = "uploads/"


class StorageBackendNotConfiguredError(Exception):
    """Raised when the storage backend is not properly configured."""


@dataclass(frozen=True, slots=True)
class PartUploadUrl:
    """Presigned URL for uploading one part."""

    upload_id: str
    bucket: str
    object_key: str
    part_number: int
    url: str
    expiration_time: int


@dataclass(frozen=True, slots=True)
class UploadCompletion:
    """Result of committing a multipart upload."""

    location: str
    bucket: str
    key: str
    etag: str
    private_url: str
    public_url: str
    expiration: int


def _sanitize_filename(filename: str) -> str:
    """Sanitize filename by removing path separators."""
    cleaned = filename.strip().replace("\\", "_").replace("/", "_")
    return cleaned or "file"


def _normalize_prefix(prefix: str) -> str:
    cleaned = prefix.strip().lstrip("/")
    if cleaned and not cleaned.endswith("/"):
        cleaned += "/"
    return cleaned


def generate_object_key(
    filename: str,
    *,
    prefix: str = DEFAULT_KEY_PREFIX,
    now_ns: int | None = None,
) -> str:
    """Build a collision-resistant key: ``<prefix><YYYY_MM_DD>/<ns>_<name>``.

    The date partition is derived from the same nanosecond timestamp, in
    local time. Two calls collide only for the same name in the same
    nanosecond.
    """
    timestamp_ns = time.time_ns() if now_ns is None else now_ns
    day = datetime.fromtimestamp(timestamp_ns / 1_000_000_000).strftime("%Y_%m_%d")
    return (
        f"{_normalize_prefix(prefix)}{day}/{timestamp_ns}_{_sanitize_filename(filename)}"
    )


def normalize_etag(etag: str) -> str:
    """Strip wrapping double quotes; already bare ETags are returned unchanged."""
    return etag.strip('"')


def normalize_parts(parts: Iterable[CompletedPart]) -> list[CompletedPart]:
    """Sort parts by part number (stable) and strip quotes from their ETags."""
    return [
        CompletedPart(part_number=part.part_number, etag=normalize_etag(part.etag))
        for part in sorted(parts, key=lambda p: p.part_number)
    ]


def require_param(name: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{name} is required")
    return value


def parse_part_number(raw: str | None) -> int:
    """Parse a non-negative decimal part number from a query string value."""
    value = (raw or "").strip()
    if not value or not (value.isascii() and value.isdigit()):
        raise ValidationError("invalid partNumber")
    return int(value)


class UploadService:
    """Adapter between the HTTP handlers and the storage provider.

    Holds the configured storage client and bucket. Safe to share across
    concurrent requests: nothing here is mutated after construction.
    """

    def __init__(self, *, storage: StorageClient, settings: Settings) -> None:
        self._storage = storage
        self._settings = settings
        self._bucket = settings.ALIYUN_OSS_BUCKET_NAME or ""

    @property
    def bucket(self) -> str:
        return self._bucket

    def initiate_upload(self, filename: str | None) -> MultipartUpload:
        """Start a multipart upload for a freshly derived object key.

        Raises:
            ValidationError: If ``filename`` is missing or blank.
            UpstreamError: If the provider rejects the request.
        """
        filename = require_param("filename", filename)
        object_key = generate_object_key(
            filename, prefix=self._settings.UPLOAD_KEY_PREFIX
        )
        try:
            upload = self._storage.init_multipart_upload(
                bucket=self._bucket, object_key=object_key
            )
        except StorageError as exc:
            self._record_failure("init", exc, object_key=object_key)
            raise UpstreamError(str(exc)) from exc

        UPLOAD_OPERATIONS.labels("init", "success").inc()
        logger.info(
            "multipart_upload_initiated bucket=%s object_key=%s upload_id=%s",
            upload.bucket,
            upload.object_key,
            upload.upload_id,
            extra={
                "extra": {
                    "bucket": upload.bucket,
                    "object_key": upload.object_key,
                    "upload_id": upload.upload_id,
                }
            },
        )
        return upload

    def sign_part_upload_url(
        self,
        upload_id: str,
        object_key: str,
        part_number: int,
        *,
        expires_in: int | None = None,
    ) -> PartUploadUrl:
        """Sign a PUT URL for one part of an in-progress upload."""
        upload_id = require_param("uploadId", upload_id)
        object_key = require_param("objectKey", object_key)
        if part_number < 0:
            raise ValidationError("invalid partNumber")

        ttl = int(expires_in or self._settings.PART_URL_EXPIRES_SECONDS)
        expiration_time = int(time.time()) + ttl
        try:
            url = self._storage.presign_upload_part(
                bucket=self._bucket,
                object_key=object_key,
                upload_id=upload_id,
                part_number=part_number,
                expires_in=ttl,
            )
        except StorageError as exc:
            self._record_failure("part_url", exc, object_key=object_key)
            raise UpstreamError(str(exc)) from exc

        UPLOAD_OPERATIONS.labels("part_url", "success").inc()
        return PartUploadUrl(
            upload_id=upload_id,
            bucket=self._bucket,
            object_key=object_key,
            part_number=part_number,
            url=url,
            expiration_time=expiration_time,
        )

    def complete_upload(
        self,
        upload_id: str,
        object_key: str,
        parts: Iterable[CompletedPart],
    ) -> UploadCompletion:
        """Commit the upload and mint the URLs the client needs afterwards.

        Not safely repeatable: providers invalidate the upload id on success.

        Raises:
            ValidationError: If identifiers or parts are missing.
            UpstreamError: If the commit or the public URL signing fails.
        """
        upload_id = require_param("uploadId", upload_id)
        object_key = require_param("objectKey", object_key)
        normalized = normalize_parts(parts)
        if not normalized:
            raise ValidationError("parts must not be empty")

        try:
            completed = self._storage.complete_multipart_upload(
                bucket=self._bucket,
                object_key=object_key,
                upload_id=upload_id,
                parts=normalized,
            )
        except StorageError as exc:
            self._record_failure("complete", exc, object_key=object_key)
            raise UpstreamError(str(exc)) from exc

        private_url = self._storage.object_url(
            bucket=self._bucket, object_key=object_key
        )
        ttl = int(self._settings.PUBLIC_URL_EXPIRES_SECONDS)
        expiration = int(time.time()) + ttl
        public_url = self.sign_public_url(object_key, expires_in=ttl)

        UPLOAD_OPERATIONS.labels("complete", "success").inc()
        logger.info(
            "multipart_upload_completed bucket=%s object_key=%s upload_id=%s parts=%s",
            completed.bucket,
            completed.object_key,
            upload_id,
            len(normalized),
            extra={
                "extra": {
                    "bucket": completed.bucket,
                    "object_key": completed.object_key,
                    "upload_id": upload_id,
                    "parts": len(normalized),
                }
            },
        )
        return UploadCompletion(
            location=completed.location,
            bucket=completed.bucket,
            key=completed.object_key,
            etag=normalize_etag(completed.etag),
            private_url=private_url,
            public_url=public_url,
            expiration=expiration,
        )

    def sign_public_url(self, object_key: str, *, expires_in: int | None = None) -> str:
        """Sign a short-lived GET URL that downloads the object as an attachment."""
        ttl = int(expires_in or self._settings.PUBLIC_URL_EXPIRES_SECONDS)
        try:
            return self._storage.presign_download(
                bucket=self._bucket,
                object_key=object_key,
                expires_in=ttl,
                filename=object_key,
            )
        except StorageError as exc:
            self._record_failure("public_url", exc, object_key=object_key)
            raise UpstreamError(str(exc)) from exc

    @staticmethod
    def _record_failure(operation: str, exc: Exception, *, object_key: str) -> None:
        UPLOAD_OPERATIONS.labels(operation, "error").inc()
        logger.warning(
            "storage_operation_failed operation=%s object_key=%s error=%s",
            operation,
            object_key,
            exc,
            extra={
                "extra": {
                    "operation": operation,
                    "object_key": object_key,
                    "error": str(exc),
                }
            },
        )


def build_upload_service(
    settings: Settings,
    *,
    storage_client: StorageClient | None = None,
) -> UploadService:
    """Validate storage settings and wire the upload service.

    Raises:
        StorageBackendNotConfiguredError: If a required setting is missing.
        StorageError: If the storage client cannot be constructed.
    """
    missing = [
        name
        for name in (
            "ALIYUN_OSS_ENDPOINT",
            "ALIYUN_OSS_ACCESS_KEY_ID",
            "ALIYUN_OSS_ACCESS_KEY_SECRET",
            "ALIYUN_OSS_BUCKET_NAME",
        )
        if not getattr(settings, name)
    ]
    if missing:
        raise StorageBackendNotConfiguredError(
            f"{', '.join(missing)} must be set"
        )
    storage = storage_client or S3StorageClient(settings=settings)
    return UploadService(storage=storage, settings=settings)
