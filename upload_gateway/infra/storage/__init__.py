"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends.
The bundled implementation talks to Aliyun OSS, AWS S3, MinIO and other
S3-compatible services through boto3.
"""

from .client import (
    CompletedPart,
    CompletedUpload,
    MultipartUpload,
    StorageClient,
    StorageError,
)

__all__ = [
    "CompletedPart",
    "CompletedUpload",
    "MultipartUpload",
    "StorageClient",
    "StorageError",
]
