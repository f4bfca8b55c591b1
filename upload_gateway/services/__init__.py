from .base import ServiceError, UpstreamError, ValidationError
from .upload_service import (
    PartUploadUrl,
    StorageBackendNotConfiguredError,
    UploadCompletion,
    UploadService,
    build_upload_service,
    generate_object_key,
    normalize_etag,
    normalize_parts,
    parse_part_number,
)

__all__ = [
    "ServiceError",
    "UpstreamError",
    "ValidationError",
    "PartUploadUrl",
    "StorageBackendNotConfiguredError",
    "UploadCompletion",
    "UploadService",
    "build_upload_service",
    "generate_object_key",
    "normalize_etag",
    "normalize_parts",
    "parse_part_number",
]
