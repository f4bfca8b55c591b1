from __future__ import annotations


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class ValidationError(ServiceError):
    """Raised when client input is missing or malformed."""


class UpstreamError(ServiceError):
    """Raised when the storage provider rejects or fails a request."""
