"""Pydantic schemas for the upload API endpoints.

Field names are snake_case in Python; the wire format uses the camelCase
aliases the browser upload page expects.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class InitUploadOut(_WireModel):
    """Response model for multipart upload initialization."""

    upload_id: str = Field(alias="uploadId")
    bucket_name: str = Field(alias="bucketName")
    object_key: str = Field(alias="objectKey")


class PartUrlOut(_WireModel):
    """Response model for a presigned part URL."""

    upload_id: str = Field(alias="uploadId")
    bucket_name: str = Field(alias="bucketName")
    object_key: str = Field(alias="objectKey")
    part_number: int = Field(alias="partNumber")
    upload_url: str = Field(alias="uploadUrl")
    expiration_time: int = Field(alias="expirationTime")


class CompletedPartIn(_WireModel):
    """Information about a part the client uploaded."""

    part_number: int = Field(alias="partNumber", ge=1)
    etag: str = Field(alias="eTag")


class CompleteUploadIn(_WireModel):
    """Request body for completing a multipart upload."""

    upload_id: str = Field(alias="uploadId", min_length=1)
    object_key: str = Field(alias="objectKey", min_length=1)
    parts: list[CompletedPartIn] = Field(min_length=1)


class CompleteUploadOut(_WireModel):
    """Response model for a committed upload."""

    location: str
    bucket: str
    key: str
    etag: str = Field(alias="eTag")
    private_url: str = Field(alias="privateURL")
    public_url: str = Field(alias="publicURL")
    expiration: int
