"""Upload API router.

Three steps of a browser-driven multipart upload (init, part-url, complete)
plus the static page that drives them. File bytes never pass through here.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse

from upload_gateway.api.deps import get_app_settings, get_upload_service
from upload_gateway.api.schemas.uploads import (
    CompleteUploadIn,
    CompleteUploadOut,
    InitUploadOut,
    PartUrlOut,
)
from upload_gateway.common.config import Settings
from upload_gateway.infra.storage.client import CompletedPart
from upload_gateway.services.base import UpstreamError, ValidationError
from upload_gateway.services.upload_service import UploadService, parse_part_number

router = APIRouter()

UPLOAD_PAGE_PATH = Path(__file__).resolve().parents[2] / "static" / "upload.html"
GENERIC_UPSTREAM_MESSAGE = "storage provider request failed"


@lru_cache(maxsize=1)
def _load_upload_page() -> str:
    return UPLOAD_PAGE_PATH.read_text(encoding="utf-8")


def _upstream_http_error(exc: UpstreamError, settings: Settings) -> HTTPException:
    detail = str(exc) if settings.EXPOSE_UPSTREAM_ERRORS else GENERIC_UPSTREAM_MESSAGE
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail
    )


@router.get(
    "/upload",
    response_class=HTMLResponse,
    summary="Upload page",
    description="Browser page that uploads a file in parts directly to storage.",
)
def upload_page() -> HTMLResponse:
    return HTMLResponse(_load_upload_page())


@router.get(
    "/upload/init",
    response_model=InitUploadOut,
    summary="Initialize multipart upload",
    description="Derive a unique object key and start a multipart upload on it.",
)
def init_upload(
    filename: str | None = Query(default=None),
    service: UploadService = Depends(get_upload_service),
    settings: Settings = Depends(get_app_settings),
) -> InitUploadOut:
    try:
        upload = service.initiate_upload(filename)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UpstreamError as exc:
        raise _upstream_http_error(exc, settings) from exc

    return InitUploadOut(
        upload_id=upload.upload_id,
        bucket_name=upload.bucket,
        object_key=upload.object_key,
    )


@router.get(
    "/upload/part-url",
    response_model=PartUrlOut,
    summary="Get presigned part URL",
    description="Sign a PUT URL, valid for one hour, for a single part.",
)
def part_upload_url(
    upload_id: str | None = Query(default=None, alias="uploadId"),
    object_key: str | None = Query(default=None, alias="objectKey"),
    part_number: str | None = Query(default=None, alias="partNumber"),
    service: UploadService = Depends(get_upload_service),
    settings: Settings = Depends(get_app_settings),
) -> PartUrlOut:
    try:
        number = parse_part_number(part_number)
        signed = service.sign_part_upload_url(
            upload_id or "",
            object_key or "",
            number,
            expires_in=settings.PART_URL_EXPIRES_SECONDS,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UpstreamError as exc:
        raise _upstream_http_error(exc, settings) from exc

    return PartUrlOut(
        upload_id=signed.upload_id,
        bucket_name=signed.bucket,
        object_key=signed.object_key,
        part_number=signed.part_number,
        upload_url=signed.url,
        expiration_time=signed.expiration_time,
    )


@router.post(
    "/upload/complete",
    response_model=CompleteUploadOut,
    summary="Complete multipart upload",
    description="Commit the uploaded parts and return the object URLs.",
)
def complete_upload(
    payload: CompleteUploadIn,
    service: UploadService = Depends(get_upload_service),
    settings: Settings = Depends(get_app_settings),
) -> CompleteUploadOut:
    parts = [
        CompletedPart(part_number=p.part_number, etag=p.etag) for p in payload.parts
    ]
    try:
        result = service.complete_upload(payload.upload_id, payload.object_key, parts)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UpstreamError as exc:
        raise _upstream_http_error(exc, settings) from exc

    return CompleteUploadOut(
        location=result.location,
        bucket=result.bucket,
        key=result.key,
        etag=result.etag,
        private_url=result.private_url,
        public_url=result.public_url,
        expiration=result.expiration,
    )
