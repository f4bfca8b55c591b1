from __future__ import annotations

from fastapi import Request

from upload_gateway.common.config import Settings
from upload_gateway.services.upload_service import UploadService


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
