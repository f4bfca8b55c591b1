import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from upload_gateway.api.routers.uploads import router as uploads_router
from upload_gateway.common.config import Settings, get_settings
from upload_gateway.common.logging import setup_logging
from upload_gateway.infra.observability.metrics import metrics_app
from upload_gateway.infra.observability.middleware import MetricsMiddleware
from upload_gateway.infra.storage.client import StorageClient, StorageError
from upload_gateway.infra.storage.s3_client import endpoint_url
from upload_gateway.services.upload_service import (
    StorageBackendNotConfiguredError,
    build_upload_service,
)

ERROR_CODE_BY_STATUS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
    415: "unsupported_media_type",
    429: "too_many_requests",
    500: "internal_error",
    502: "bad_gateway",
    503: "service_unavailable",
}


def _resolve_error_code(status_code: int) -> str:
    return ERROR_CODE_BY_STATUS.get(status_code, "unknown_error")


def _format_validation_errors(errors) -> str:
    messages: list[str] = []
    for error in errors:
        loc = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        msg = error.get("msg", "invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages) or "invalid request"


def _describe_storage_target(settings: Settings) -> str:
    key_id = settings.ALIYUN_OSS_ACCESS_KEY_ID
    preview = f"{key_id[:4]}***" if key_id else "<missing>"
    endpoint = settings.ALIYUN_OSS_ENDPOINT
    parts = [
        "endpoint="
        + (
            endpoint_url(endpoint, use_ssl=settings.ALIYUN_OSS_USE_SSL)
            if endpoint
            else "<missing>"
        ),
        f"bucket={settings.ALIYUN_OSS_BUCKET_NAME or '<missing>'}",
        f"access_key_id={preview}",
    ]
    if settings.ALIYUN_OSS_REGION:
        parts.append(f"region={settings.ALIYUN_OSS_REGION}")
    return ", ".join(parts)


def create_app(
    settings: Settings | None = None,
    *,
    storage_client: StorageClient | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)
    startup_logger = logging.getLogger("upload_gateway.startup")

    storage_context = _describe_storage_target(settings)
    try:
        upload_service = build_upload_service(settings, storage_client=storage_client)
    except (StorageBackendNotConfiguredError, StorageError) as exc:
        startup_logger.error(
            "Storage client could not be configured, refusing to start."
            " [event=storage_config_failed] (%s, error=%s)",
            storage_context,
            exc,
        )
        raise
    startup_logger.info(
        "Storage client ready. [event=storage_configured] (%s)", storage_context
    )

    app = FastAPI(
        title="Upload Gateway",
        version="1.0",
        description="Brokers browser multipart uploads directly to object storage",
    )
    app.state.settings = settings
    app.state.upload_service = upload_service

    # Optional CORS
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.CORS_ORIGINS) or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(uploads_router, prefix=settings.ROUTE_PREFIX, tags=["uploads"])

    # Metrics
    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware, trace_http=settings.TRACE_HTTP)
        app.mount("/metrics", metrics_app)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger = logging.getLogger("http")
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "http_exception status=%s detail=%s method=%s path=%s request_id=%s",
            exc.status_code,
            exc.detail,
            request.method,
            request.url.path,
            request.headers.get("X-Request-Id"),
            extra={
                "extra": {
                    "status": exc.status_code,
                    "detail": exc.detail,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request.headers.get("X-Request-Id"),
                }
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "error_code": _resolve_error_code(exc.status_code),
                "status": exc.status_code,
                "request_id": request.headers.get("X-Request-Id"),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        errors = exc.errors()
        logging.getLogger("http").warning(
            "request_validation_failed method=%s path=%s errors=%s",
            request.method,
            request.url.path,
            len(errors),
        )
        return JSONResponse(
            status_code=400,
            content={
                "error": _format_validation_errors(errors),
                "error_code": _resolve_error_code(400),
                "status": 400,
                "detail": jsonable_encoder(errors),
                "request_id": request.headers.get("X-Request-Id"),
            },
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
