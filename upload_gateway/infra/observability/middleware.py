import json
import logging
import re
import time
import uuid
from typing import Any

from fastapi import Request
from starlette.concurrency import iterate_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from upload_gateway.infra.observability.metrics import LATENCY, REQUESTS

MAX_TRACED_BODY = 2048

logger = logging.getLogger("http")


class MetricsMiddleware(BaseHTTPMiddleware):
    # Presigned URLs grant access on their own, so they are masked like secrets
    SENSITIVE_KEYS = {
        "password",
        "secret",
        "token",
        "api_key",
        "x-api-key",
        "authorization",
        "uploadurl",
        "publicurl",
    }
    SENSITIVE_PATTERNS = (
        re.compile(
            r"(?i)(token|secret|api_key|x-api-key|password|authorization)\s*[:=]\s*[^\s]+"
        ),
        re.compile(r"(?i)x-amz-signature=[0-9a-f]+"),
    )

    def __init__(self, app, trace_http: bool = False) -> None:
        super().__init__(app)
        self.trace_http = trace_http

    def _mask_mapping(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            masked: dict[str, Any] = {}
            for k, v in obj.items():
                if isinstance(k, str) and k.lower() in self.SENSITIVE_KEYS:
                    masked[k] = "***"
                else:
                    masked[k] = self._mask_mapping(v)
            return masked
        if isinstance(obj, list):
            return [self._mask_mapping(x) for x in obj]
        return obj

    def _mask_text(self, text: str) -> str:
        masked = text
        for pattern in self.SENSITIVE_PATTERNS:
            masked = pattern.sub(
                lambda m: re.split(r"[:=]", m.group(0), maxsplit=1)[0] + "=***",
                masked,
            )
        return masked

    def _mask_body(self, raw_body: bytes) -> str:
        decoded = raw_body.decode("utf-8", errors="replace")
        try:
            parsed = json.loads(decoded)
        except ValueError:
            masked = self._mask_text(decoded)
        else:
            masked = json.dumps(self._mask_mapping(parsed), ensure_ascii=False)
        if len(masked) > MAX_TRACED_BODY:
            masked = masked[:MAX_TRACED_BODY] + "...<truncated>"
        return masked

    @staticmethod
    def _client_ip(request: Request) -> str | None:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        if request.client:
            return request.client.host
        return None

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        client_ip = self._client_ip(request)

        request_body: str | None = None
        if self.trace_http:
            raw_body = await request.body()
            if raw_body:
                request_body = self._mask_body(raw_body)

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - start
            logger.exception(
                "request_error method=%s route=%s status=%s duration_ms=%.3f "
                "request_id=%s client_ip=%s",
                request.method,
                request.url.path,
                500,
                round(elapsed * 1000, 3),
                request_id,
                client_ip or "-",
                extra={
                    "extra": {
                        "method": request.method,
                        "route": request.url.path,
                        "status": 500,
                        "duration_ms": round(elapsed * 1000, 3),
                        "request_id": request_id,
                        "client_ip": client_ip,
                        "exception": repr(exc),
                    }
                },
            )
            raise

        elapsed = time.perf_counter() - start
        status_code = response.status_code

        route_template = request.scope.get("route", None)
        if route_template and hasattr(route_template, "path"):
            route = route_template.path
        else:
            route = request.url.path

        REQUESTS.labels(request.method, route, str(status_code)).inc()
        LATENCY.labels(request.method, route).observe(elapsed)

        if "X-Request-Id" not in response.headers:
            response.headers["X-Request-Id"] = request_id

        response_body: str | None = None
        if self.trace_http:
            response_bytes = b""
            async for chunk in response.body_iterator:
                response_bytes += chunk
            response.body_iterator = iterate_in_threadpool(iter([response_bytes]))
            if response_bytes:
                response_body = self._mask_body(response_bytes)

        level = logging.INFO
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING

        duration_ms = round(elapsed * 1000, 3)
        extra_payload = {
            "method": request.method,
            "route": route,
            "status": status_code,
            "duration_ms": duration_ms,
            "request_id": request_id,
            "client_ip": client_ip,
            "user_agent": request.headers.get("User-Agent"),
        }
        if self.trace_http:
            extra_payload["request_body"] = request_body
            extra_payload["response_body"] = response_body

        # query strings carry upload ids only; signatures live in responses
        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f "
            "request_id=%s client_ip=%s query=%s",
            request.method,
            route,
            status_code,
            duration_ms,
            request_id,
            client_ip or "-",
            request.url.query or "-",
            extra={"extra": extra_payload},
        )
        return response
