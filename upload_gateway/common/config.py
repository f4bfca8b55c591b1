from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    ALIYUN_OSS_ENDPOINT: str | None = None
    ALIYUN_OSS_ACCESS_KEY_ID: str | None = None
    ALIYUN_OSS_ACCESS_KEY_SECRET: str | None = None
    ALIYUN_OSS_BUCKET_NAME: str | None = None
    ALIYUN_OSS_REGION: str | None = None
    ALIYUN_OSS_ADDRESSING_STYLE: str = "virtual"
    ALIYUN_OSS_USE_SSL: bool = True
    ROUTE_PREFIX: str = "/aliyun"
    UPLOAD_KEY_PREFIX: str = "uploads/"
    PART_URL_EXPIRES_SECONDS: int = 3600
    PUBLIC_URL_EXPIRES_SECONDS: int = 10
    EXPOSE_UPSTREAM_ERRORS: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"
    ENABLE_METRICS: bool = True
    TRACE_HTTP: bool = False
    CORS_ENABLED: bool = False
    CORS_ORIGINS: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.ROUTE_PREFIX and not self.ROUTE_PREFIX.startswith("/"):
            raise ValueError("ROUTE_PREFIX must start with '/'.")
        if self.PART_URL_EXPIRES_SECONDS <= 0 or self.PUBLIC_URL_EXPIRES_SECONDS <= 0:
            raise ValueError("Presigned URL expirations must be positive.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            ALIYUN_OSS_ENDPOINT=_as_optional(os.environ.get("ALIYUN_OSS_ENDPOINT")),
            ALIYUN_OSS_ACCESS_KEY_ID=_as_optional(
                os.environ.get("ALIYUN_OSS_ACCESS_KEY_ID")
            ),
            ALIYUN_OSS_ACCESS_KEY_SECRET=_as_optional(
                os.environ.get("ALIYUN_OSS_ACCESS_KEY_SECRET")
            ),
            ALIYUN_OSS_BUCKET_NAME=_as_optional(
                os.environ.get("ALIYUN_OSS_BUCKET_NAME")
            ),
            ALIYUN_OSS_REGION=_as_optional(os.environ.get("ALIYUN_OSS_REGION")),
            ALIYUN_OSS_ADDRESSING_STYLE=os.environ.get(
                "ALIYUN_OSS_ADDRESSING_STYLE", cls.ALIYUN_OSS_ADDRESSING_STYLE
            ),
            ALIYUN_OSS_USE_SSL=_as_bool(
                os.environ.get("ALIYUN_OSS_USE_SSL"), cls.ALIYUN_OSS_USE_SSL
            ),
            ROUTE_PREFIX=os.environ.get("ROUTE_PREFIX", cls.ROUTE_PREFIX).rstrip("/"),
            UPLOAD_KEY_PREFIX=os.environ.get(
                "UPLOAD_KEY_PREFIX", cls.UPLOAD_KEY_PREFIX
            ),
            PART_URL_EXPIRES_SECONDS=int(
                os.environ.get(
                    "PART_URL_EXPIRES_SECONDS", cls.PART_URL_EXPIRES_SECONDS
                )
            ),
            PUBLIC_URL_EXPIRES_SECONDS=int(
                os.environ.get(
                    "PUBLIC_URL_EXPIRES_SECONDS", cls.PUBLIC_URL_EXPIRES_SECONDS
                )
            ),
            EXPOSE_UPSTREAM_ERRORS=_as_bool(
                os.environ.get("EXPOSE_UPSTREAM_ERRORS"), cls.EXPOSE_UPSTREAM_ERRORS
            ),
            HOST=os.environ.get("HOST", cls.HOST),
            PORT=int(os.environ.get("PORT", cls.PORT)),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL).upper(),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            TRACE_HTTP=_as_bool(os.environ.get("TRACE_HTTP"), cls.TRACE_HTTP),
            CORS_ENABLED=_as_bool(os.environ.get("CORS_ENABLED"), cls.CORS_ENABLED),
            CORS_ORIGINS=_as_list(os.environ.get("CORS_ORIGINS")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
