from __future__ import annotations

import os

import pytest

# The app module builds its storage client at import time, so fake
# credentials have to be in place before any test imports it.
os.environ["ALIYUN_OSS_ENDPOINT"] = "oss-cn-hangzhou.aliyuncs.com"
os.environ["ALIYUN_OSS_ACCESS_KEY_ID"] = "test-key-id"
os.environ["ALIYUN_OSS_ACCESS_KEY_SECRET"] = "test-key-secret"
os.environ["ALIYUN_OSS_BUCKET_NAME"] = "test-bucket"
os.environ.setdefault("ALIYUN_OSS_REGION", "oss-cn-hangzhou")

from upload_gateway.common.config import Settings, get_settings  # noqa: E402

get_settings.cache_clear()  # type: ignore[attr-defined]

from fastapi.testclient import TestClient  # noqa: E402

from upload_gateway.main import create_app  # noqa: E402

from tests.services.mock_storage import MockStorageClient  # noqa: E402


def make_settings(**overrides) -> Settings:
    values = {
        "ALIYUN_OSS_ENDPOINT": "oss-cn-hangzhou.aliyuncs.com",
        "ALIYUN_OSS_ACCESS_KEY_ID": "test-key-id",
        "ALIYUN_OSS_ACCESS_KEY_SECRET": "test-key-secret",
        "ALIYUN_OSS_BUCKET_NAME": "test-bucket",
        "ALIYUN_OSS_REGION": "oss-cn-hangzhou",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def mock_storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture
def client(settings, mock_storage) -> TestClient:
    app = create_app(settings, storage_client=mock_storage)
    return TestClient(app)


@pytest.fixture
def settings_factory():
    return make_settings
