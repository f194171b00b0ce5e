from __future__ import annotations

import pytest

from release_publisher.common.config import get_settings
from release_publisher.transport import S3Transport, S3TransportOptions
from tests.transport.mock_storage import MockStorageClient

BUCKET = "myapp-updates"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def options() -> S3TransportOptions:
    return S3TransportOptions(access_key_id="test-key", secret_access_key="test-secret")


@pytest.fixture
def storage() -> MockStorageClient:
    return MockStorageClient(buckets={BUCKET})


@pytest.fixture
def progress_events() -> list[tuple[int, int]]:
    return []


@pytest.fixture
def transport(options, storage, progress_events) -> S3Transport:
    return S3Transport(
        options,
        package_name="myapp",
        storage_client=storage,
        progress=lambda loaded, total: progress_events.append((loaded, total)),
    )
