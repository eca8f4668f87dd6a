"""
Test configuration for LabelHub.
Services run against an in-process MongoDB (mongomock-motor) and a temporary blob directory.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from labelhub.api.deps import get_services
from labelhub.config import BlobBackend, Environment, Settings
from labelhub.main import app
from labelhub.services.container import Services, build_services
from labelhub.services.ingestion import UploadedFile
from labelhub.services.storage import LocalBlobStore


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
BASE_URL = "http://test"


# Core Configuration
@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at throwaway storage."""
    return Settings(
        environment=Environment.LOCAL,
        mongodb_url="mongodb://localhost:27017/test_label_db",
        log_level="DEBUG",
        blob_backend=BlobBackend.LOCAL,
        storage_path=str(tmp_path / "blobs"),
        public_base_url=BASE_URL,
        max_update_retries=5
    )


# Database Fixtures
@pytest.fixture
def mongo_db():
    """Fresh in-memory database per test."""
    client = AsyncMongoMockClient()
    return client["test_label_db"]


@pytest.fixture
def blob_store(test_settings: Settings) -> LocalBlobStore:
    return LocalBlobStore(test_settings.storage_path)


@pytest.fixture
async def services(test_settings: Settings, mongo_db, blob_store: LocalBlobStore) -> Services:
    """Fully wired services over the mock database."""
    services = build_services(test_settings, mongo_db, blob_store=blob_store)
    await services.store.ensure_indexes()
    return services


# API Client Fixtures
@pytest.fixture
async def client(services: Services) -> AsyncClient:
    """Async test client with the services dependency overridden."""
    app.dependency_overrides[get_services] = lambda: services
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


# Data Factories
@pytest.fixture
def make_upload() -> Callable[..., UploadedFile]:
    """Build an uploaded image file."""

    def _make(name: str = "a.jpg", content_type: str = "image/jpeg", data: bytes = PNG_BYTES) -> UploadedFile:
        return UploadedFile(data=data, original_name=name, content_type=content_type)

    return _make


@pytest.fixture
async def dataset(services: Services):
    """An empty dataset owned by alice."""
    return await services.store.create_dataset("cats", "alice")


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


def sequence_clock(*values: datetime) -> Callable[[], datetime]:
    """Clock returning the given instants in order."""
    iterator: Iterator[datetime] = iter(values)
    return lambda: next(iterator)
