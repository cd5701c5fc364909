import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import build_container
from backend.app.api.main import create_app
from backend.app.core.rate_limit import FixedWindowRateLimiter
from backend.app.core.settings import Settings
from backend.app.services.cache import MemoryCacheClient, ResponseCache
from backend.tests.factories import FakeCdn, MemoryBlobStore


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def cdn():
    return FakeCdn()


@pytest.fixture
def container(engine, clock, blob_store, cdn):
    settings = Settings(vehicle_rate_limit=60, search_rate_limit=30, log_format="text")
    return build_container(
        settings,
        engine=engine,
        cache=ResponseCache(MemoryCacheClient()),
        limiter=FixedWindowRateLimiter(clock=clock),
        blob_store=blob_store,
        cdn=cdn,
    )


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as client:
        yield client
