"""
Test configuration and fixtures for the power pricing test suite.

The app runs against an in-memory SQLite database and fake upstream
services; nothing here touches the network.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
import httpx
from typing import Dict

from fastapi.testclient import TestClient

from power_pricing.main import app, limiter
from power_pricing.config import settings
from power_pricing.database import Base, SessionLocal, engine, get_db
from power_pricing.dependencies import ServiceContainer
from power_pricing.services.exclusions import ExclusionList
from power_pricing.services.geocoders import default_geocoders
from power_pricing.services.idempotency import IdempotencyManager
from power_pricing.services.pricing_client import PricingClient
from power_pricing.services.rate_limit import RateLimitManager
from power_pricing.services.territory import StaticZipMap
from power_pricing.services.universal_zip import UniversalZipResolver
from power_pricing.services.zip_resolver import ZipResolver

# Import all models to ensure they're registered
import power_pricing.models  # noqa: F401

from tests.helpers import FakeClock, FakeGeocoderAPI, FakePricingAPI, FakeSleep, UpstreamRouter


@pytest.fixture(scope="function")
def test_db_session():
    """Create a test database session on a fresh schema"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def api_key() -> str:
    """Provide a valid, non-admin API key for authenticated requests"""
    keys = [key for key in settings.get_api_keys() if not key.startswith("admin-")]
    if not keys:
        raise RuntimeError("No API keys configured for tests")
    return keys[0]


@pytest.fixture(scope="function")
def admin_key() -> str:
    keys = [key for key in settings.get_api_keys() if key.startswith("admin-")]
    if not keys:
        raise RuntimeError("No admin API key configured for tests")
    return keys[0]


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture(scope="function")
def pricing_api() -> FakePricingAPI:
    return FakePricingAPI()


@pytest.fixture(scope="function")
def geocoder_api() -> FakeGeocoderAPI:
    return FakeGeocoderAPI()


@pytest.fixture(scope="function")
def http_client(pricing_api: FakePricingAPI, geocoder_api: FakeGeocoderAPI) -> httpx.AsyncClient:
    """AsyncClient whose transport answers from the fake upstreams"""
    return httpx.AsyncClient(transport=httpx.MockTransport(UpstreamRouter(pricing_api, geocoder_api)))


@pytest.fixture(scope="session")
def zip_map() -> StaticZipMap:
    return StaticZipMap.from_file(settings.zip_mappings_path)


@pytest.fixture(scope="function")
def pricing_client(http_client, clock, fake_sleep) -> PricingClient:
    return PricingClient(
        base_url=settings.pricing_api_url,
        api_key="upstream-test-key",
        cache_ttl_seconds=3600,
        max_cache_entries=100,
        retry_delays=(1, 2, 4),
        http_client=http_client,
        clock=clock,
        sleep=fake_sleep,
    )


@pytest.fixture(scope="function")
def zip_resolver(zip_map, http_client) -> ZipResolver:
    fallback = UniversalZipResolver(default_geocoders(timeout=1.0, http_client=http_client))
    return ZipResolver(zip_map, ExclusionList(), fallback)


@pytest.fixture(scope="function")
def idempotency(clock) -> IdempotencyManager:
    return IdempotencyManager(ttl_seconds=3600, clock=clock)


@pytest.fixture(scope="function")
def rate_limiter(clock, idempotency) -> RateLimitManager:
    return RateLimitManager(clock=clock, cleanup_interval=60, idempotency=idempotency)


@pytest.fixture(scope="function")
def services(zip_map, zip_resolver, pricing_client, rate_limiter, idempotency) -> ServiceContainer:
    return ServiceContainer(
        settings=settings,
        zip_map=zip_map,
        zip_resolver=zip_resolver,
        pricing_client=pricing_client,
        rate_limiter=rate_limiter,
        idempotency=idempotency,
    )


@pytest.fixture(scope="function")
def client(api_key: str, test_db_session, services: ServiceContainer) -> TestClient:
    """FastAPI TestClient with default auth headers and fake upstreams"""

    def _override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    app.state.services = services
    limiter.reset()

    try:
        with TestClient(app) as test_client:
            default_headers: Dict[str, str] = {
                "X-API-Key": api_key,
            }

            # Merge default headers into each request by wrapping the original call
            original_request = test_client.request

            def request_with_auth(method, url, **kwargs):  # type: ignore[override]
                headers = kwargs.pop("headers", None) or {}
                merged_headers = {**default_headers, **headers}
                return original_request(method, url, headers=merged_headers, **kwargs)

            test_client.request = request_with_auth  # type: ignore[assignment]
            yield test_client
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.state.services = None


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as HTTP API test"
    )
