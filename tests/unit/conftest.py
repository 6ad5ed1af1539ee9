"""Pytest configuration and fixtures for unit tests."""

from unittest.mock import MagicMock

import httpx
import pytest

from snappy.client import SnappyClient
from snappy.core.config import Settings
from snappy.core.gateway import GatewayState, HttpGateway
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache
from snappy.core.secure_storage import MemoryStorage, SecureStorage
from snappy.interface.notifier import Notifier
from tests.unit.mocks import FakeApi


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        api_url="http://test/api",
        token_ttl_seconds=3600,
        session_extension_seconds=3600,
        query_stale_seconds=60.0,
        notification_history_limit=20,
        logfire_auto_configure=False,
    )


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def storage() -> SecureStorage:
    return SecureStorage(MemoryStorage(), key="unit-test-key")


@pytest.fixture
def auth_failure_handler() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gateway(
    test_settings: Settings, storage: SecureStorage, fake_api: FakeApi, auth_failure_handler: MagicMock
) -> HttpGateway:
    return HttpGateway(
        settings=test_settings,
        storage=storage,
        state=GatewayState(),
        transport=httpx.MockTransport(fake_api.handle),
        on_auth_failure=auth_failure_handler,
    )


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache(stale_seconds=60.0)


@pytest.fixture
def notifier() -> Notifier:
    return Notifier(history_limit=20)


@pytest.fixture
def mutations(cache: QueryCache, notifier: Notifier) -> MutationController:
    return MutationController(cache, notifier)


@pytest.fixture
def client(
    test_settings: Settings, storage: SecureStorage, fake_api: FakeApi, auth_failure_handler: MagicMock
) -> SnappyClient:
    """Fully wired client talking to the fake API with a signed-in session."""
    storage.set_token("access-1", test_settings.token_ttl_seconds)
    storage.set_refresh_token("refresh-1")
    return SnappyClient(
        settings=test_settings,
        storage=storage,
        transport=httpx.MockTransport(fake_api.handle),
        on_auth_failure=auth_failure_handler,
    )
