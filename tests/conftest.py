"""Shared fixtures."""
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from api.main import AppServices, create_app
from core.config import Settings
from schemas.identity import Identity
from services.change_feed import LocalChangeFeed
from services.session_provider import DevSessionProvider
from services.sync_controller import SyncController
from services.view_session import ViewSessionRegistry
from tests.fakes import FakeSessionProvider, InMemoryRecordStore

ALICE = Identity(id="alice", email="alice@example.com")
BOB = Identity(id="bob", email="bob@example.com")


@pytest.fixture
def change_feed() -> LocalChangeFeed:
    return LocalChangeFeed()


@pytest.fixture
def store(change_feed: LocalChangeFeed) -> InMemoryRecordStore:
    return InMemoryRecordStore(change_feed)


@pytest.fixture
def session_provider() -> FakeSessionProvider:
    return FakeSessionProvider()


@pytest.fixture
async def controller(
    session_provider: FakeSessionProvider,
    store: InMemoryRecordStore,
) -> AsyncGenerator[SyncController]:
    """Started controller, signed out."""
    controller = SyncController(session_provider, store)
    await controller.start()
    yield controller
    await controller.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        dev_mode=True,
        dev_user_id="dev-user",
        dev_user_email="dev@example.com",
        redis_enabled=False,
    )


@pytest.fixture
async def app_services(
    settings: Settings,
    store: InMemoryRecordStore,
    change_feed: LocalChangeFeed,
) -> AsyncGenerator[AppServices]:
    identity = Identity(id=settings.dev_user_id, email=settings.dev_user_email)
    services = AppServices(
        registry=ViewSessionRegistry(lambda: DevSessionProvider(identity), store),
        record_store=store,
        change_feed=change_feed,
    )
    yield services
    await services.aclose()


@pytest.fixture
async def client(
    settings: Settings,
    app_services: AppServices,
) -> AsyncGenerator[AsyncClient]:
    """HTTP client for the app wired to in-memory collaborators, in dev mode."""
    app = create_app(settings, services=app_services)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        follow_redirects=True,
    ) as client:
        yield client
