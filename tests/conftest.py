"""Shared test fixtures."""

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from src.container import get_provider_service, get_settlement_service
from src.cs_gateway.application.service import SettlementService
from src.cs_provider.application.service import ProviderCallbackService
from src.cs_provider.auth.signature import ProviderAuthenticator
from src.cs_session.domain.models import SessionRecord
from src.main import app
from tests.fakes import FakeBalanceCache, FakeLedger, FakeSessionRegistry, StaticOracle
from tests.helpers import PROVIDER_SECRET, USERNAME, WALLET


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def cache() -> FakeBalanceCache:
    return FakeBalanceCache()


@pytest.fixture
def sessions() -> FakeSessionRegistry:
    return FakeSessionRegistry()


@pytest.fixture
def oracle() -> StaticOracle:
    return StaticOracle(150.0)


@pytest.fixture
def authenticator() -> ProviderAuthenticator:
    return ProviderAuthenticator(PROVIDER_SECRET)


@pytest.fixture
def settlement(ledger: FakeLedger, cache: FakeBalanceCache, oracle: StaticOracle) -> SettlementService:
    return SettlementService(ledger, cache, oracle)  # type: ignore[arg-type]


@pytest.fixture
def provider(
    authenticator: ProviderAuthenticator,
    sessions: FakeSessionRegistry,
    ledger: FakeLedger,
    cache: FakeBalanceCache,
    oracle: StaticOracle,
) -> ProviderCallbackService:
    return ProviderCallbackService(authenticator, sessions, ledger, cache, oracle)  # type: ignore[arg-type]


@pytest.fixture
async def live_session(sessions: FakeSessionRegistry) -> SessionRecord:
    record = SessionRecord(wallet=WALLET, game_id=42, provider_token="play-token")
    await sessions.put(USERNAME, record)
    return record


@pytest.fixture
async def client(
    settlement: SettlementService, provider: ProviderCallbackService
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with services swapped for in-memory fakes (no lifespan)."""
    app.dependency_overrides[get_settlement_service] = lambda: settlement
    app.dependency_overrides[get_provider_service] = lambda: provider
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
