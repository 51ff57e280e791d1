"""Integration-test fixtures.

Requires PostgreSQL (migrated with `alembic upgrade head`) and Redis, as in
docker-compose.yml. All integration tests share a single event loop so the
container's engine pool and Redis pool stay valid for the whole session.
"""

from collections.abc import AsyncIterator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from config.settings import settings
from src.container import Container
from src.cs_ledger.infrastructure.balance_cache import (
    balance_key,
    balance_seq_key,
    balance_ts_key,
    previous_balance_key,
)
from src.cs_session.infrastructure.redis_registry import session_key
from src.main import app, lifespan
from tests.helpers import PROVIDER_SECRET, USERNAME


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def container() -> AsyncIterator[Container]:
    """Run the real lifespan once: builds the container, checks DB + Redis."""
    settings.PROVIDER_SECRET = PROVIDER_SECRET
    async with lifespan(app):
        yield app.state.container


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client(container: Container) -> AsyncIterator[AsyncClient]:  # type: ignore[override]
    """Session-scoped async HTTP client against the fully wired app."""
    app.dependency_overrides.clear()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session")
async def clean(container: Container) -> AsyncIterator[Container]:
    """Empty ledger tables and this user's Redis keys before each test."""
    async with container.engine.begin() as conn:
        # TRUNCATE bypasses the append-only row trigger.
        await conn.execute(text("TRUNCATE ledger_transactions, accounts RESTART IDENTITY"))
    await container.redis.delete(
        balance_key(USERNAME),
        previous_balance_key(USERNAME),
        balance_ts_key(USERNAME),
        balance_seq_key(USERNAME),
        session_key(USERNAME),
    )
    yield container
