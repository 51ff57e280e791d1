"""Application container — every long-lived client and service, built once.

`build_container()` runs in the FastAPI lifespan and the result is stored
on `app.state.container`. Routers reach services through the `get_*`
dependencies below, which tests replace with `app.dependency_overrides`.
"""

from dataclasses import dataclass

import httpx
import redis.asyncio as aioredis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import Settings
from src.cs_common.database import create_engine, create_session_factory
from src.cs_common.redis_client import close_redis, create_redis
from src.cs_common.retry import RetryPolicy
from src.cs_gateway.application.service import SettlementService
from src.cs_ledger.infrastructure.balance_cache import RedisBalanceCache
from src.cs_ledger.infrastructure.persistence import LedgerRepository, is_transient_db_error
from src.cs_provider.application.service import ProviderCallbackService
from src.cs_provider.auth.signature import ProviderAuthenticator
from src.cs_rates.oracle import RateOracle
from src.cs_rates.sources import CoinGeckoSource, PythHermesSource, is_transient_http_error
from src.cs_session.infrastructure.redis_registry import RedisSessionRegistry


@dataclass
class Container:
    engine: AsyncEngine
    redis: aioredis.Redis
    http: httpx.AsyncClient
    oracle: RateOracle
    settlement: SettlementService
    provider: ProviderCallbackService

    async def close(self) -> None:
        await self.http.aclose()
        await close_redis(self.redis)
        await self.engine.dispose()


def build_container(settings: Settings) -> Container:
    engine = create_engine(settings)
    redis = create_redis(settings)
    http = httpx.AsyncClient(timeout=settings.RATE_HTTP_TIMEOUT_SECONDS)

    ledger = LedgerRepository(
        create_session_factory(engine),
        RetryPolicy.linear(
            settings.LEDGER_RETRY_ATTEMPTS,
            settings.LEDGER_RETRY_BACKOFF_SECONDS,
            retryable=is_transient_db_error,
        ),
    )
    cache = RedisBalanceCache(
        redis,
        ttl_seconds=settings.BALANCE_CACHE_TTL_SECONDS,
        previous_ttl_seconds=settings.PREVIOUS_BALANCE_TTL_SECONDS,
    )
    sessions = RedisSessionRegistry(redis, ttl_seconds=settings.SESSION_TTL_SECONDS)
    oracle = RateOracle(
        redis,
        http,
        sources=(
            PythHermesSource(
                settings.PYTH_HERMES_URL,
                settings.PYTH_SOL_USD_FEED_ID,
                timeout=settings.RATE_HTTP_TIMEOUT_SECONDS,
            ),
            CoinGeckoSource(settings.COINGECKO_URL, timeout=settings.RATE_HTTP_TIMEOUT_SECONDS),
        ),
        default_rate=settings.DEFAULT_SOL_USD_RATE,
        local_ttl_seconds=settings.RATE_LOCAL_TTL_SECONDS,
        shared_ttl_seconds=settings.RATE_SHARED_TTL_SECONDS,
        pin_ttl_seconds=settings.RATE_PIN_TTL_SECONDS,
        min_sane=settings.RATE_MIN_SANE,
        max_sane=settings.RATE_MAX_SANE,
        retry_policy=RetryPolicy(max_attempts=2, backoff=(0.05,), retryable=is_transient_http_error),
    )
    authenticator = ProviderAuthenticator(
        settings.PROVIDER_SECRET,
        allowed_ips=settings.PROVIDER_ALLOWED_IPS,
        window_minutes=settings.PROVIDER_TIMESTAMP_WINDOW_MINUTES,
    )

    return Container(
        engine=engine,
        redis=redis,
        http=http,
        oracle=oracle,
        settlement=SettlementService(ledger, cache, oracle, operator_id=settings.OPERATOR_ID),
        provider=ProviderCallbackService(
            authenticator,
            sessions,
            ledger,
            cache,
            oracle,
            operator_id=settings.OPERATOR_ID,
        ),
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_settlement_service(request: Request) -> SettlementService:
    return get_container(request).settlement


def get_provider_service(request: Request) -> ProviderCallbackService:
    return get_container(request).provider
