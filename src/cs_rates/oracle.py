"""SOL/USD rate oracle.

Lookup order for `current_rate()`:
  L1  in-process value, RATE_LOCAL_TTL_SECONDS
  L2  Redis `price:solusd`, RATE_SHARED_TTL_SECONDS, shared by all instances
  upstream sources in order (Pyth Hermes, then CoinGecko)
  last good value seen by this process
  DEFAULT_SOL_USD_RATE

Never raises. Values outside [min_sane, max_sane] are treated as failures
wherever they come from.

`synchronized_rate(subject)` pins the first rate handed out for a subject in
Redis (SET NX, RATE_PIN_TTL_SECONDS) so back-to-back conversions for one
user agree even if the shared price moves in between.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.cs_common.retry import NO_RETRY, RetryPolicy
from src.cs_rates.sources import PriceSource, RateSourceError

logger = logging.getLogger("cs.rates")

SHARED_RATE_KEY = "price:solusd"


def pinned_rate_key(subject: str) -> str:
    return f"price:solusd:pin:{subject}"


def _parse_rate(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class RateOracle:
    def __init__(
        self,
        redis: aioredis.Redis | None,
        http_client: httpx.AsyncClient | None,
        sources: Sequence[PriceSource] = (),
        default_rate: float = 100.0,
        local_ttl_seconds: float = 60.0,
        shared_ttl_seconds: int = 65,
        pin_ttl_seconds: int = 30,
        min_sane: float = 1.0,
        max_sane: float = 10_000.0,
        retry_policy: RetryPolicy = NO_RETRY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._redis = redis
        self._http = http_client
        self._sources = list(sources)
        self._default_rate = default_rate
        self._local_ttl = local_ttl_seconds
        self._shared_ttl = shared_ttl_seconds
        self._pin_ttl = pin_ttl_seconds
        self._min_sane = min_sane
        self._max_sane = max_sane
        self._retry = retry_policy
        self._clock = clock

        self._local_rate: float | None = None
        self._local_expires_at = 0.0
        self._last_good: float | None = None
        self._fetch_lock = asyncio.Lock()

    def is_sane(self, rate: float | None) -> bool:
        return rate is not None and self._min_sane <= rate <= self._max_sane

    async def current_rate(self) -> float:
        local = self._local_hit()
        if local is not None:
            return local

        async with self._fetch_lock:
            # Another waiter may have refreshed L1 while we queued.
            local = self._local_hit()
            if local is not None:
                return local

            shared = await self._read_shared()
            if shared is not None:
                self._remember(shared)
                return shared

            fetched = await self._fetch_upstream()
            if fetched is not None:
                self._remember(fetched)
                await self._write_shared(fetched)
                return fetched

        if self._last_good is not None:
            logger.warning("All rate sources failed, serving last good rate %.4f", self._last_good)
            return self._last_good

        logger.error("All rate sources failed, serving default rate %.4f", self._default_rate)
        return self._default_rate

    async def synchronized_rate(self, subject: str) -> float:
        if self._redis is None:
            return await self.current_rate()

        key = pinned_rate_key(subject)
        try:
            pinned = _parse_rate(await self._redis.get(key))
            if self.is_sane(pinned):
                return pinned  # type: ignore[return-value]

            rate = await self.current_rate()
            if await self._redis.set(key, rate, nx=True, ex=self._pin_ttl):
                return rate

            # Lost the pin race; the winner's rate is the one everyone uses.
            pinned = _parse_rate(await self._redis.get(key))
            return pinned if self.is_sane(pinned) else rate  # type: ignore[return-value]
        except RedisError as exc:
            logger.warning("Rate pin unavailable for %s: %s", subject, exc)
            return await self.current_rate()

    # ------------------------------------------------------------------

    def _local_hit(self) -> float | None:
        if self._local_rate is not None and self._clock() < self._local_expires_at:
            return self._local_rate
        return None

    def _remember(self, rate: float) -> None:
        self._local_rate = rate
        self._local_expires_at = self._clock() + self._local_ttl
        self._last_good = rate

    async def _read_shared(self) -> float | None:
        if self._redis is None:
            return None
        try:
            rate = _parse_rate(await self._redis.get(SHARED_RATE_KEY))
        except RedisError as exc:
            logger.warning("Shared rate cache read failed: %s", exc)
            return None
        return rate if self.is_sane(rate) else None

    async def _write_shared(self, rate: float) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(SHARED_RATE_KEY, rate, ex=self._shared_ttl)
        except RedisError as exc:
            logger.warning("Shared rate cache write failed: %s", exc)

    async def _fetch_upstream(self) -> float | None:
        if self._http is None:
            return None
        http = self._http
        for source in self._sources:
            try:
                rate = await self._retry.run(lambda s=source: s.fetch(http), f"rate:{source.name}")
            except (httpx.HTTPError, RateSourceError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Rate source %s failed: %s", source.name, exc)
                continue
            if not self.is_sane(rate):
                logger.warning("Rate source %s returned out-of-bounds rate %r", source.name, rate)
                continue
            logger.info("Fetched SOL/USD %.4f from %s", rate, source.name)
            return rate
        return None
