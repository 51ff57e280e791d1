"""Upstream SOL/USD price sources, tried in order by the RateOracle.

Each source does a single GET through the shared httpx.AsyncClient and
raises on anything it cannot turn into a positive float. Timeouts are set
per request so one slow feed cannot starve the other.
"""

import time
from collections.abc import Callable
from typing import Protocol

import httpx


class RateSourceError(Exception):
    """The upstream answered, but not with a usable price."""


class PriceSource(Protocol):
    name: str

    async def fetch(self, client: httpx.AsyncClient) -> float: ...


class PythHermesSource:
    """Pyth Hermes REST `/v2/updates/price/latest`, parsed form."""

    name = "pyth"

    def __init__(
        self,
        url: str,
        feed_id: str,
        timeout: float = 1.5,
        max_age_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._url = url
        self._feed_id = feed_id
        self._timeout = timeout
        self._max_age = max_age_seconds
        self._clock = clock

    async def fetch(self, client: httpx.AsyncClient) -> float:
        resp = await client.get(
            self._url,
            params={"ids[]": self._feed_id, "parsed": "true"},
            headers={"accept": "application/json"},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        parsed = resp.json().get("parsed") or []
        if not parsed:
            raise RateSourceError("No Pyth price feeds")

        info = parsed[0]["price"]
        publish_time = int(info.get("publish_time", 0))
        if self._max_age and publish_time:
            age = int(self._clock()) - publish_time
            if age > self._max_age:
                raise RateSourceError(f"Stale Pyth price ({age}s old)")

        price = int(info["price"]) * 10 ** int(info["expo"])
        if price <= 0:
            raise RateSourceError(f"Invalid Pyth price: {price}")
        return float(price)


class CoinGeckoSource:
    """CoinGecko `simple/price` for solana/usd."""

    name = "coingecko"

    def __init__(self, url: str, timeout: float = 1.5) -> None:
        self._url = url
        self._timeout = timeout

    async def fetch(self, client: httpx.AsyncClient) -> float:
        resp = await client.get(
            self._url,
            headers={"accept": "application/json"},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        price = (resp.json().get("solana") or {}).get("usd")
        if not isinstance(price, (int, float)) or price <= 0:
            raise RateSourceError(f"Invalid CoinGecko price: {price!r}")
        return float(price)


def is_transient_http_error(exc: BaseException) -> bool:
    """Network-level failures and 5xx are worth one more try; bad payloads are not."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False
