"""Redis-backed balance cache.

Key layout (per username):
  user:balance:{u}       lamports, TTL BALANCE_CACHE_TTL_SECONDS
  user:balance_prev:{u}  lamports before the last write, TTL PREVIOUS_BALANCE_TTL_SECONDS
  user:balance_ts:{u}    epoch ms of the last write, TTL BALANCE_CACHE_TTL_SECONDS
  user:balance_seq:{u}   ledger_seq of the cached balance, TTL BALANCE_CACHE_TTL_SECONDS

Writes are compare-and-set on the ledger sequence inside one Lua script, so a
slow ledger read or an out-of-order commit cannot replace a newer balance.

Cache failures never fail a request: reads degrade to a miss, and a failed
write falls back to deleting the balance key so the next read goes to the
ledger instead of serving a value older than the committed one.
"""

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.cs_common.datetime_utils import utc_now_ms
from src.cs_ledger.domain.cache import CacheEntry

logger = logging.getLogger("cs.cache")

# KEYS: balance, previous, ts, seq
# ARGV: balance, seq, now_ms, ttl, previous_ttl, snapshot_previous (1|0)
_WRITE_IF_NEWER_LUA = """
local cached_seq = tonumber(redis.call('GET', KEYS[4]))
if cached_seq and cached_seq >= tonumber(ARGV[2]) then
  return 0
end
if ARGV[6] == '1' then
  local current = redis.call('GET', KEYS[1])
  if current then
    redis.call('SET', KEYS[2], current, 'EX', ARGV[5])
  end
end
redis.call('SET', KEYS[1], ARGV[1], 'EX', ARGV[4])
redis.call('SET', KEYS[3], ARGV[3], 'EX', ARGV[4])
redis.call('SET', KEYS[4], ARGV[2], 'EX', ARGV[4])
return 1
"""


def balance_key(username: str) -> str:
    return f"user:balance:{username}"


def previous_balance_key(username: str) -> str:
    return f"user:balance_prev:{username}"


def balance_ts_key(username: str) -> str:
    return f"user:balance_ts:{username}"


def balance_seq_key(username: str) -> str:
    return f"user:balance_seq:{username}"


def _to_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(float(raw))
    except ValueError:
        return None


class RedisBalanceCache:
    def __init__(
        self,
        redis: aioredis.Redis,
        ttl_seconds: int = 300,
        previous_ttl_seconds: int = 120,
    ) -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._previous_ttl = previous_ttl_seconds
        self._write_if_newer = redis.register_script(_WRITE_IF_NEWER_LUA)

    async def get(self, username: str) -> CacheEntry | None:
        try:
            raw_balance, raw_prev, raw_ts = await self._redis.mget(
                balance_key(username),
                previous_balance_key(username),
                balance_ts_key(username),
            )
        except RedisError as exc:
            logger.warning("Balance cache read failed for %s: %s", username, exc)
            return None

        balance = _to_int(raw_balance)
        if balance is None:
            return None
        return CacheEntry(
            balance=balance,
            previous_balance=_to_int(raw_prev),
            updated_at=_to_int(raw_ts),
        )

    async def set(self, username: str, balance: int, ledger_seq: int) -> None:
        """Write a freshly committed balance, snapshotting the old one as previous."""
        try:
            await self._write(username, balance, ledger_seq, snapshot_previous=True)
        except RedisError as exc:
            logger.warning("Balance cache write failed for %s: %s", username, exc)
            await self.invalidate(username)

    async def populate(self, username: str, balance: int, ledger_seq: int) -> None:
        """Fill a miss from a ledger read. Leaves the previous-balance snapshot alone."""
        try:
            await self._write(username, balance, ledger_seq, snapshot_previous=False)
        except RedisError as exc:
            logger.warning("Balance cache populate failed for %s: %s", username, exc)

    async def invalidate(self, username: str) -> None:
        # The seq key stays so a late write of an older balance is still refused.
        try:
            await self._redis.delete(balance_key(username), balance_ts_key(username))
        except RedisError as exc:
            logger.error("Balance cache invalidate failed for %s: %s", username, exc)

    async def _write(self, username: str, balance: int, ledger_seq: int, snapshot_previous: bool) -> None:
        written = await self._write_if_newer(
            keys=[
                balance_key(username),
                previous_balance_key(username),
                balance_ts_key(username),
                balance_seq_key(username),
            ],
            args=[
                balance,
                ledger_seq,
                utc_now_ms(),
                self._ttl,
                self._previous_ttl,
                1 if snapshot_previous else 0,
            ],
        )
        if not int(written):
            logger.debug("Balance cache for %s already at or past seq %d", username, ledger_seq)
