"""Unit tests for RedisBalanceCache with a mocked redis client and write script."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.cs_ledger.infrastructure.balance_cache import (
    RedisBalanceCache,
    balance_key,
    balance_seq_key,
    balance_ts_key,
    previous_balance_key,
)


def _make_redis() -> tuple[MagicMock, AsyncMock]:
    redis = MagicMock()
    redis.mget = AsyncMock(return_value=[None, None, None])
    redis.delete = AsyncMock()

    script = AsyncMock(return_value=1)
    redis.register_script.return_value = script
    return redis, script


@pytest.fixture
def redis_and_script() -> tuple[MagicMock, AsyncMock]:
    return _make_redis()


def _keys(username: str) -> list[str]:
    return [
        balance_key(username),
        previous_balance_key(username),
        balance_ts_key(username),
        balance_seq_key(username),
    ]


class TestGet:
    async def test_miss(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, _ = redis_and_script
        assert await RedisBalanceCache(redis).get("alice") is None

    async def test_hit_with_previous_and_stamp(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, _ = redis_and_script
        redis.mget.return_value = ["1500", "1000", "1700000000000"]

        entry = await RedisBalanceCache(redis).get("alice")

        assert entry is not None
        assert entry.balance == 1500
        assert entry.previous_balance == 1000
        assert entry.updated_at == 1700000000000
        assert entry.is_fresh
        redis.mget.assert_awaited_once_with(
            balance_key("alice"), previous_balance_key("alice"), balance_ts_key("alice")
        )

    async def test_unstamped_entry_is_not_fresh(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, _ = redis_and_script
        redis.mget.return_value = ["1500", None, None]
        entry = await RedisBalanceCache(redis).get("alice")
        assert entry is not None
        assert not entry.is_fresh

    async def test_garbage_balance_is_a_miss(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, _ = redis_and_script
        redis.mget.return_value = ["abc", None, None]
        assert await RedisBalanceCache(redis).get("alice") is None

    async def test_redis_error_is_a_miss(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, _ = redis_and_script
        redis.mget.side_effect = RedisConnectionError("down")
        assert await RedisBalanceCache(redis).get("alice") is None


class TestSet:
    async def test_script_registered_once(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, _ = redis_and_script
        cache = RedisBalanceCache(redis)
        await cache.set("alice", 1500, ledger_seq=7)
        await cache.set("alice", 1600, ledger_seq=8)
        redis.register_script.assert_called_once()

    async def test_writes_with_seq_and_snapshots_previous(
        self, redis_and_script: tuple[MagicMock, AsyncMock]
    ) -> None:
        redis, script = redis_and_script

        await RedisBalanceCache(redis, ttl_seconds=300, previous_ttl_seconds=120).set("alice", 1500, ledger_seq=7)

        script.assert_awaited_once()
        kwargs = script.await_args.kwargs
        assert kwargs["keys"] == _keys("alice")
        balance, seq, _now_ms, ttl, previous_ttl, snapshot = kwargs["args"]
        assert (balance, seq, ttl, previous_ttl, snapshot) == (1500, 7, 300, 120, 1)

    async def test_older_seq_refused_without_error(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, script = redis_and_script
        script.return_value = 0

        await RedisBalanceCache(redis).set("alice", 1500, ledger_seq=3)

        redis.delete.assert_not_awaited()

    async def test_failed_write_invalidates(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, script = redis_and_script
        script.side_effect = RedisConnectionError("down")

        await RedisBalanceCache(redis).set("alice", 1500, ledger_seq=7)

        redis.delete.assert_awaited_once_with(balance_key("alice"), balance_ts_key("alice"))

    async def test_invalidate_keeps_seq_key(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, _ = redis_and_script
        await RedisBalanceCache(redis).invalidate("alice")
        assert balance_seq_key("alice") not in redis.delete.await_args.args

    async def test_invalidate_failure_is_swallowed(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, script = redis_and_script
        script.side_effect = RedisConnectionError("down")
        redis.delete.side_effect = RedisConnectionError("still down")
        await RedisBalanceCache(redis).set("alice", 1500, ledger_seq=7)


class TestPopulate:
    async def test_leaves_previous_snapshot_alone(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, script = redis_and_script

        await RedisBalanceCache(redis).populate("alice", 700, ledger_seq=4)

        kwargs = script.await_args.kwargs
        assert kwargs["keys"] == _keys("alice")
        assert kwargs["args"][0] == 700
        assert kwargs["args"][1] == 4
        assert kwargs["args"][-1] == 0

    async def test_error_is_swallowed(self, redis_and_script: tuple[MagicMock, AsyncMock]) -> None:
        redis, script = redis_and_script
        script.side_effect = RedisConnectionError("down")
        await RedisBalanceCache(redis).populate("alice", 700, ledger_seq=4)
        redis.delete.assert_not_awaited()
