"""Unit tests for RetryPolicy."""

from unittest.mock import AsyncMock, patch

import pytest

from src.cs_common.retry import NO_RETRY, RetryPolicy


class TestDelayBefore:
    def test_linear_backoff(self) -> None:
        policy = RetryPolicy.linear(4, 0.1)
        assert policy.backoff == pytest.approx((0.1, 0.2, 0.3))

    def test_first_attempt_has_no_delay(self) -> None:
        assert RetryPolicy().delay_before(1) == 0.0

    def test_reuses_last_step_when_exhausted(self) -> None:
        policy = RetryPolicy(max_attempts=5, backoff=(0.1, 0.2))
        assert policy.delay_before(2) == 0.1
        assert policy.delay_before(3) == 0.2
        assert policy.delay_before(5) == 0.2

    def test_empty_backoff(self) -> None:
        assert NO_RETRY.delay_before(2) == 0.0


class TestRun:
    async def test_returns_first_success(self) -> None:
        fn = AsyncMock(return_value=42)
        assert await RetryPolicy().run(fn) == 42
        assert fn.await_count == 1

    async def test_retries_until_success(self) -> None:
        fn = AsyncMock(side_effect=[ConnectionError("boom"), ConnectionError("boom"), "ok"])
        with patch("src.cs_common.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await RetryPolicy(max_attempts=3, backoff=(0.1, 0.2)).run(fn) == "ok"
        assert fn.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.2]

    async def test_gives_up_after_max_attempts(self) -> None:
        fn = AsyncMock(side_effect=ConnectionError("down"))
        with patch("src.cs_common.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ConnectionError):
                await RetryPolicy(max_attempts=2, backoff=(0.0,)).run(fn)
        assert fn.await_count == 2

    async def test_non_retryable_raises_immediately(self) -> None:
        fn = AsyncMock(side_effect=ValueError("bad input"))
        policy = RetryPolicy(max_attempts=3, retryable=lambda exc: isinstance(exc, ConnectionError))
        with pytest.raises(ValueError):
            await policy.run(fn)
        assert fn.await_count == 1

    async def test_no_retry_policy_runs_once(self) -> None:
        fn = AsyncMock(side_effect=TimeoutError())
        with pytest.raises(TimeoutError):
            await NO_RETRY.run(fn)
        assert fn.await_count == 1
