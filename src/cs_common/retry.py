"""Explicit retry policy for calls into backing stores and upstream services.

Business code never loops on attempts itself; infrastructure adapters wrap
their I/O in `policy.run(...)`. Only mutations that are idempotent by key
(the ledger procedure keyed by transaction_id) may be retried.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger("cs.retry")

T = TypeVar("T")


def _retry_everything(_: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: tuple[float, ...] = (0.1, 0.2)  # delay before attempt 2, 3, ...
    retryable: Callable[[BaseException], bool] = field(default=_retry_everything)

    @classmethod
    def linear(
        cls,
        max_attempts: int,
        step_seconds: float,
        retryable: Callable[[BaseException], bool] = _retry_everything,
    ) -> "RetryPolicy":
        """step, 2*step, 3*step ... between attempts."""
        backoff = tuple(step_seconds * n for n in range(1, max_attempts))
        return cls(max_attempts=max_attempts, backoff=backoff, retryable=retryable)

    def delay_before(self, attempt: int) -> float:
        """Delay before `attempt` (2-based). Reuses the last step when exhausted."""
        if not self.backoff or attempt <= 1:
            return 0.0
        idx = min(attempt - 2, len(self.backoff) - 1)
        return self.backoff[idx]

    async def run(self, fn: Callable[[], Awaitable[T]], op_name: str = "call") -> T:
        attempt = 1
        while True:
            try:
                return await fn()
            except Exception as exc:
                if attempt >= self.max_attempts or not self.retryable(exc):
                    raise
                delay = self.delay_before(attempt + 1)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.2fs",
                    op_name,
                    attempt,
                    self.max_attempts,
                    exc.__class__.__name__,
                    delay,
                )
                await asyncio.sleep(delay)
                attempt += 1


NO_RETRY = RetryPolicy(max_attempts=1, backoff=())
