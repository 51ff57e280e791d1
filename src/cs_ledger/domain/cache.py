"""Balance cache port.

Cache-aside in front of the ledger:
  - Read: cache -> ledger on miss -> populate cache
  - Write: ledger commit first, then `set` with the committed balance
  - Both writes carry the ledger_seq they reflect; a write with a seq at or
    below the cached one is dropped
  - Unknown state after a failed write: `invalidate`

Implementations must swallow nothing silently that would make `get` return a
value older than the last `set` from this process.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CacheEntry:
    balance: int                      # lamports
    previous_balance: int | None      # last value before the most recent set, for UI animation
    updated_at: int | None            # epoch ms

    @property
    def is_fresh(self) -> bool:
        """Entries written without a freshness stamp are only served when the ledger is down."""
        return self.updated_at is not None


class BalanceCacheProtocol(Protocol):
    async def get(self, username: str) -> CacheEntry | None: ...

    async def set(self, username: str, balance: int, ledger_seq: int) -> None: ...

    async def populate(self, username: str, balance: int, ledger_seq: int) -> None: ...

    async def invalidate(self, username: str) -> None: ...
