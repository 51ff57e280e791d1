"""Cache-aside balance read shared by every read path.

  fresh cache entry        -> served as is
  miss or unstamped entry  -> ledger read, cache repopulated
  ledger down              -> unstamped entry if there is one, else DependencyError
  unknown account          -> AccountNotFoundError
"""

import logging
from dataclasses import dataclass

from src.cs_common.errors import AccountNotFoundError, DependencyError
from src.cs_ledger.domain.cache import BalanceCacheProtocol
from src.cs_ledger.domain.repository import LedgerStoreProtocol

logger = logging.getLogger("cs.ledger")


@dataclass(frozen=True)
class BalanceSnapshot:
    balance: int
    previous_balance: int | None = None
    source: str = "cache"             # cache | ledger | stale

    @property
    def is_stale(self) -> bool:
        return self.source == "stale"


class BalanceReader:
    def __init__(self, ledger: LedgerStoreProtocol, cache: BalanceCacheProtocol) -> None:
        self._ledger = ledger
        self._cache = cache

    async def read(self, username: str) -> BalanceSnapshot:
        entry = await self._cache.get(username)
        if entry is not None and entry.is_fresh:
            return BalanceSnapshot(entry.balance, entry.previous_balance, "cache")

        try:
            account = await self._ledger.get_account(username)
        except DependencyError:
            if entry is None:
                raise
            logger.warning("Ledger unavailable, serving stale cached balance for %s", username)
            return BalanceSnapshot(entry.balance, entry.previous_balance, "stale")

        if account is None:
            raise AccountNotFoundError(username)
        await self._cache.populate(username, account.balance, account.ledger_seq)
        previous = entry.previous_balance if entry is not None else None
        return BalanceSnapshot(account.balance, previous, "ledger")
