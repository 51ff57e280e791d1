"""Ledger store Protocol — dependency inversion for testability.

Unit tests inject a fake or mock that conforms to this Protocol.
Infrastructure layer provides the PostgreSQL implementation.

Every method is one atomic unit of work owned by the store; callers never
see a session or a transaction.
"""

from typing import Protocol

from src.cs_ledger.domain.models import Account, BalanceDelta, DeltaResult, DuplicateCheck


class LedgerStoreProtocol(Protocol):
    async def check_duplicate_transaction(self, transaction_id: str) -> DuplicateCheck: ...

    async def apply_balance_delta(self, delta: BalanceDelta) -> DeltaResult: ...

    async def get_account(self, username: str) -> Account | None: ...
