"""In-memory stand-ins for the ledger, balance cache, session registry and rate oracle.

FakeLedger mirrors the PostgreSQL procedure's semantics (per-account
serialization, duplicate re-check under the lock, no overdraft) and yields
to the event loop between steps so concurrent callers actually interleave.
"""

import asyncio
import itertools
import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from src.cs_common.datetime_utils import utc_now_ms
from src.cs_common.enums import LedgerOperation
from src.cs_common.errors import DependencyError
from src.cs_common.lamports import MAX_LAMPORTS
from src.cs_ledger.domain.cache import CacheEntry
from src.cs_ledger.domain.models import (
    ACCOUNT_NOT_FOUND,
    BALANCE_OVERFLOW,
    INSUFFICIENT_FUNDS,
    INVALID_AMOUNT,
    Account,
    BalanceDelta,
    DeltaResult,
    DuplicateCheck,
)
from src.cs_session.domain.models import SessionRecord


@dataclass
class RecordedTransaction:
    transaction_id: str
    username: str
    operation: str
    amount: int
    balance_before: int
    balance_after: int
    seq: int
    amount_usd_cents: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class FakeLedger:
    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.transactions: dict[str, RecordedTransaction] = {}
        self.fail_reads = False
        self.fail_writes = False
        self._locks: dict[str, asyncio.Lock] = {}
        self._seq = itertools.count(1)

    def seed(self, username: str, balance: int, wallet: str | None = None) -> Account:
        account = Account(
            id=str(uuid.uuid4()),
            username=username,
            wallet_address=wallet or username,
            balance=balance,
        )
        self.accounts[username] = account
        return account

    async def check_duplicate_transaction(self, transaction_id: str) -> DuplicateCheck:
        if self.fail_reads:
            raise DependencyError("Ledger unavailable")
        await asyncio.sleep(0)
        tx = self.transactions.get(transaction_id)
        if tx is None:
            return DuplicateCheck(found=False)
        return DuplicateCheck(found=True, balance=tx.balance_after)

    async def get_account(self, username: str) -> Account | None:
        if self.fail_reads:
            raise DependencyError("Ledger unavailable")
        await asyncio.sleep(0)
        account = self.accounts.get(username)
        return replace(account) if account is not None else None

    async def apply_balance_delta(self, delta: BalanceDelta) -> DeltaResult:
        if self.fail_writes:
            raise DependencyError("Ledger unavailable")
        if delta.amount <= 0 or delta.amount > MAX_LAMPORTS:
            return DeltaResult(success=False, balance=0, error=INVALID_AMOUNT)

        lock = self._locks.setdefault(delta.username, asyncio.Lock())
        async with lock:
            if delta.operation is LedgerOperation.DEPOSIT and delta.username not in self.accounts:
                self.seed(delta.username, 0, delta.wallet_address)
            account = self.accounts.get(delta.username)
            if account is None:
                return DeltaResult(success=False, balance=0, error=ACCOUNT_NOT_FOUND)

            await asyncio.sleep(0)
            existing = self.transactions.get(delta.transaction_id)
            if existing is not None:
                return DeltaResult(success=True, balance=existing.balance_after, duplicate=True)

            before = account.balance
            after = before + delta.signed_amount
            if after > MAX_LAMPORTS:
                return DeltaResult(success=False, balance=before, error=BALANCE_OVERFLOW)
            if after < 0:
                return DeltaResult(success=False, balance=before, error=INSUFFICIENT_FUNDS)

            await asyncio.sleep(0)
            seq = next(self._seq)
            account.balance = after
            account.ledger_seq = seq
            self.transactions[delta.transaction_id] = RecordedTransaction(
                transaction_id=delta.transaction_id,
                username=delta.username,
                operation=delta.operation.value,
                amount=delta.amount,
                balance_before=before,
                balance_after=after,
                seq=seq,
                amount_usd_cents=delta.amount_usd_cents,
                metadata=dict(delta.metadata),
            )
            return DeltaResult(success=True, balance=after, ledger_seq=seq)


class FakeBalanceCache:
    """Same compare-and-set on ledger_seq as the Redis script."""

    def __init__(self) -> None:
        self.entries: dict[str, CacheEntry] = {}
        self.seqs: dict[str, int] = {}
        self.set_calls: list[tuple[str, int]] = []

    async def get(self, username: str) -> CacheEntry | None:
        return self.entries.get(username)

    async def set(self, username: str, balance: int, ledger_seq: int) -> None:
        self.set_calls.append((username, balance))
        if not self._newer(username, ledger_seq):
            return
        current = self.entries.get(username)
        self.entries[username] = CacheEntry(
            balance=balance,
            previous_balance=current.balance if current else None,
            updated_at=utc_now_ms(),
        )

    async def populate(self, username: str, balance: int, ledger_seq: int) -> None:
        if not self._newer(username, ledger_seq):
            return
        current = self.entries.get(username)
        self.entries[username] = CacheEntry(
            balance=balance,
            previous_balance=current.previous_balance if current else None,
            updated_at=utc_now_ms(),
        )

    async def invalidate(self, username: str) -> None:
        self.entries.pop(username, None)

    def _newer(self, username: str, ledger_seq: int) -> bool:
        cached = self.seqs.get(username)
        if cached is not None and cached >= ledger_seq:
            return False
        self.seqs[username] = ledger_seq
        return True


class FakeSessionRegistry:
    def __init__(self) -> None:
        self.records: dict[str, SessionRecord] = {}

    async def put(self, username: str, record: SessionRecord, ttl_seconds: int | None = None) -> None:
        self.records[username] = record

    async def get(self, username: str) -> SessionRecord | None:
        return self.records.get(username)


class StaticOracle:
    """RateOracle stand-in that always answers with one rate."""

    def __init__(self, rate: float = 150.0) -> None:
        self.rate = rate

    async def current_rate(self) -> float:
        return self.rate

    async def synchronized_rate(self, subject: str) -> float:
        return self.rate
