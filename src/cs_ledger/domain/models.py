"""Domain models for cs_ledger — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.cs_common.enums import LedgerOperation


@dataclass
class Account:
    id: str
    username: str
    wallet_address: str
    balance: int                      # lamports
    smart_vault_address: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    ledger_seq: int = 0               # id of the newest ledger row for this account

@dataclass(frozen=True)
class DuplicateCheck:
    """Result of the duplicate-transaction procedure."""

    found: bool
    balance: int = 0                  # balance_after of the recorded row


@dataclass(frozen=True)
class BalanceDelta:
    """Input to the apply-delta procedure. `amount` is unsigned; the operation decides the sign."""

    username: str
    wallet_address: str
    operation: LedgerOperation
    amount: int
    transaction_id: str
    amount_usd_cents: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def signed_amount(self) -> int:
        return -self.amount if self.operation.is_debit else self.amount


@dataclass(frozen=True)
class DeltaResult:
    """Outcome of the apply-delta procedure.

    success=False carries a machine reason ('insufficient_funds',
    'account_not_found', 'invalid_amount', 'balance_overflow') and the
    balance left untouched.
    duplicate=True means the transaction_id was already committed and
    `balance` is that row's balance_after.
    `ledger_seq` is the id of the row this call appended (0 when none was).
    """

    success: bool
    balance: int
    error: str | None = None
    duplicate: bool = False
    ledger_seq: int = 0


INSUFFICIENT_FUNDS = "insufficient_funds"
ACCOUNT_NOT_FOUND = "account_not_found"
INVALID_AMOUNT = "invalid_amount"
BALANCE_OVERFLOW = "balance_overflow"
