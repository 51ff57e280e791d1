"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class LedgerOperation(str, Enum):
    # Vault deposit/withdraw (client reported)
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    # Provider balance adjustments
    BET = "bet"
    WIN = "win"
    CANCEL_BET = "cancelbet"
    CANCEL_WIN = "cancelwin"

    @property
    def is_debit(self) -> bool:
        return self in _DEBITS


_DEBITS = frozenset(
    {LedgerOperation.WITHDRAW, LedgerOperation.BET, LedgerOperation.CANCEL_WIN}
)


class SessionMode(str, Enum):
    REAL = "real"
    FUN = "fun"


class ProviderStatus(str, Enum):
    OK = "1"
    ERROR = "0"


class Currency(str, Enum):
    SOL = "SOL"
