"""Provider callback request schemas.

The provider posts loosely-typed JSON (ids and amounts arrive as numbers
or strings depending on the game), so field presence is checked on the raw
dict first to produce the provider's exact error messages, and only then
validated into these models.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from src.cs_common.enums import LedgerOperation

GETBALANCE_COMMAND = "getbalance"
BALANCE_ADJ_COMMAND = "balance_adj"

GETBALANCE_REQUIRED = ("command", "userid", "login", "timestamp")
BALANCE_ADJ_REQUIRED = ("command", "login", "type", "amount", "uniqid", "timestamp")

# Anything at or above 10**16 USD cannot fit a BIGINT lamport column at any sane rate.
_MAX_AMOUNT_DIGITS = 15

# "cancel" is the provider's older spelling of a bet refund.
_ADJUSTMENT_TYPES = {
    "bet": LedgerOperation.BET,
    "win": LedgerOperation.WIN,
    "cancel": LedgerOperation.CANCEL_BET,
    "cancelbet": LedgerOperation.CANCEL_BET,
    "cancelwin": LedgerOperation.CANCEL_WIN,
}


def missing_fields(data: dict[str, Any], required: tuple[str, ...]) -> list[str]:
    return [name for name in required if data.get(name) in (None, "")]


def adjustment_operation(type_: Any) -> LedgerOperation | None:
    if not isinstance(type_, str):
        return None
    return _ADJUSTMENT_TYPES.get(type_)


class GetBalanceCallback(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    command: str
    userid: str
    login: str
    timestamp: str
    hashed_result: str | None = None


class BalanceAdjCallback(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    command: str
    login: str
    type: str
    amount: Decimal
    uniqid: str
    timestamp: str
    hashed_result: str | None = None
    gpid: str | None = None
    gameid: str | None = None
    subtype: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> Decimal:
        if isinstance(v, bool):
            raise ValueError("Invalid amount")
        try:
            amount = Decimal(str(v).strip())
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
        if not amount.is_finite() or amount.adjusted() > _MAX_AMOUNT_DIGITS:
            raise ValueError("Invalid amount")
        # Sign carries no meaning; the adjustment type decides direction.
        return abs(amount)

    @property
    def operation(self) -> LedgerOperation:
        op = adjustment_operation(self.type)
        if op is None:
            raise ValueError(f"Invalid type: {self.type}")
        return op
