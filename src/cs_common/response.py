"""Wire response models.

Two fixed shapes leave this service:

Settlement (deposit/withdraw), our own contract:
{
    "success": true,
    "balance": 1000000000,      // lamports, omitted on error
    "balanceUsd": 150.0,        // omitted when unknown
    "error": "..."              // only on failure
}

Provider callbacks (getbalance/balance_adj), dictated by the game provider:
{
    "status": "1",              // "1" ok, "0" error
    "balance": "150.00",        // USD, always 2dp string
    "errormsg": "...",          // only when status == "0"
    "timestamp": "2026-01-01 12:00:00"
}
"""

from typing import Any

from pydantic import BaseModel, Field

from src.cs_common.datetime_utils import format_provider_timestamp
from src.cs_common.enums import ProviderStatus


class SettlementResponse(BaseModel):
    success: bool
    balance: int | None = None
    balanceUsd: float | None = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ProviderResponse(BaseModel):
    status: ProviderStatus
    balance: str = "0"
    errormsg: str | None = None
    timestamp: str = Field(default_factory=format_provider_timestamp)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def settlement_success(balance: int, balance_usd: float | None = None) -> SettlementResponse:
    return SettlementResponse(success=True, balance=balance, balanceUsd=balance_usd)


def settlement_error(message: str) -> SettlementResponse:
    return SettlementResponse(success=False, error=message)


def provider_success(balance: str) -> ProviderResponse:
    return ProviderResponse(status=ProviderStatus.OK, balance=balance)


def provider_error(message: str, balance: str = "0") -> ProviderResponse:
    return ProviderResponse(status=ProviderStatus.ERROR, balance=balance, errormsg=message)
