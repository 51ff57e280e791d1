"""Pydantic schemas for the settlement gateway API.

Field names are camelCase on the wire; the client that reports vault
transactions is a browser app.
"""

from pydantic import BaseModel, Field

from src.cs_common.enums import Currency
from src.cs_common.lamports import MAX_LAMPORTS

SETTLEMENT_REQUIRED_FIELDS = ("walletAddress", "amountLamports", "transactionId")

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SettlementRequest(BaseModel):
    """Deposit or withdrawal reported after the vault transaction confirmed."""

    walletAddress: str = Field(..., min_length=1)
    amountLamports: int = Field(..., le=MAX_LAMPORTS, description="Amount in lamports; must be positive")
    transactionId: str = Field(..., min_length=1, description="Idempotency key")
    vaultAddress: str | None = None
    transactionHash: str | None = Field(None, description="On-chain signature")
    currency: str = Currency.SOL.value


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class WalletBalanceResponse(BaseModel):
    balanceLamports: int
    balanceSol: float
    balanceUsd: float
    balanceUsdRounded: float
    previousBalanceLamports: int | None = None
    stale: bool = Field(False, description="Served from cache while the ledger was unreachable")
