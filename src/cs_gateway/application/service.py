"""SettlementService — deposit, withdraw and wallet balance reads.

Mutation flow (deposit and withdraw):
  1. validate currency and amount
  2. duplicate check by transactionId; a hit returns the recorded balance, no side effects
  3. (withdraw only) early exit on unknown account / insufficient balance
  4. atomic apply-delta in the ledger
  5. cache refresh with the committed balance

Raises AppError subclasses; the exception handler in main renders them as
`{success: false, error}`.
"""

import logging
from decimal import Decimal

from src.cs_common.enums import Currency, LedgerOperation
from src.cs_common.errors import (
    AccountNotFoundError,
    BalanceOverflowError,
    DependencyError,
    InsufficientFundsError,
    InternalError,
    LedgerRejectedError,
    NonPositiveAmountError,
    UnsupportedCurrencyError,
)
from src.cs_common.identity import extract_username, username_from_wallet
from src.cs_common.lamports import lamports_to_sol, lamports_to_usd, usd_to_cents
from src.cs_common.response import SettlementResponse, settlement_success
from src.cs_gateway.application.schemas import SettlementRequest, WalletBalanceResponse
from src.cs_ledger.application.balance_reader import BalanceReader
from src.cs_ledger.domain.cache import BalanceCacheProtocol
from src.cs_ledger.domain.models import (
    ACCOUNT_NOT_FOUND,
    BALANCE_OVERFLOW,
    INSUFFICIENT_FUNDS,
    BalanceDelta,
    DeltaResult,
)
from src.cs_ledger.domain.repository import LedgerStoreProtocol
from src.cs_rates.oracle import RateOracle

logger = logging.getLogger("cs.settlement")

_TWO_PLACES = Decimal("0.01")


def _usd_float(lamports: int, rate: float) -> float:
    return float(lamports_to_usd(lamports, rate).quantize(_TWO_PLACES))


class SettlementService:
    def __init__(
        self,
        ledger: LedgerStoreProtocol,
        cache: BalanceCacheProtocol,
        oracle: RateOracle,
        operator_id: str = "241",
    ) -> None:
        self._ledger = ledger
        self._cache = cache
        self._oracle = oracle
        self._operator_id = operator_id
        self._balances = BalanceReader(ledger, cache)

    async def deposit(self, req: SettlementRequest) -> SettlementResponse:
        self._validate(req, "deposits", "Deposit")
        username = username_from_wallet(req.walletAddress)

        replay = await self._replay(req.transactionId)
        if replay is not None:
            return replay

        result = await self._apply(req, username, LedgerOperation.DEPOSIT)
        if not result.success:
            if result.error == BALANCE_OVERFLOW:
                raise BalanceOverflowError("Deposit")
            raise LedgerRejectedError(result.error or "unknown")
        return await self._committed(username, req, result, LedgerOperation.DEPOSIT)

    async def withdraw(self, req: SettlementRequest) -> SettlementResponse:
        self._validate(req, "withdrawals", "Withdrawal")
        username = username_from_wallet(req.walletAddress)

        replay = await self._replay(req.transactionId)
        if replay is not None:
            return replay

        # Early exit only; the ledger re-checks sufficiency under the row lock.
        try:
            account = await self._ledger.get_account(username)
        except DependencyError as exc:
            raise InternalError("Failed to read balance") from exc
        if account is None:
            raise AccountNotFoundError(username)
        if account.balance < req.amountLamports:
            raise InsufficientFundsError(req.amountLamports, account.balance)

        result = await self._apply(req, username, LedgerOperation.WITHDRAW)
        if not result.success:
            if result.error == INSUFFICIENT_FUNDS:
                raise InsufficientFundsError(req.amountLamports, result.balance)
            if result.error == ACCOUNT_NOT_FOUND:
                raise AccountNotFoundError(username)
            raise LedgerRejectedError(result.error or "unknown")
        return await self._committed(username, req, result, LedgerOperation.WITHDRAW)

    async def wallet_balance(self, user: str) -> WalletBalanceResponse:
        username = extract_username(user, self._operator_id)
        try:
            snapshot = await self._balances.read(username)
            lamports, previous = snapshot.balance, snapshot.previous_balance
            stale = snapshot.is_stale
        except AccountNotFoundError:
            lamports, previous, stale = 0, None, False
            await self._cache.populate(username, 0, 0)

        rate = await self._oracle.synchronized_rate(username)
        usd = lamports_to_usd(lamports, rate)
        return WalletBalanceResponse(
            balanceLamports=lamports,
            balanceSol=float(lamports_to_sol(lamports)),
            balanceUsd=float(usd),
            balanceUsdRounded=float(usd.quantize(_TWO_PLACES)),
            previousBalanceLamports=previous,
            stale=stale,
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _validate(req: SettlementRequest, plural: str, label: str) -> None:
        if req.currency != Currency.SOL.value:
            raise UnsupportedCurrencyError(plural)
        if req.amountLamports <= 0:
            raise NonPositiveAmountError(label)

    async def _replay(self, transaction_id: str) -> SettlementResponse | None:
        try:
            existing = await self._ledger.check_duplicate_transaction(transaction_id)
        except DependencyError as exc:
            raise InternalError("Failed to check transaction status") from exc
        if not existing.found:
            return None
        logger.info("Duplicate transaction %s, returning recorded balance %d", transaction_id, existing.balance)
        rate = await self._oracle.current_rate()
        return settlement_success(existing.balance, _usd_float(existing.balance, rate))

    async def _apply(
        self, req: SettlementRequest, username: str, operation: LedgerOperation
    ) -> DeltaResult:
        rate = await self._oracle.current_rate()
        delta = BalanceDelta(
            username=username,
            wallet_address=req.walletAddress,
            operation=operation,
            amount=req.amountLamports,
            transaction_id=req.transactionId,
            amount_usd_cents=usd_to_cents(lamports_to_usd(req.amountLamports, rate)),
            metadata={
                "vaultAddress": req.vaultAddress,
                "transactionHash": req.transactionHash,
                "solUsdRate": rate,
            },
        )
        try:
            return await self._ledger.apply_balance_delta(delta)
        except DependencyError as exc:
            raise InternalError("Failed to update balance") from exc

    async def _committed(
        self,
        username: str,
        req: SettlementRequest,
        result: DeltaResult,
        operation: LedgerOperation,
    ) -> SettlementResponse:
        rate = await self._oracle.current_rate()
        if result.duplicate:
            # Lost a race with a concurrent replay; its commit already refreshed the cache.
            return settlement_success(result.balance, _usd_float(result.balance, rate))

        await self._cache.set(username, result.balance, result.ledger_seq)
        logger.info(
            "%s committed: user=%s tx=%s amount=%d balance=%d",
            operation.value,
            username,
            req.transactionId,
            req.amountLamports,
            result.balance,
        )
        return settlement_success(result.balance, _usd_float(result.balance, rate))
