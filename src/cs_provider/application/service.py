"""ProviderCallbackService — getbalance and balance_adj callbacks from the game provider.

Every outcome, success or failure, is a ProviderReply: an HTTP status plus
the provider's fixed `{status, balance, errormsg?, timestamp}` body. The
provider never sees our internal error shape.

Gates:
  shape        required fields, command, type/amount for balance_adj
  authenticator  secret configured, signature, timestamp window, IP
  session      a live SessionRecord for the username

getbalance checks shape before the authenticator; balance_adj runs the
authenticator first and quotes the last-known balance on every auth
failure. The session gate always comes last.
"""

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from src.cs_common.errors import (
    AccountNotFoundError,
    AppError,
    AuthenticationError,
    ConfigurationError,
    DependencyError,
    InvalidSignatureError,
    MissingFieldsError,
    SessionNotFoundError,
)
from src.cs_common.identity import extract_username
from src.cs_common.lamports import MAX_LAMPORTS, lamports_to_usd_display, usd_to_cents, usd_to_lamports
from src.cs_common.response import ProviderResponse, provider_error, provider_success
from src.cs_ledger.application.balance_reader import BalanceReader
from src.cs_ledger.domain.cache import BalanceCacheProtocol
from src.cs_ledger.domain.models import (
    ACCOUNT_NOT_FOUND,
    BALANCE_OVERFLOW,
    INSUFFICIENT_FUNDS,
    INVALID_AMOUNT,
    BalanceDelta,
)
from src.cs_ledger.domain.repository import LedgerStoreProtocol
from src.cs_provider.application.schemas import (
    BALANCE_ADJ_COMMAND,
    BALANCE_ADJ_REQUIRED,
    GETBALANCE_COMMAND,
    GETBALANCE_REQUIRED,
    BalanceAdjCallback,
    GetBalanceCallback,
    adjustment_operation,
    missing_fields,
)
from src.cs_provider.auth.signature import ProviderAuthenticator
from src.cs_rates.oracle import RateOracle
from src.cs_session.domain.repository import SessionRegistryProtocol

logger = logging.getLogger("cs.provider")
security_logger = logging.getLogger("cs.security")

ZERO_USD = "0.00"


@dataclass(frozen=True)
class ProviderReply:
    status_code: int
    body: ProviderResponse


def _ok(balance: str) -> ProviderReply:
    return ProviderReply(200, provider_success(balance))


def _fail(status_code: int, message: str, balance: str = "0") -> ProviderReply:
    return ProviderReply(status_code, provider_error(message, balance))


def _reject(exc: AppError, balance: str = "0") -> ProviderReply:
    return _fail(exc.http_status, exc.message, balance)


def balance_adj_transaction_id(username: str, uniqid: str) -> str:
    return f"balance_adj:{username}:{uniqid}"


class ProviderCallbackService:
    def __init__(
        self,
        authenticator: ProviderAuthenticator,
        sessions: SessionRegistryProtocol,
        ledger: LedgerStoreProtocol,
        cache: BalanceCacheProtocol,
        oracle: RateOracle,
        operator_id: str = "241",
    ) -> None:
        self._auth = authenticator
        self._sessions = sessions
        self._ledger = ledger
        self._cache = cache
        self._balances = BalanceReader(ledger, cache)
        self._oracle = oracle
        self._operator_id = operator_id

    # ------------------------------------------------------------------
    # getbalance
    # ------------------------------------------------------------------

    async def get_balance(self, data: Any, client_ip: str | None) -> ProviderReply:
        if not isinstance(data, dict):
            return _fail(400, "Invalid JSON format")
        if missing_fields(data, GETBALANCE_REQUIRED):
            return _reject(MissingFieldsError(list(GETBALANCE_REQUIRED)))
        try:
            request = GetBalanceCallback.model_validate(data)
        except PydanticValidationError:
            return _reject(MissingFieldsError(list(GETBALANCE_REQUIRED)))
        if request.command != GETBALANCE_COMMAND:
            return _fail(400, f"Invalid command. Expected: {GETBALANCE_COMMAND}")

        rejected = await self._authenticate(data, client_ip, always_carry_balance=False)
        if rejected is not None:
            return rejected

        username = extract_username(request.login, self._operator_id)
        rejected = await self._require_session(username)
        if rejected is not None:
            return rejected

        try:
            snapshot = await self._balances.read(username)
        except AccountNotFoundError:
            return _fail(200, "Invalid user")
        except DependencyError:
            return _fail(503, "Temporary backend error")
        if snapshot.is_stale:
            logger.warning("getbalance user=%s answered from stale cache, ledger unreachable", username)

        rate = await self._oracle.synchronized_rate(username)
        lamports = snapshot.balance
        balance = lamports_to_usd_display(lamports, rate)
        logger.info("getbalance user=%s lamports=%d rate=%.4f usd=%s", username, lamports, rate, balance)
        return _ok(balance)

    # ------------------------------------------------------------------
    # balance_adj
    # ------------------------------------------------------------------

    async def balance_adj(self, data: Any, client_ip: str | None) -> ProviderReply:
        if not isinstance(data, dict):
            return _fail(400, "Invalid JSON format")

        rejected = await self._authenticate(data, client_ip, always_carry_balance=True)
        if rejected is not None:
            return rejected

        if missing_fields(data, BALANCE_ADJ_REQUIRED):
            return _reject(MissingFieldsError(list(BALANCE_ADJ_REQUIRED)))
        if data.get("command") != BALANCE_ADJ_COMMAND:
            return _fail(400, f"Invalid command. Expected: {BALANCE_ADJ_COMMAND}")
        if adjustment_operation(data.get("type")) is None:
            return _fail(400, "Invalid type")
        try:
            request = BalanceAdjCallback.model_validate(data)
        except PydanticValidationError:
            return _fail(400, "Invalid amount")

        username = extract_username(request.login, self._operator_id)
        rejected = await self._require_session(username)
        if rejected is not None:
            return rejected

        rate = await self._oracle.synchronized_rate(username)
        operation = request.operation
        amount_lamports = usd_to_lamports(request.amount, rate)
        if amount_lamports > MAX_LAMPORTS:
            return _fail(400, "Invalid amount", await self.last_known_balance_usd(request.login))

        if amount_lamports == 0:
            # Zero-stake rounds still expect a balance back, but leave no ledger trace.
            return await self._current_balance_reply(username, rate)

        delta = BalanceDelta(
            username=username,
            wallet_address=username,
            operation=operation,
            amount=amount_lamports,
            transaction_id=balance_adj_transaction_id(username, request.uniqid),
            amount_usd_cents=usd_to_cents(request.amount),
            metadata={
                "uniqid": request.uniqid,
                "gpid": request.gpid,
                "gameId": request.gameid or data.get("gameId"),
                "subtype": request.subtype,
                "amountUsd": str(request.amount),
                "rate": rate,
            },
        )
        try:
            result = await self._ledger.apply_balance_delta(delta)
        except DependencyError:
            balance = await self.last_known_balance_usd(request.login)
            return _fail(503, "Temporary backend error", balance)

        if not result.success:
            if result.error == INSUFFICIENT_FUNDS:
                logger.info(
                    "balance_adj %s rejected: insufficient funds user=%s amount=%d balance=%d",
                    operation.value,
                    username,
                    amount_lamports,
                    result.balance,
                )
                return _fail(200, "Insufficient funds", lamports_to_usd_display(result.balance, rate))
            if result.error == ACCOUNT_NOT_FOUND:
                return _fail(400, "Invalid user")
            if result.error in (BALANCE_OVERFLOW, INVALID_AMOUNT):
                return _fail(400, "Invalid amount", lamports_to_usd_display(result.balance, rate))
            return _fail(400, f"Balance update failed: {result.error}")

        if result.duplicate:
            logger.info("balance_adj replay tx=%s balance=%d", delta.transaction_id, result.balance)
            # The recorded balance may be behind later adjustments; answer with the current one.
            return await self._current_balance_reply(username, rate)

        await self._cache.set(username, result.balance, result.ledger_seq)
        logger.info(
            "balance_adj %s user=%s amount=%d usd=%s balance=%d",
            operation.value,
            username,
            amount_lamports,
            request.amount,
            result.balance,
        )
        return _ok(lamports_to_usd_display(result.balance, rate))

    # ------------------------------------------------------------------
    # shared helpers
    # ------------------------------------------------------------------

    async def last_known_balance_usd(self, login: Any) -> str:
        """Best-effort USD balance for error replies. Never raises."""
        if not isinstance(login, str) or not login:
            return ZERO_USD
        username = extract_username(login, self._operator_id)
        try:
            lamports = await self._resolve_balance(username)
        except (AccountNotFoundError, DependencyError):
            return ZERO_USD
        rate = await self._oracle.synchronized_rate(username)
        return lamports_to_usd_display(lamports, rate)

    async def _authenticate(
        self, data: dict[str, Any], client_ip: str | None, always_carry_balance: bool
    ) -> ProviderReply | None:
        """Map authenticator failures to replies. Signature failures always carry the balance."""
        try:
            self._auth.authenticate(data, client_ip)
        except ConfigurationError as exc:
            security_logger.error("Provider secret not configured; rejecting callback")
            balance = await self._error_balance(data, always_carry_balance)
            return _fail(exc.http_status, exc.message, balance)
        except InvalidSignatureError as exc:
            balance = await self._error_balance(data, True)
            return _fail(exc.http_status, exc.message, balance)
        except AuthenticationError as exc:
            balance = await self._error_balance(data, always_carry_balance)
            return _fail(exc.http_status, exc.message, balance)
        return None

    async def _error_balance(self, data: dict[str, Any], carry: bool) -> str:
        return await self.last_known_balance_usd(data.get("login")) if carry else "0"

    async def _require_session(self, username: str) -> ProviderReply | None:
        try:
            await self._check_session(username)
        except SessionNotFoundError as exc:
            security_logger.warning(
                "No live session for %s; possible session hijack or token reuse", exc.username
            )
            return _reject(exc)
        except DependencyError:
            return _fail(503, "Temporary backend error")
        return None

    async def _check_session(self, username: str) -> None:
        try:
            record = await self._sessions.get(username)
        except RedisError as exc:
            security_logger.error("Session registry unavailable for %s: %s", username, exc)
            raise DependencyError("Session registry unavailable") from exc
        if record is None:
            raise SessionNotFoundError(username)

    async def _resolve_balance(self, username: str) -> int:
        return (await self._balances.read(username)).balance

    async def _current_balance_reply(self, username: str, rate: float) -> ProviderReply:
        try:
            lamports = await self._resolve_balance(username)
        except AccountNotFoundError:
            lamports = 0
        except DependencyError:
            return _fail(503, "Temporary backend error")
        return _ok(lamports_to_usd_display(lamports, rate))
