"""LedgerRepository — concrete implementation of LedgerStoreProtocol.

The apply-delta procedure is one database transaction:
  1. create the account row if this is a deposit to an unseen wallet
  2. lock the account row (SELECT ... FOR UPDATE)
  3. re-check the transaction_id under the lock
  4. atomic UPDATE ... RETURNING guarded by `balance + delta >= 0`
  5. append the ledger_transactions row

A credit that would push the balance past BIGINT is refused before step 4.
A result of 0 rows from step 4 means the debit would overdraw. The UNIQUE
constraint on ledger_transactions.transaction_id backs up step 3; a unique
violation is resolved by re-reading the committed row.

Transaction ownership: unlike request-scoped repositories, this store owns
its sessions. Each public method is one unit of work, run under the
injected RetryPolicy.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.cs_common.enums import LedgerOperation
from src.cs_common.errors import DependencyError, InternalError
from src.cs_common.lamports import MAX_LAMPORTS
from src.cs_common.retry import NO_RETRY, RetryPolicy
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

logger = logging.getLogger("cs.ledger")

T = TypeVar("T")

# ---------------------------------------------------------------------------
# SQL: reads
# ---------------------------------------------------------------------------

_FIND_TRANSACTION_SQL = text("""
    SELECT transaction_id, balance_after
    FROM ledger_transactions
    WHERE transaction_id = :transaction_id
""")

_GET_ACCOUNT_SQL = text("""
    SELECT a.id, a.username, a.wallet_address, a.balance, a.smart_vault_address,
           a.created_at, a.updated_at,
           (SELECT COALESCE(MAX(t.id), 0)
            FROM ledger_transactions t
            WHERE t.username = a.username) AS ledger_seq
    FROM accounts a
    WHERE a.username = :username
""")

# ---------------------------------------------------------------------------
# SQL: apply-delta procedure
# ---------------------------------------------------------------------------

_ENSURE_ACCOUNT_SQL = text("""
    INSERT INTO accounts (username, wallet_address, balance, smart_vault_address)
    VALUES (:username, :wallet_address, 0, :smart_vault_address)
    ON CONFLICT DO NOTHING
""")

_LOCK_ACCOUNT_SQL = text("""
    SELECT id, balance
    FROM accounts
    WHERE username = :username
    FOR UPDATE
""")

_APPLY_DELTA_SQL = text("""
    UPDATE accounts
    SET balance = balance + :delta,
        updated_at = NOW()
    WHERE id = :account_id AND balance + :delta >= 0
    RETURNING balance
""")

_INSERT_TRANSACTION_SQL = text("""
    INSERT INTO ledger_transactions
        (transaction_id, username, operation, amount_lamports, amount_usd_cents,
         balance_before, balance_after, metadata)
    VALUES
        (:transaction_id, :username, :operation, :amount_lamports, :amount_usd_cents,
         :balance_before, :balance_after, CAST(:metadata AS JSONB))
    RETURNING id
""")


def _row_to_account(row: object) -> Account:
    return Account(
        id=str(row.id),  # type: ignore[attr-defined]
        username=row.username,  # type: ignore[attr-defined]
        wallet_address=row.wallet_address,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        smart_vault_address=row.smart_vault_address,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
        ledger_seq=row.ledger_seq,  # type: ignore[attr-defined]
    )


def is_transient_db_error(exc: BaseException) -> bool:
    """Connection-level failures are retryable; constraint violations are not."""
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (ConnectionError, TimeoutError))


class LedgerRepository:
    """Concrete ledger store — balance mutations atomic at the SQL level."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_policy: RetryPolicy = NO_RETRY,
    ) -> None:
        self._session_factory = session_factory
        self._retry = retry_policy

    async def check_duplicate_transaction(self, transaction_id: str) -> DuplicateCheck:
        async def _check() -> DuplicateCheck:
            async with self._session_factory() as db:
                return await self._find_transaction(db, transaction_id)

        return await self._run(_check, "check_duplicate_transaction")

    async def get_account(self, username: str) -> Account | None:
        async def _get() -> Account | None:
            async with self._session_factory() as db:
                result = await db.execute(_GET_ACCOUNT_SQL, {"username": username})
                row = result.fetchone()
                return _row_to_account(row) if row else None

        return await self._run(_get, "get_account")

    async def apply_balance_delta(self, delta: BalanceDelta) -> DeltaResult:
        if delta.amount <= 0 or delta.amount > MAX_LAMPORTS:
            return DeltaResult(success=False, balance=0, error=INVALID_AMOUNT)

        async def _apply() -> DeltaResult:
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        return await self._apply_in_transaction(db, delta)
            except IntegrityError:
                # Lost the race on transaction_id; the winner's row is authoritative.
                async with self._session_factory() as db:
                    existing = await self._find_transaction(db, delta.transaction_id)
                if not existing.found:
                    raise
                logger.info(
                    "Concurrent duplicate resolved: tx=%s balance=%d",
                    delta.transaction_id,
                    existing.balance,
                )
                return DeltaResult(success=True, balance=existing.balance, duplicate=True)

        return await self._run(_apply, "apply_balance_delta")

    # ------------------------------------------------------------------

    async def _find_transaction(self, db: AsyncSession, transaction_id: str) -> DuplicateCheck:
        result = await db.execute(_FIND_TRANSACTION_SQL, {"transaction_id": transaction_id})
        row = result.fetchone()
        if row is None:
            return DuplicateCheck(found=False)
        return DuplicateCheck(found=True, balance=row.balance_after)

    async def _apply_in_transaction(self, db: AsyncSession, delta: BalanceDelta) -> DeltaResult:
        if delta.operation is LedgerOperation.DEPOSIT:
            await db.execute(
                _ENSURE_ACCOUNT_SQL,
                {
                    "username": delta.username,
                    "wallet_address": delta.wallet_address,
                    "smart_vault_address": delta.metadata.get("vaultAddress"),
                },
            )

        lock_result = await db.execute(_LOCK_ACCOUNT_SQL, {"username": delta.username})
        locked = lock_result.fetchone()
        if locked is None:
            return DeltaResult(success=False, balance=0, error=ACCOUNT_NOT_FOUND)

        existing = await self._find_transaction(db, delta.transaction_id)
        if existing.found:
            return DeltaResult(success=True, balance=existing.balance, duplicate=True)

        balance_before = locked.balance
        if balance_before + delta.signed_amount > MAX_LAMPORTS:
            return DeltaResult(success=False, balance=balance_before, error=BALANCE_OVERFLOW)

        update_result = await db.execute(
            _APPLY_DELTA_SQL,
            {"account_id": locked.id, "delta": delta.signed_amount},
        )
        updated = update_result.fetchone()
        if updated is None:
            return DeltaResult(success=False, balance=balance_before, error=INSUFFICIENT_FUNDS)

        balance_after = updated.balance
        insert_result = await db.execute(
            _INSERT_TRANSACTION_SQL,
            {
                "transaction_id": delta.transaction_id,
                "username": delta.username,
                "operation": delta.operation.value,
                "amount_lamports": delta.amount,
                "amount_usd_cents": delta.amount_usd_cents,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "metadata": json.dumps(delta.metadata),
            },
        )
        inserted = insert_result.fetchone()
        if inserted is None:
            raise InternalError("Ledger insert returned no rows")

        logger.info(
            "Ledger %s: user=%s tx=%s amount=%d balance %d -> %d",
            delta.operation.value,
            delta.username,
            delta.transaction_id,
            delta.amount,
            balance_before,
            balance_after,
        )
        return DeltaResult(success=True, balance=balance_after, ledger_seq=inserted.id)

    async def _run(self, fn: Callable[[], Awaitable[T]], op_name: str) -> T:
        """Retry transient failures, then surface what is left as DependencyError."""
        try:
            return await self._retry.run(fn, op_name)
        except (SQLAlchemyError, ConnectionError, TimeoutError) as exc:
            logger.error("Ledger %s failed: %s", op_name, exc)
            raise DependencyError("Ledger unavailable") from exc
