"""003: create ledger_transactions table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ledger_transactions (
            id                BIGSERIAL     PRIMARY KEY,
            transaction_id    VARCHAR(128)  NOT NULL,
            username          VARCHAR(20)   NOT NULL,
            operation         VARCHAR(16)   NOT NULL,
            amount_lamports   BIGINT        NOT NULL,
            amount_usd_cents  BIGINT,
            balance_before    BIGINT        NOT NULL,
            balance_after     BIGINT        NOT NULL,
            metadata          JSONB         NOT NULL DEFAULT '{}'::jsonb,
            created_at        TIMESTAMPTZ   NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_ledger_transaction_id UNIQUE (transaction_id),
            CONSTRAINT ck_ledger_operation CHECK (
                operation IN (
                    'deposit', 'withdraw',
                    'bet', 'win', 'cancelbet', 'cancelwin'
                )
            ),
            CONSTRAINT ck_ledger_amount_gt_0   CHECK (amount_lamports > 0),
            CONSTRAINT ck_ledger_balance_gte_0 CHECK (balance_after >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_ledger_user_time ON ledger_transactions (username, created_at DESC);")
    op.execute("CREATE INDEX idx_ledger_operation ON ledger_transactions (operation, created_at);")
    op.execute("""
        CREATE TRIGGER trg_ledger_transactions_append_only
            BEFORE UPDATE OR DELETE ON ledger_transactions
            FOR EACH ROW EXECUTE FUNCTION fn_reject_ledger_mutation();
    """)
    op.execute(
        "COMMENT ON TABLE ledger_transactions IS "
        "'Balance mutations — append-only, one row per transaction_id, amounts in lamports';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_transactions CASCADE;")
