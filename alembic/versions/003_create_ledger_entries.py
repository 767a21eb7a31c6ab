"""003: create ledger_entries table

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
        CREATE TABLE ledger_entries (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL,
            delta           BIGINT          NOT NULL,
            daily_delta     INTEGER         NOT NULL DEFAULT 0,
            reason          VARCHAR(30)     NOT NULL,
            balance_after   BIGINT          NOT NULL,
            idempotency_key VARCHAR(160),
            metadata        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_ledger_reason CHECK (
                reason IN (
                    'credit_pack', 'subscription_grant',
                    'reserve', 'refund_hold',
                    'commit_adjustment', 'admin_correction'
                )
            ),
            CONSTRAINT ck_ledger_balance_gte_0 CHECK (balance_after >= 0),
            CONSTRAINT ck_ledger_key_required CHECK (
                idempotency_key IS NOT NULL
                OR reason IN ('admin_correction', 'commit_adjustment')
            )
        );
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_ledger_idempotency_key
        ON ledger_entries (idempotency_key)
        WHERE idempotency_key IS NOT NULL;
    """)
    op.execute("CREATE INDEX idx_ledger_user_id ON ledger_entries (user_id, id DESC);")
    op.execute(
        "COMMENT ON TABLE ledger_entries IS "
        "'Credit ledger: append-only, never updated or deleted';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_entries CASCADE;")
