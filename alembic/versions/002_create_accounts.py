"""002: create accounts table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE accounts (
            user_id                 VARCHAR(64) PRIMARY KEY,
            balance                 BIGINT      NOT NULL DEFAULT 0,
            version                 BIGINT      NOT NULL DEFAULT 0,
            plan                    VARCHAR(16) NOT NULL DEFAULT 'trial',
            daily_credits_used      INTEGER     NOT NULL DEFAULT 0,
            daily_credits_cap       INTEGER,
            last_daily_reset_date   DATE,
            created_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_accounts_balance_gte_0    CHECK (balance >= 0),
            CONSTRAINT ck_accounts_daily_used_gte_0 CHECK (daily_credits_used >= 0),
            CONSTRAINT ck_accounts_plan CHECK (
                plan IN ('trial', 'basic', 'advanced', 'premium')
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_accounts_updated_at
            BEFORE UPDATE ON accounts
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE accounts IS "
        "'Credit balances: whole credits, version is the optimistic concurrency token';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS accounts CASCADE;")
