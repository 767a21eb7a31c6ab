"""004: create holds table

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE holds (
            id              VARCHAR(128)    PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL,
            amount          INTEGER         NOT NULL,
            daily_portion   INTEGER         NOT NULL DEFAULT 0,
            balance_portion INTEGER         NOT NULL,
            cap_date        DATE,
            status          VARCHAR(16)     NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL,
            expires_at      TIMESTAMPTZ     NOT NULL,
            settled_at      TIMESTAMPTZ,
            CONSTRAINT ck_holds_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_holds_split_sums CHECK (daily_portion + balance_portion = amount),
            CONSTRAINT ck_holds_status CHECK (
                status IN ('reserved', 'committed', 'canceled')
            )
        );
    """)
    op.execute("CREATE INDEX idx_holds_status_expires ON holds (status, expires_at);")
    op.execute("CREATE INDEX idx_holds_user_id ON holds (user_id);")
    op.execute(
        "COMMENT ON TABLE holds IS "
        "'Credit reservations: reserved -> committed | canceled, both terminal';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS holds CASCADE;")
