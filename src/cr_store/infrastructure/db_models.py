"""SQLAlchemy ORM models for the credit tables.

These map to existing tables created by Alembic migrations.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.cr_common.database import Base
from src.cr_store.domain.models import USER_ID_MAX_LENGTH


class AccountORM(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_gte_0"),
        CheckConstraint("daily_credits_used >= 0", name="ck_accounts_daily_used_gte_0"),
        CheckConstraint(
            "plan IN ('trial', 'basic', 'advanced', 'premium')", name="ck_accounts_plan"
        ),
    )

    user_id: Mapped[str] = mapped_column(String(USER_ID_MAX_LENGTH), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    plan: Mapped[str] = mapped_column(String(16), nullable=False, default="trial")
    daily_credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_credits_cap: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_daily_reset_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class LedgerEntryORM(Base):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint(
            "reason IN ('credit_pack', 'subscription_grant', 'reserve', "
            "'refund_hold', 'commit_adjustment', 'admin_correction')",
            name="ck_ledger_reason",
        ),
        CheckConstraint("balance_after >= 0", name="ck_ledger_balance_gte_0"),
        CheckConstraint(
            "idempotency_key IS NOT NULL "
            "OR reason IN ('admin_correction', 'commit_adjustment')",
            name="ck_ledger_key_required",
        ),
        Index(
            "uq_ledger_idempotency_key",
            "idempotency_key",
            unique=True,
            postgresql_where=text("idempotency_key IS NOT NULL"),
        ),
        Index("idx_ledger_user_id", "user_id", "id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(USER_ID_MAX_LENGTH), nullable=False)
    delta: Mapped[int] = mapped_column(BigInteger, nullable=False)
    daily_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(160), nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    # NOTE: No updated_at: ledger_entries is append-only


class HoldORM(Base):
    __tablename__ = "holds"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_holds_amount_gt_0"),
        CheckConstraint(
            "daily_portion + balance_portion = amount", name="ck_holds_split_sums"
        ),
        CheckConstraint(
            "status IN ('reserved', 'committed', 'canceled')", name="ck_holds_status"
        ),
        Index("idx_holds_status_expires", "status", "expires_at"),
        Index("idx_holds_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(USER_ID_MAX_LENGTH), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    daily_portion: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    balance_portion: Mapped[int] = mapped_column(Integer, nullable=False)
    cap_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
