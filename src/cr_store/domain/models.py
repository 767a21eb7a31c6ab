"""Domain models for the ledger store: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

# accounts.user_id is VARCHAR(64)
USER_ID_MAX_LENGTH = 64


@dataclass
class Account:
    user_id: str
    balance: int                       # whole credits, never negative
    version: int                       # CAS token, +1 per mutation
    plan: str                          # Plan value
    daily_credits_used: int = 0        # trial only
    daily_credits_cap: int | None = None
    last_daily_reset_date: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_trial(self) -> bool:
        return self.plan == "trial"


@dataclass
class LedgerEntry:
    id: int                            # BIGSERIAL
    user_id: str
    delta: int                         # durable balance change, signed
    daily_delta: int                   # daily_credits_used change, signed
    reason: str                        # LedgerReason value
    balance_after: int
    idempotency_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class Hold:
    id: str                            # idempotency key of the reserve entry
    user_id: str
    amount: int
    daily_portion: int
    balance_portion: int
    status: str                        # HoldStatus value
    created_at: datetime
    expires_at: datetime
    cap_date: date | None = None       # trial day the daily portion was drawn on
    settled_at: datetime | None = None

    @property
    def is_reserved(self) -> bool:
        return self.status == "reserved"


# ---------------------------------------------------------------------------
# Write descriptions: built by the engine, executed atomically by the store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NewLedgerEntry:
    user_id: str
    delta: int
    daily_delta: int
    reason: str
    idempotency_key: str | None
    metadata: dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class AccountChange:
    """Conditional account update plus its paired ledger row.

    Applied only if the stored version still equals `expected_version`.
    """

    user_id: str
    expected_version: int
    balance_after: int
    daily_credits_used_after: int
    last_daily_reset_date_after: date | None
    entry: NewLedgerEntry


@dataclass(frozen=True)
class HoldInsert:
    hold: Hold


@dataclass(frozen=True)
class HoldTransition:
    hold_id: str
    from_status: str
    to_status: str
    at: datetime


# Companion write committed in the same transaction as an AccountChange.
LinkedWrite = HoldInsert | HoldTransition


class WriteOutcome(str, Enum):
    APPLIED = "APPLIED"
    VERSION_CONFLICT = "VERSION_CONFLICT"   # another writer bumped the version
    DUPLICATE_KEY = "DUPLICATE_KEY"         # idempotency key already in the ledger
    LINKED_CONFLICT = "LINKED_CONFLICT"     # hold insert/transition did not apply
