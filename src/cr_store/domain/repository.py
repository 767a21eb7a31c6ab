"""Store Protocol: dependency inversion for testability.

The SQL store and the in-memory store both conform to this Protocol.
Every method is one short atomic unit; no method holds a lock or a
transaction open after it returns.
"""

from datetime import date, datetime
from typing import Protocol

from src.cr_store.domain.models import (
    Account,
    AccountChange,
    Hold,
    LedgerEntry,
    LinkedWrite,
    WriteOutcome,
)


class CreditStoreProtocol(Protocol):
    async def get_account(self, user_id: str) -> Account | None: ...

    async def create_account(
        self, user_id: str, plan: str, daily_credits_cap: int | None, today: date
    ) -> Account: ...

    async def find_entry(self, idempotency_key: str) -> LedgerEntry | None: ...

    async def apply_change(
        self, change: AccountChange, linked: LinkedWrite | None = None
    ) -> WriteOutcome: ...

    async def update_plan(
        self,
        user_id: str,
        expected_version: int,
        plan: str,
        daily_credits_cap: int | None,
        last_daily_reset_date: date | None,
    ) -> bool: ...

    async def get_hold(self, hold_id: str) -> Hold | None: ...

    async def transition_hold(
        self, hold_id: str, from_status: str, to_status: str, at: datetime
    ) -> bool: ...

    async def list_expired_holds(self, now: datetime, limit: int) -> list[Hold]: ...

    async def list_entries(
        self,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        reason: str | None,
    ) -> list[LedgerEntry]: ...
