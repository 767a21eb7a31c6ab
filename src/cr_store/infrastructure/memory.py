"""InMemoryCreditStore: single-process store with the SQL store's semantics.

Used for tests and local runs (STORE_BACKEND=memory). Each mutating method
runs its check-and-write without awaiting in between, which gives it the same
all-or-nothing behaviour as one database transaction. Reads await a yield
point first so concurrent callers genuinely interleave.
"""

import asyncio
import copy
import itertools
from collections.abc import Awaitable, Callable
from datetime import date, datetime

from src.cr_common.datetime_utils import utc_now
from src.cr_common.errors import InternalError
from src.cr_store.domain.models import (
    Account,
    AccountChange,
    Hold,
    HoldInsert,
    HoldTransition,
    LedgerEntry,
    LinkedWrite,
    WriteOutcome,
)


async def _default_yield() -> None:
    await asyncio.sleep(0)


class InMemoryCreditStore:
    def __init__(self, yield_point: Callable[[], Awaitable[None]] | None = None) -> None:
        self.accounts: dict[str, Account] = {}
        self.entries: list[LedgerEntry] = []
        self.holds: dict[str, Hold] = {}
        self._keys: dict[str, LedgerEntry] = {}
        self._ids = itertools.count(1)
        self._yield = yield_point or _default_yield

    async def get_account(self, user_id: str) -> Account | None:
        await self._yield()
        account = self.accounts.get(user_id)
        return copy.deepcopy(account) if account else None

    async def create_account(
        self, user_id: str, plan: str, daily_credits_cap: int | None, today: date
    ) -> Account:
        await self._yield()
        if user_id not in self.accounts:
            now = utc_now()
            self.accounts[user_id] = Account(
                user_id=user_id,
                balance=0,
                version=0,
                plan=plan,
                daily_credits_used=0,
                daily_credits_cap=daily_credits_cap,
                last_daily_reset_date=today if daily_credits_cap is not None else None,
                created_at=now,
                updated_at=now,
            )
        return copy.deepcopy(self.accounts[user_id])

    async def find_entry(self, idempotency_key: str) -> LedgerEntry | None:
        await self._yield()
        entry = self._keys.get(idempotency_key)
        return copy.deepcopy(entry) if entry else None

    async def apply_change(
        self, change: AccountChange, linked: LinkedWrite | None = None
    ) -> WriteOutcome:
        await self._yield()
        # --- atomic section: no awaits below this line ---
        account = self.accounts.get(change.user_id)
        if account is None or account.version != change.expected_version:
            return WriteOutcome.VERSION_CONFLICT
        key = change.entry.idempotency_key
        if key is not None and key in self._keys:
            return WriteOutcome.DUPLICATE_KEY
        if change.balance_after < 0:
            raise InternalError("ck_accounts_balance_gte_0 violated")
        if linked is not None and not self._check_linked(linked):
            return WriteOutcome.LINKED_CONFLICT

        account.balance = change.balance_after
        account.daily_credits_used = change.daily_credits_used_after
        account.last_daily_reset_date = change.last_daily_reset_date_after
        account.version += 1
        account.updated_at = utc_now()

        entry = LedgerEntry(
            id=next(self._ids),
            user_id=change.entry.user_id,
            delta=change.entry.delta,
            daily_delta=change.entry.daily_delta,
            reason=change.entry.reason,
            balance_after=change.balance_after,
            idempotency_key=key,
            metadata=dict(change.entry.metadata),
            created_at=change.entry.created_at,
        )
        self.entries.append(entry)
        if key is not None:
            self._keys[key] = entry
        if linked is not None:
            self._write_linked(linked)
        return WriteOutcome.APPLIED

    def _check_linked(self, linked: LinkedWrite) -> bool:
        if isinstance(linked, HoldInsert):
            return linked.hold.id not in self.holds
        if isinstance(linked, HoldTransition):
            hold = self.holds.get(linked.hold_id)
            return hold is not None and hold.status == linked.from_status
        raise InternalError(f"Unsupported linked write: {type(linked).__name__}")

    def _write_linked(self, linked: LinkedWrite) -> None:
        if isinstance(linked, HoldInsert):
            self.holds[linked.hold.id] = copy.deepcopy(linked.hold)
        elif isinstance(linked, HoldTransition):
            hold = self.holds[linked.hold_id]
            hold.status = linked.to_status
            hold.settled_at = linked.at

    async def update_plan(
        self,
        user_id: str,
        expected_version: int,
        plan: str,
        daily_credits_cap: int | None,
        last_daily_reset_date: date | None,
    ) -> bool:
        await self._yield()
        account = self.accounts.get(user_id)
        if account is None or account.version != expected_version:
            return False
        account.plan = plan
        account.daily_credits_cap = daily_credits_cap
        account.daily_credits_used = 0
        account.last_daily_reset_date = last_daily_reset_date
        account.version += 1
        account.updated_at = utc_now()
        return True

    async def get_hold(self, hold_id: str) -> Hold | None:
        await self._yield()
        hold = self.holds.get(hold_id)
        return copy.deepcopy(hold) if hold else None

    async def transition_hold(
        self, hold_id: str, from_status: str, to_status: str, at: datetime
    ) -> bool:
        await self._yield()
        transition = HoldTransition(hold_id, from_status, to_status, at)
        if not self._check_linked(transition):
            return False
        self._write_linked(transition)
        return True

    async def list_expired_holds(self, now: datetime, limit: int) -> list[Hold]:
        await self._yield()
        expired = sorted(
            (h for h in self.holds.values() if h.is_reserved and h.expires_at < now),
            key=lambda h: h.expires_at,
        )
        return [copy.deepcopy(h) for h in expired[:limit]]

    async def list_entries(
        self,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        reason: str | None,
    ) -> list[LedgerEntry]:
        await self._yield()
        matching = [
            e
            for e in reversed(self.entries)
            if e.user_id == user_id
            and (cursor_id is None or e.id < cursor_id)
            and (reason is None or e.reason == reason)
        ]
        return [copy.deepcopy(e) for e in matching[:limit]]
