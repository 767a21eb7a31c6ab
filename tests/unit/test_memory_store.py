"""Unit tests for InMemoryCreditStore: the atomic write contract every store honours."""

from datetime import UTC, date, datetime, timedelta

import pytest

from src.cr_common.errors import InternalError
from src.cr_store.domain.models import (
    AccountChange,
    Hold,
    HoldInsert,
    HoldTransition,
    NewLedgerEntry,
    WriteOutcome,
)
from src.cr_store.infrastructure.memory import InMemoryCreditStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
TODAY = date(2026, 3, 10)


def _change(
    version: int = 0,
    balance_after: int = 100,
    key: str | None = "evt-1",
    delta: int = 100,
    reason: str = "credit_pack",
) -> AccountChange:
    return AccountChange(
        user_id="user-1",
        expected_version=version,
        balance_after=balance_after,
        daily_credits_used_after=0,
        last_daily_reset_date_after=None,
        entry=NewLedgerEntry(
            user_id="user-1",
            delta=delta,
            daily_delta=0,
            reason=reason,
            idempotency_key=key,
            metadata={"pack": "small"},
            created_at=NOW,
        ),
    )


def _hold(hold_id: str = "h-1", status: str = "reserved", expires_in: int = 900) -> Hold:
    return Hold(
        id=hold_id,
        user_id="user-1",
        amount=5,
        daily_portion=0,
        balance_portion=5,
        status=status,
        created_at=NOW,
        expires_at=NOW + timedelta(seconds=expires_in),
    )


@pytest.fixture
async def seeded() -> InMemoryCreditStore:
    store = InMemoryCreditStore()
    await store.create_account("user-1", "basic", None, TODAY)
    return store


class TestAccounts:
    async def test_create_is_idempotent(self) -> None:
        store = InMemoryCreditStore()
        first = await store.create_account("user-1", "trial", 10, TODAY)
        second = await store.create_account("user-1", "premium", None, TODAY)
        assert first.plan == "trial"
        assert second.plan == "trial"
        assert first.last_daily_reset_date == TODAY

    async def test_returned_account_is_a_copy(self, seeded: InMemoryCreditStore) -> None:
        account = await seeded.get_account("user-1")
        assert account is not None
        account.balance = 999
        fresh = await seeded.get_account("user-1")
        assert fresh is not None and fresh.balance == 0

    async def test_missing_account(self) -> None:
        assert await InMemoryCreditStore().get_account("nobody") is None


class TestApplyChange:
    async def test_applied_bumps_version_and_appends_entry(
        self, seeded: InMemoryCreditStore
    ) -> None:
        outcome = await seeded.apply_change(_change())
        assert outcome is WriteOutcome.APPLIED
        account = await seeded.get_account("user-1")
        assert account is not None
        assert (account.balance, account.version) == (100, 1)
        entry = await seeded.find_entry("evt-1")
        assert entry is not None
        assert entry.balance_after == 100
        assert entry.metadata == {"pack": "small"}

    async def test_stale_version_conflicts(self, seeded: InMemoryCreditStore) -> None:
        await seeded.apply_change(_change())
        outcome = await seeded.apply_change(_change(version=0, key="evt-2"))
        assert outcome is WriteOutcome.VERSION_CONFLICT
        assert len(seeded.entries) == 1

    async def test_duplicate_key_leaves_balance(self, seeded: InMemoryCreditStore) -> None:
        await seeded.apply_change(_change())
        outcome = await seeded.apply_change(_change(version=1, balance_after=200))
        assert outcome is WriteOutcome.DUPLICATE_KEY
        account = await seeded.get_account("user-1")
        assert account is not None and account.balance == 100

    async def test_keyless_entries_never_collide(self, seeded: InMemoryCreditStore) -> None:
        await seeded.apply_change(_change(key=None, reason="admin_correction"))
        outcome = await seeded.apply_change(
            _change(version=1, balance_after=200, key=None, reason="admin_correction")
        )
        assert outcome is WriteOutcome.APPLIED
        assert len(seeded.entries) == 2

    async def test_negative_balance_is_rejected(self, seeded: InMemoryCreditStore) -> None:
        with pytest.raises(InternalError):
            await seeded.apply_change(_change(balance_after=-1, delta=-1))

    async def test_hold_insert_is_atomic_with_debit(self, seeded: InMemoryCreditStore) -> None:
        await seeded.apply_change(_change())
        outcome = await seeded.apply_change(
            _change(version=1, balance_after=95, key="h-1", delta=-5, reason="reserve"),
            HoldInsert(_hold()),
        )
        assert outcome is WriteOutcome.APPLIED
        assert "h-1" in seeded.holds

    async def test_failed_transition_rolls_back_refund(self, seeded: InMemoryCreditStore) -> None:
        seeded.holds["h-1"] = _hold(status="committed")
        outcome = await seeded.apply_change(
            _change(key="refund_h-1", reason="refund_hold", delta=5, balance_after=5),
            HoldTransition("h-1", "reserved", "canceled", NOW),
        )
        assert outcome is WriteOutcome.LINKED_CONFLICT
        assert seeded.entries == []
        account = await seeded.get_account("user-1")
        assert account is not None and account.version == 0


class TestHolds:
    async def test_transition_only_from_expected_status(self) -> None:
        store = InMemoryCreditStore()
        store.holds["h-1"] = _hold()
        assert await store.transition_hold("h-1", "reserved", "committed", NOW) is True
        assert await store.transition_hold("h-1", "reserved", "canceled", NOW) is False
        hold = await store.get_hold("h-1")
        assert hold is not None
        assert hold.status == "committed"
        assert hold.settled_at == NOW

    async def test_list_expired_only_reserved_and_past(self) -> None:
        store = InMemoryCreditStore()
        store.holds["old"] = _hold("old", expires_in=-60)
        store.holds["older"] = _hold("older", expires_in=-120)
        store.holds["fresh"] = _hold("fresh", expires_in=60)
        store.holds["done"] = _hold("done", status="committed", expires_in=-60)
        expired = await store.list_expired_holds(NOW, limit=10)
        assert [h.id for h in expired] == ["older", "old"]
        assert len(await store.list_expired_holds(NOW, limit=1)) == 1


class TestListEntries:
    async def test_newest_first_with_cursor_and_reason(
        self, seeded: InMemoryCreditStore
    ) -> None:
        for i in range(3):
            await seeded.apply_change(
                _change(version=i, balance_after=100 * (i + 1), key=f"evt-{i}")
            )
        await seeded.apply_change(
            _change(version=3, balance_after=290, key=None, delta=-10, reason="admin_correction")
        )
        page = await seeded.list_entries("user-1", None, 2, None)
        assert [e.id for e in page] == [4, 3]
        older = await seeded.list_entries("user-1", 3, 10, None)
        assert [e.id for e in older] == [2, 1]
        packs = await seeded.list_entries("user-1", None, 10, "credit_pack")
        assert len(packs) == 3
