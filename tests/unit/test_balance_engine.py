"""Unit tests for BalanceEngine against the in-memory store."""

from unittest.mock import AsyncMock

import pytest

from src.cr_balance.application.engine import BalanceEngine
from src.cr_common.enums import LedgerReason
from src.cr_common.errors import (
    AccountNotFoundError,
    ConcurrencyConflictError,
    DailyCapExceededError,
    InsufficientCreditsError,
    InvalidAmountError,
)
from src.cr_store.domain.models import WriteOutcome
from src.cr_store.infrastructure.memory import InMemoryCreditStore
from src.cr_trial.domain.daily_cap import DailyCapTracker
from tests.conftest import FakeClock


async def _funded(engine: BalanceEngine, plan: str, credits: int) -> None:
    await engine.open_account("user-1", plan)
    if credits:
        await engine.apply_delta("user-1", credits, LedgerReason.CREDIT_PACK, "seed")


class TestOpenAndRead:
    async def test_new_trial_account(self, engine: BalanceEngine) -> None:
        await engine.open_account("user-1")
        view = await engine.get_balance("user-1")
        assert view.balance == 0
        assert view.version == 0
        assert view.plan == "trial"
        assert view.daily_credits_cap == 10
        assert view.daily_credits_remaining == 10

    async def test_unknown_plan_opens_as_trial(self, engine: BalanceEngine) -> None:
        account = await engine.open_account("user-1", "enterprise")
        assert account.plan == "trial"

    async def test_missing_account(self, engine: BalanceEngine) -> None:
        with pytest.raises(AccountNotFoundError):
            await engine.get_balance("ghost")

    async def test_balance_view_shows_rollover(
        self, engine: BalanceEngine, clock: FakeClock
    ) -> None:
        await _funded(engine, "trial", 0)
        await engine.spend("user-1", 4, LedgerReason.RESERVE, "h-1")
        assert (await engine.get_balance("user-1")).daily_credits_used == 4
        clock.advance(days=1)
        view = await engine.get_balance("user-1")
        assert view.daily_credits_used == 0
        assert view.daily_credits_remaining == 10


class TestApplyDelta:
    async def test_credit_and_debit(self, engine: BalanceEngine) -> None:
        await _funded(engine, "basic", 100)
        result = await engine.apply_delta("user-1", -30, LedgerReason.ADMIN_CORRECTION)
        assert result.applied
        assert result.balance == 70
        assert result.version == 2

    async def test_idempotent_replay(
        self, engine: BalanceEngine, store: InMemoryCreditStore
    ) -> None:
        await _funded(engine, "basic", 0)
        first = await engine.apply_delta("user-1", 500, "credit_pack", "evt-1")
        second = await engine.apply_delta("user-1", 500, "credit_pack", "evt-1")
        assert first.applied
        assert second.replayed
        assert second.balance == 500
        assert len(store.entries) == 1

    async def test_overdraw_rejected_without_side_effects(
        self, engine: BalanceEngine, store: InMemoryCreditStore
    ) -> None:
        await _funded(engine, "basic", 10)
        with pytest.raises(InsufficientCreditsError):
            await engine.apply_delta("user-1", -11, LedgerReason.ADMIN_CORRECTION)
        account = store.accounts["user-1"]
        assert (account.balance, account.version) == (10, 1)
        assert len(store.entries) == 1

    @pytest.mark.parametrize("delta", [0, 1.5, True])
    async def test_invalid_delta(self, engine: BalanceEngine, delta: object) -> None:
        await _funded(engine, "basic", 0)
        with pytest.raises(InvalidAmountError):
            await engine.apply_delta("user-1", delta, "credit_pack", "evt-x")  # type: ignore[arg-type]

    async def test_missing_account(self, engine: BalanceEngine) -> None:
        with pytest.raises(AccountNotFoundError):
            await engine.apply_delta("ghost", 5, "credit_pack", "evt-1")

    async def test_ledger_balance_after_matches(
        self, engine: BalanceEngine, store: InMemoryCreditStore
    ) -> None:
        await _funded(engine, "basic", 50)
        await engine.apply_delta("user-1", -20, LedgerReason.ADMIN_CORRECTION)
        assert [e.balance_after for e in store.entries] == [50, 30]
        assert sum(e.delta for e in store.entries) == store.accounts["user-1"].balance


class TestSpend:
    async def test_paid_plan_debits_balance(self, engine: BalanceEngine) -> None:
        await _funded(engine, "premium", 100)
        result = await engine.spend("user-1", 18, LedgerReason.RESERVE, "h-1")
        assert result.balance == 82
        assert result.split is not None
        assert (result.split.daily, result.split.balance) == (0, 18)

    async def test_trial_draws_cap_first(
        self, engine: BalanceEngine, store: InMemoryCreditStore
    ) -> None:
        await _funded(engine, "trial", 50)
        result = await engine.spend("user-1", 3, LedgerReason.RESERVE, "h-1")
        assert result.balance == 50
        entry = store.entries[-1]
        assert (entry.delta, entry.daily_delta) == (0, 3)
        assert store.accounts["user-1"].daily_credits_used == 3

    async def test_trial_spills_into_balance(self, engine: BalanceEngine) -> None:
        await _funded(engine, "trial", 50)
        await engine.spend("user-1", 8, LedgerReason.RESERVE, "h-1")
        result = await engine.spend("user-1", 5, LedgerReason.RESERVE, "h-2")
        assert result.split is not None
        assert (result.split.daily, result.split.balance) == (2, 3)
        assert result.balance == 47

    async def test_trial_cap_exhausted(self, engine: BalanceEngine) -> None:
        await _funded(engine, "trial", 50)
        await engine.spend("user-1", 10, LedgerReason.RESERVE, "h-1")
        with pytest.raises(DailyCapExceededError):
            await engine.spend("user-1", 1, LedgerReason.RESERVE, "h-2")

    async def test_insufficient_for_spill(self, engine: BalanceEngine) -> None:
        await _funded(engine, "trial", 2)
        with pytest.raises(InsufficientCreditsError):
            await engine.spend("user-1", 15, LedgerReason.RESERVE, "h-1")

    async def test_non_positive_amount(self, engine: BalanceEngine) -> None:
        await _funded(engine, "basic", 10)
        with pytest.raises(InvalidAmountError):
            await engine.spend("user-1", 0, LedgerReason.RESERVE, "h-1")


class TestRetries:
    async def test_version_conflicts_are_retried(self, clock: FakeClock) -> None:
        store = InMemoryCreditStore()
        engine = BalanceEngine(store, DailyCapTracker(), max_retries=5, clock=clock)
        await engine.open_account("user-1", "basic")
        real_apply = store.apply_change
        calls = 0

        async def flaky(change, linked=None):  # type: ignore[no-untyped-def]
            nonlocal calls
            calls += 1
            if calls <= 2:
                return WriteOutcome.VERSION_CONFLICT
            return await real_apply(change, linked)

        store.apply_change = flaky  # type: ignore[method-assign]
        result = await engine.apply_delta("user-1", 7, "credit_pack", "evt-1")
        assert result.applied
        assert calls == 3
        assert store.accounts["user-1"].balance == 7

    async def test_exhausted_retries_raise(self, clock: FakeClock) -> None:
        store = InMemoryCreditStore()
        engine = BalanceEngine(store, DailyCapTracker(), max_retries=5, clock=clock)
        await engine.open_account("user-1", "basic")
        store.apply_change = AsyncMock(  # type: ignore[method-assign]
            return_value=WriteOutcome.VERSION_CONFLICT
        )
        with pytest.raises(ConcurrencyConflictError):
            await engine.apply_delta("user-1", 7, "credit_pack", "evt-1")
        assert store.apply_change.await_count == 5
        assert store.entries == []


class TestChangePlan:
    async def test_upgrade_clears_daily_cap(
        self, engine: BalanceEngine, store: InMemoryCreditStore
    ) -> None:
        await _funded(engine, "trial", 20)
        account = await engine.change_plan("user-1", "advanced")
        assert account.plan == "advanced"
        assert account.daily_credits_cap is None
        assert account.version == 2
        assert len(store.entries) == 1

    async def test_downgrade_to_trial_sets_cap(self, engine: BalanceEngine) -> None:
        await _funded(engine, "basic", 0)
        account = await engine.change_plan("user-1", "trial")
        assert account.daily_credits_cap == 10
        assert account.last_daily_reset_date is not None

    async def test_same_plan_is_noop(self, engine: BalanceEngine) -> None:
        await _funded(engine, "basic", 0)
        account = await engine.change_plan("user-1", "basic")
        assert account.version == 0


class TestHistory:
    async def test_paginates_newest_first(self, engine: BalanceEngine) -> None:
        await _funded(engine, "basic", 0)
        for i in range(5):
            await engine.apply_delta("user-1", 10, "credit_pack", f"evt-{i}")
        page1 = await engine.list_history("user-1", None, 2)
        assert page1.has_more is True
        assert [item.balance_after for item in page1.items] == [50, 40]
        page2 = await engine.list_history("user-1", page1.next_cursor, 2)
        assert [item.balance_after for item in page2.items] == [30, 20]
        page3 = await engine.list_history("user-1", page2.next_cursor, 2)
        assert [item.balance_after for item in page3.items] == [10]
        assert page3.has_more is False
        assert page3.next_cursor is None

    async def test_bad_cursor_starts_from_top(self, engine: BalanceEngine) -> None:
        await _funded(engine, "basic", 10)
        page = await engine.list_history("user-1", "not-base64!", 10)
        assert len(page.items) == 1
