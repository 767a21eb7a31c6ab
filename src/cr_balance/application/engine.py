"""Balance engine: signed credit deltas under optimistic concurrency control.

Every mutation follows the same bounded loop:

  1. read the account (fresh on every attempt, no lock held)
  2. compute the new balance / daily counter, rejecting anything negative
  3. ask the store to apply it WHERE version = <version read in step 1>,
     together with the ledger row (and an optional linked write) in one
     transaction
  4. on a version conflict go back to 1, at most CREDIT_MAX_CAS_RETRIES times

An idempotency key already present in the ledger turns the call into a no-op
that reports the account's current state. The engine knows nothing about
holds: a linked write is passed through to the store untouched.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from config.settings import settings
from src.cr_balance.application.schemas import (
    BalanceView,
    LedgerEntryItem,
    LedgerResponse,
    cursor_decode,
    cursor_encode,
)
from src.cr_common.datetime_utils import utc_now
from src.cr_common.enums import LedgerReason, Plan
from src.cr_common.errors import (
    AccountNotFoundError,
    ConcurrencyConflictError,
    DailyCapExceededError,
    InsufficientCreditsError,
    InvalidAmountError,
)
from src.cr_policy.domain.plans import daily_credits_cap, normalize_plan
from src.cr_store.domain.models import (
    Account,
    AccountChange,
    LinkedWrite,
    NewLedgerEntry,
    WriteOutcome,
)
from src.cr_store.domain.repository import CreditStoreProtocol
from src.cr_trial.domain.daily_cap import DailyCapTracker, DailyState, Split

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationResult:
    balance: int
    version: int
    outcome: WriteOutcome
    split: Split | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is WriteOutcome.APPLIED

    @property
    def replayed(self) -> bool:
        return self.outcome is WriteOutcome.DUPLICATE_KEY


@dataclass(frozen=True)
class _Planned:
    delta: int
    daily_delta: int
    balance_after: int
    daily: DailyState
    split: Split | None = None


def _require_whole(value: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{name} must be an integer, got {value!r}")


class BalanceEngine:
    def __init__(
        self,
        store: CreditStoreProtocol,
        tracker: DailyCapTracker | None = None,
        max_retries: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._tracker = tracker or DailyCapTracker(settings.DAILY_RESET_TIMEZONE)
        self._max_retries = max_retries or settings.CREDIT_MAX_CAS_RETRIES
        self._clock = clock

    @property
    def tracker(self) -> DailyCapTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def open_account(self, user_id: str, plan: str | Plan = Plan.TRIAL) -> Account:
        """Create the account with a zero balance; returns the existing one if present."""
        plan = normalize_plan(plan)
        return await self._store.create_account(
            user_id,
            plan.value,
            daily_credits_cap(plan),
            self._tracker.today(self._clock()),
        )

    async def get_balance(self, user_id: str) -> BalanceView:
        account = await self._require(user_id)
        daily = self._tracker.current(account, self._clock())
        return BalanceView(
            user_id=account.user_id,
            balance=account.balance,
            version=account.version,
            plan=account.plan,
            daily_credits_used=daily.used,
            daily_credits_cap=daily.cap,
            daily_credits_remaining=daily.remaining,
            last_daily_reset_date=daily.reset_date,
        )

    async def change_plan(self, user_id: str, plan: str | Plan) -> Account:
        """Switch plan; moving onto trial starts a fresh daily counter.

        Not a balance mutation, so no ledger entry is written, but the version
        is bumped so in-flight debits re-read the new daily cap.
        """
        plan = normalize_plan(plan)
        for attempt in range(1, self._max_retries + 1):
            account = await self._require(user_id)
            if account.plan == plan.value:
                return account
            cap = daily_credits_cap(plan)
            reset = self._tracker.today(self._clock()) if cap is not None else None
            if await self._store.update_plan(user_id, account.version, plan.value, cap, reset):
                logger.info("Plan changed: user=%s %s -> %s", user_id, account.plan, plan.value)
                return await self._require(user_id)
            logger.debug("Plan change CAS conflict: user=%s attempt=%d", user_id, attempt)
        raise ConcurrencyConflictError(user_id, self._max_retries)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def apply_delta(
        self,
        user_id: str,
        delta: int,
        reason: LedgerReason | str,
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MutationResult:
        """Add `delta` credits (negative to debit) exactly once per idempotency key."""
        _require_whole(delta, "delta")
        if delta == 0:
            raise InvalidAmountError("delta must be non-zero")

        def compute(account: Account, now: datetime) -> _Planned:
            balance_after = account.balance + delta
            if balance_after < 0:
                raise InsufficientCreditsError(-delta, account.balance)
            return _Planned(
                delta=delta,
                daily_delta=0,
                balance_after=balance_after,
                daily=DailyState(
                    used=account.daily_credits_used,
                    cap=account.daily_credits_cap,
                    reset_date=account.last_daily_reset_date,
                ),
            )

        return await self._mutate(user_id, reason, idempotency_key, metadata, compute)

    async def spend(
        self,
        user_id: str,
        amount: int,
        reason: LedgerReason | str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
        link: Callable[[Split, datetime], LinkedWrite] | None = None,
    ) -> MutationResult:
        """Debit `amount`, drawing from the trial daily cap first where it applies.

        The split is recomputed from fresh state on every attempt; `link` builds
        the companion write for the split that is actually applied.
        """
        _require_whole(amount, "amount")
        if amount <= 0:
            raise InvalidAmountError("amount must be positive")

        def compute(account: Account, now: datetime) -> _Planned:
            split, daily = self._tracker.plan_draw(account, amount, now)
            if split.balance > account.balance:
                raise InsufficientCreditsError(split.balance, account.balance)
            return _Planned(
                delta=-split.balance,
                daily_delta=split.daily,
                balance_after=account.balance - split.balance,
                daily=daily,
                split=split,
            )

        return await self._mutate(
            user_id, reason, idempotency_key, metadata, compute, link=link
        )

    async def restore(
        self,
        user_id: str,
        split: Split,
        reason: LedgerReason | str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
        linked: LinkedWrite | None = None,
    ) -> MutationResult:
        """Give back a previous `spend`, each portion to where it came from."""

        def compute(account: Account, now: datetime) -> _Planned:
            granted, daily = self._tracker.plan_restore(account, split, now)
            return _Planned(
                delta=granted.balance,
                daily_delta=-granted.daily,
                balance_after=account.balance + granted.balance,
                daily=daily,
                split=granted,
            )

        return await self._mutate(
            user_id,
            reason,
            idempotency_key,
            metadata,
            compute,
            link=(lambda _split, _now: linked) if linked is not None else None,
        )

    async def _mutate(
        self,
        user_id: str,
        reason: LedgerReason | str,
        idempotency_key: str | None,
        metadata: dict[str, Any] | None,
        compute: Callable[[Account, datetime], _Planned],
        link: Callable[[Split, datetime], LinkedWrite | None] | None = None,
    ) -> MutationResult:
        reason = LedgerReason(reason)
        replay = await self._replay_if_recorded(user_id, idempotency_key)
        if replay is not None:
            return replay

        for attempt in range(1, self._max_retries + 1):
            account = await self._require(user_id)
            now = self._clock()
            try:
                planned = compute(account, now)
            except (InsufficientCreditsError, DailyCapExceededError):
                # A concurrent call with the same key may have spent the credits
                replay = await self._replay_if_recorded(user_id, idempotency_key)
                if replay is not None:
                    return replay
                raise
            change = AccountChange(
                user_id=user_id,
                expected_version=account.version,
                balance_after=planned.balance_after,
                daily_credits_used_after=planned.daily.used,
                last_daily_reset_date_after=planned.daily.reset_date,
                entry=NewLedgerEntry(
                    user_id=user_id,
                    delta=planned.delta,
                    daily_delta=planned.daily_delta,
                    reason=reason.value,
                    idempotency_key=idempotency_key,
                    metadata=dict(metadata or {}),
                    created_at=now,
                ),
            )
            linked = link(planned.split, now) if link is not None and planned.split else None
            outcome = await self._store.apply_change(change, linked)

            if outcome is WriteOutcome.APPLIED:
                logger.debug(
                    "Credit delta applied: user=%s reason=%s delta=%d daily=%d balance=%d",
                    user_id,
                    reason.value,
                    planned.delta,
                    planned.daily_delta,
                    planned.balance_after,
                )
                return MutationResult(
                    balance=planned.balance_after,
                    version=account.version + 1,
                    outcome=outcome,
                    split=planned.split,
                )
            if outcome is WriteOutcome.DUPLICATE_KEY:
                logger.info("Credit idempotency hit on insert: key=%s", idempotency_key)
                return await self._replay(user_id, planned.split)
            if outcome is WriteOutcome.LINKED_CONFLICT:
                current = await self._require(user_id)
                return MutationResult(current.balance, current.version, outcome)

            logger.debug(
                "Credit CAS conflict: user=%s version=%d attempt=%d/%d",
                user_id,
                account.version,
                attempt,
                self._max_retries,
            )

        logger.warning("Credit CAS retries exhausted: user=%s", user_id)
        raise ConcurrencyConflictError(user_id, self._max_retries)

    async def _replay_if_recorded(
        self, user_id: str, idempotency_key: str | None
    ) -> MutationResult | None:
        if idempotency_key is None:
            return None
        existing = await self._store.find_entry(idempotency_key)
        if existing is None:
            return None
        logger.info("Credit idempotency hit: key=%s", idempotency_key)
        return await self._replay(
            user_id, Split(daily=existing.daily_delta, balance=-existing.delta)
        )

    async def _replay(self, user_id: str, split: Split | None) -> MutationResult:
        current = await self._require(user_id)
        return MutationResult(
            balance=current.balance,
            version=current.version,
            outcome=WriteOutcome.DUPLICATE_KEY,
            split=split,
        )

    async def _require(self, user_id: str) -> Account:
        account = await self._store.get_account(user_id)
        if account is None:
            raise AccountNotFoundError(user_id)
        return account

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def list_history(
        self,
        user_id: str,
        cursor: str | None,
        limit: int,
        reason: str | None = None,
    ) -> LedgerResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._store.list_entries(user_id, cursor_id, limit + 1, reason)
        has_more = len(entries) > limit
        page = entries[:limit]

        items = [
            LedgerEntryItem(
                id=e.id,
                delta=e.delta,
                daily_delta=e.daily_delta,
                reason=e.reason,
                balance_after=e.balance_after,
                idempotency_key=e.idempotency_key,
                metadata=e.metadata,
                created_at=e.created_at.isoformat() if e.created_at else "",
            )
            for e in page
        ]

        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return LedgerResponse(items=items, next_cursor=next_cursor, has_more=has_more)
