"""Daily trial cap: pure date-scoped arithmetic, no I/O.

The tracker never writes anything itself. It turns a freshly read Account into
the daily counter values the Balance Engine should write, so the rollover and
the draw land in the same compare-and-swap update as the balance change.

Calendar days are evaluated in one fixed reference timezone
(DAILY_RESET_TIMEZONE) so every worker agrees on when a day rolls over.
"""

from dataclasses import dataclass
from datetime import date, datetime

from src.cr_common.datetime_utils import calendar_date
from src.cr_common.errors import DailyCapExceededError
from src.cr_store.domain.models import Account


@dataclass(frozen=True)
class DailyState:
    """Daily counter after rollover has been applied for `today`."""

    used: int
    cap: int | None
    reset_date: date | None

    @property
    def remaining(self) -> int | None:
        if self.cap is None:
            return None
        return max(0, self.cap - self.used)


@dataclass(frozen=True)
class Split:
    """How an amount is divided between the daily cap and the durable balance."""

    daily: int
    balance: int
    cap_date: date | None = None

    @property
    def total(self) -> int:
        return self.daily + self.balance


class DailyCapTracker:
    def __init__(self, tz_name: str = "UTC") -> None:
        self._tz_name = tz_name

    def today(self, now: datetime) -> date:
        return calendar_date(now, self._tz_name)

    def current(self, account: Account, now: datetime) -> DailyState:
        """Apply day rollover to the account's counter without mutating it."""
        if not account.is_trial or account.daily_credits_cap is None:
            return DailyState(
                used=account.daily_credits_used,
                cap=None,
                reset_date=account.last_daily_reset_date,
            )
        today = self.today(now)
        if account.last_daily_reset_date != today:
            return DailyState(used=0, cap=account.daily_credits_cap, reset_date=today)
        return DailyState(
            used=account.daily_credits_used,
            cap=account.daily_credits_cap,
            reset_date=account.last_daily_reset_date,
        )

    def plan_draw(self, account: Account, amount: int, now: datetime) -> tuple[Split, DailyState]:
        """Split `amount` for a debit and return the counter to write.

        Non-trial accounts draw everything from the balance. Trial accounts draw
        from the remaining daily cap first and the balance for the rest; a trial
        account whose cap is already exhausted cannot draw at all.
        """
        state = self.current(account, now)
        if state.cap is None:
            return Split(daily=0, balance=amount), state
        remaining = state.remaining or 0
        if remaining == 0:
            raise DailyCapExceededError(state.cap, state.used)
        daily = min(amount, remaining)
        after = DailyState(used=state.used + daily, cap=state.cap, reset_date=state.reset_date)
        return Split(daily=daily, balance=amount - daily, cap_date=state.reset_date), after

    def plan_restore(
        self, account: Account, split: Split, now: datetime
    ) -> tuple[Split, DailyState]:
        """Work out what a refund of `split` gives back.

        The daily portion is returned to the counter only when it was drawn on
        the account's current cap day; after a rollover the counter already
        started from zero. The daily portion is never turned into balance.
        """
        state = self.current(account, now)
        if split.daily == 0 or state.cap is None or split.cap_date != state.reset_date:
            return Split(daily=0, balance=split.balance, cap_date=split.cap_date), state
        daily = min(split.daily, state.used)
        after = DailyState(used=state.used - daily, cap=state.cap, reset_date=state.reset_date)
        return Split(daily=daily, balance=split.balance, cap_date=split.cap_date), after
