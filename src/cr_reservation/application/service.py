"""ReservationManager: hold lifecycle on top of the balance engine.

    reserve ──► reserved ──► committed   (no ledger entry)
                   │
                   └───────► canceled    (one refund_hold entry)

The debit and the hold row are written in one transaction, and so are the
refund and the reserved → canceled transition, so a hold can never be
settled twice and a refund can never exist without its cancellation.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from config.settings import settings
from src.cr_balance.application.engine import BalanceEngine
from src.cr_common.datetime_utils import utc_now
from src.cr_common.enums import HoldStatus, LedgerReason
from src.cr_common.errors import HoldNotFoundError, InvalidAmountError
from src.cr_reservation.application.schemas import (
    HoldStatusResponse,
    HoldView,
    ReserveResult,
    SweepResult,
)
from src.cr_store.domain.models import Hold, HoldInsert, HoldTransition, WriteOutcome
from src.cr_store.domain.repository import CreditStoreProtocol
from src.cr_trial.domain.daily_cap import Split

logger = logging.getLogger(__name__)

REFUND_KEY_PREFIX = "refund_"


def refund_key(hold_id: str) -> str:
    return f"{REFUND_KEY_PREFIX}{hold_id}"


def _to_view(hold: Hold) -> HoldView:
    return HoldView(
        hold_id=hold.id,
        user_id=hold.user_id,
        amount=hold.amount,
        daily_portion=hold.daily_portion,
        balance_portion=hold.balance_portion,
        status=hold.status,
        cap_date=hold.cap_date,
        created_at=hold.created_at,
        expires_at=hold.expires_at,
        settled_at=hold.settled_at,
    )


class ReservationManager:
    def __init__(
        self,
        engine: BalanceEngine,
        store: CreditStoreProtocol,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._engine = engine
        self._store = store
        self._ttl_seconds = ttl_seconds or settings.HOLD_TTL_SECONDS
        self._clock = clock

    async def reserve(
        self,
        user_id: str,
        amount: int,
        ttl: int | None = None,
        idempotency_key: str | None = None,
    ) -> ReserveResult:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(f"hold amount must be a positive integer, got {amount!r}")
        if ttl is not None and ttl <= 0:
            raise InvalidAmountError(f"hold ttl must be positive, got {ttl!r}")
        hold_id = idempotency_key or uuid.uuid4().hex
        ttl_delta = timedelta(seconds=ttl or self._ttl_seconds)
        built: list[Hold] = []

        def link(split: Split, now: datetime) -> HoldInsert:
            hold = Hold(
                id=hold_id,
                user_id=user_id,
                amount=amount,
                daily_portion=split.daily,
                balance_portion=split.balance,
                status=HoldStatus.RESERVED.value,
                created_at=now,
                expires_at=now + ttl_delta,
                cap_date=split.cap_date,
            )
            built.append(hold)
            return HoldInsert(hold)

        result = await self._engine.spend(
            user_id,
            amount,
            LedgerReason.RESERVE,
            idempotency_key=hold_id,
            metadata={"hold_id": hold_id},
            link=link,
        )

        if result.applied:
            hold = built[-1]
            logger.info(
                "Hold reserved: hold=%s user=%s amount=%d daily=%d balance=%d",
                hold_id,
                user_id,
                amount,
                hold.daily_portion,
                hold.balance_portion,
            )
            return ReserveResult(
                hold_id=hold_id,
                balance_after=result.balance,
                expires_at=hold.expires_at,
                daily_portion=hold.daily_portion,
                balance_portion=hold.balance_portion,
            )

        # Replay (or a hold id clash): report the hold that already exists
        existing = await self._store.get_hold(hold_id)
        if existing is None:
            logger.error("Reserve key %s is taken but no hold exists", hold_id)
            raise HoldNotFoundError(hold_id)
        return ReserveResult(
            hold_id=existing.id,
            balance_after=result.balance,
            expires_at=existing.expires_at,
            daily_portion=existing.daily_portion,
            balance_portion=existing.balance_portion,
            replayed=True,
        )

    async def get_hold(self, hold_id: str) -> HoldView:
        return _to_view(await self._require(hold_id))

    async def commit(self, hold_id: str) -> HoldStatusResponse:
        """Finalise the debit. Settled holds report their status unchanged."""
        hold = await self._require(hold_id)
        if not hold.is_reserved:
            return HoldStatusResponse(hold_id=hold_id, status=hold.status)

        moved = await self._store.transition_hold(
            hold_id,
            HoldStatus.RESERVED.value,
            HoldStatus.COMMITTED.value,
            self._clock(),
        )
        if moved:
            logger.info("Hold committed: hold=%s user=%s", hold_id, hold.user_id)
            return HoldStatusResponse(hold_id=hold_id, status=HoldStatus.COMMITTED.value)
        # Lost the race to a cancel or the sweeper
        current = await self._require(hold_id)
        return HoldStatusResponse(hold_id=hold_id, status=current.status)

    async def cancel(self, hold_id: str) -> HoldStatusResponse:
        """Refund the hold's split and mark it canceled, exactly once."""
        status, _ = await self._cancel(await self._require(hold_id))
        return HoldStatusResponse(hold_id=hold_id, status=status)

    async def _cancel(self, hold: Hold) -> tuple[str, bool]:
        """Returns (status after the call, whether this call did the cancel)."""
        hold_id = hold.id
        if not hold.is_reserved:
            return hold.status, False

        result = await self._engine.restore(
            hold.user_id,
            Split(
                daily=hold.daily_portion,
                balance=hold.balance_portion,
                cap_date=hold.cap_date,
            ),
            LedgerReason.REFUND_HOLD,
            idempotency_key=refund_key(hold_id),
            metadata={"hold_id": hold_id},
            linked=HoldTransition(
                hold_id=hold_id,
                from_status=HoldStatus.RESERVED.value,
                to_status=HoldStatus.CANCELED.value,
                at=self._clock(),
            ),
        )
        if result.outcome is WriteOutcome.APPLIED:
            logger.info(
                "Hold canceled: hold=%s user=%s refunded=%d",
                hold_id,
                hold.user_id,
                hold.balance_portion,
            )
            return HoldStatus.CANCELED.value, True

        current = await self._require(hold_id)
        return current.status, False

    async def sweep_expired_holds(
        self, now: datetime | None = None, limit: int | None = None
    ) -> SweepResult:
        """Cancel every reserved hold whose expiry has passed."""
        now = now or self._clock()
        expired = await self._store.list_expired_holds(
            now, limit or settings.HOLD_SWEEP_BATCH_SIZE
        )
        canceled = 0
        failed = 0
        for hold in expired:
            try:
                _, applied = await self._cancel(hold)
            except Exception:
                failed += 1
                logger.exception("Failed to expire hold %s", hold.id)
                continue
            if applied:
                canceled += 1
        if expired:
            logger.info(
                "Hold sweep: scanned=%d canceled=%d failed=%d",
                len(expired),
                canceled,
                failed,
            )
        return SweepResult(scanned=len(expired), canceled=canceled, failed=failed)

    async def _require(self, hold_id: str) -> Hold:
        hold = await self._store.get_hold(hold_id)
        if hold is None:
            logger.error("Hold not found: %s", hold_id)
            raise HoldNotFoundError(hold_id)
        return hold
