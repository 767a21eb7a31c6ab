"""BillingService: turns payment-provider events into credit grants.

Provider event ids are used as ledger idempotency keys, so a webhook that is
delivered twice grants once. Accounts are opened on first contact.
"""

import logging

from src.cr_balance.application.engine import BalanceEngine
from src.cr_billing.application.schemas import GrantResponse
from src.cr_common.enums import LedgerReason, Plan
from src.cr_policy.domain.plans import credit_pack, included_credits, normalize_plan
from src.cr_store.domain.models import Account
from src.cr_store.domain.repository import CreditStoreProtocol

logger = logging.getLogger(__name__)


class BillingService:
    def __init__(self, engine: BalanceEngine, store: CreditStoreProtocol) -> None:
        self._engine = engine
        self._store = store

    async def grant_credit_pack(self, user_id: str, pack: str, event_id: str) -> GrantResponse:
        offer = credit_pack(pack)
        account = await self._ensure_account(user_id)
        result = await self._engine.apply_delta(
            user_id,
            offer.credits,
            LedgerReason.CREDIT_PACK,
            idempotency_key=event_id,
            metadata={"pack": offer.key, "event_id": event_id},
        )
        if not result.replayed:
            logger.info(
                "Credit pack granted: user=%s pack=%s credits=%d",
                user_id,
                offer.key,
                offer.credits,
            )
        return GrantResponse(
            user_id=user_id,
            plan=account.plan,
            credits_granted=0 if result.replayed else offer.credits,
            balance=result.balance,
            replayed=result.replayed,
        )

    async def grant_subscription(self, user_id: str, plan: str, event_id: str) -> GrantResponse:
        """Start or renew a subscription: set the plan, then credit its allotment.

        A replayed event is detected before the plan is touched, so an old
        delivery cannot roll back a later plan change.
        """
        target = normalize_plan(plan)
        if await self._store.find_entry(event_id) is not None:
            logger.info("Subscription event already applied: key=%s", event_id)
            current = await self._engine.get_balance(user_id)
            return GrantResponse(
                user_id=user_id,
                plan=current.plan,
                credits_granted=0,
                balance=current.balance,
                replayed=True,
            )

        await self._ensure_account(user_id, target)
        account = await self._engine.change_plan(user_id, target)
        credits = included_credits(target)
        result = await self._engine.apply_delta(
            user_id,
            credits,
            LedgerReason.SUBSCRIPTION_GRANT,
            idempotency_key=event_id,
            metadata={"plan": target.value, "event_id": event_id},
        )
        if not result.replayed:
            logger.info(
                "Subscription granted: user=%s plan=%s credits=%d",
                user_id,
                target.value,
                credits,
            )
        return GrantResponse(
            user_id=user_id,
            plan=account.plan,
            credits_granted=0 if result.replayed else credits,
            balance=result.balance,
            replayed=result.replayed,
        )

    async def change_plan(self, user_id: str, plan: str) -> Account:
        await self._ensure_account(user_id)
        return await self._engine.change_plan(user_id, plan)

    async def admin_correction(self, user_id: str, delta: int, note: str) -> GrantResponse:
        """Manual adjustment by support staff; never deduplicated."""
        result = await self._engine.apply_delta(
            user_id,
            delta,
            LedgerReason.ADMIN_CORRECTION,
            metadata={"note": note},
        )
        logger.warning("Admin correction: user=%s delta=%d note=%s", user_id, delta, note)
        current = await self._engine.get_balance(user_id)
        return GrantResponse(
            user_id=user_id,
            plan=current.plan,
            credits_granted=delta,
            balance=result.balance,
            replayed=False,
        )

    async def _ensure_account(self, user_id: str, plan: Plan = Plan.TRIAL) -> Account:
        account = await self._store.get_account(user_id)
        if account is not None:
            return account
        logger.info("Opening account on first grant: user=%s plan=%s", user_id, plan.value)
        return await self._engine.open_account(user_id, plan)
