"""SqlCreditStore: PostgreSQL implementation of CreditStoreProtocol.

Balance mutations are a conditional UPDATE ... WHERE version = :expected_version
followed by the ledger INSERT (and an optional hold write) inside ONE transaction.
Zero rows from the UPDATE means another writer won the race.

Idempotency is detected by attempting the insert first:
INSERT ... ON CONFLICT DO NOTHING RETURNING id yields no row when the key already
exists, and the whole transaction (balance update included) is rolled back.

Transaction ownership: each method opens and closes its own short transaction.
"""

import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.cr_common.errors import InternalError, LedgerInsertFailedError
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

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL: accounts
# ---------------------------------------------------------------------------

_ACCOUNT_COLUMNS = """
    user_id, balance, version, plan,
    daily_credits_used, daily_credits_cap, last_daily_reset_date,
    created_at, updated_at
"""

_GET_ACCOUNT_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts
    WHERE user_id = :user_id
""")

_CREATE_ACCOUNT_SQL = text("""
    INSERT INTO accounts
        (user_id, balance, version, plan,
         daily_credits_used, daily_credits_cap, last_daily_reset_date)
    VALUES
        (:user_id, 0, 0, :plan, 0, :daily_credits_cap, :last_daily_reset_date)
    ON CONFLICT (user_id) DO NOTHING
""")

_CAS_UPDATE_SQL = text("""
    UPDATE accounts
    SET balance = :balance_after,
        daily_credits_used = :daily_credits_used,
        last_daily_reset_date = :last_daily_reset_date,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND version = :expected_version
    RETURNING version
""")

_UPDATE_PLAN_SQL = text("""
    UPDATE accounts
    SET plan = :plan,
        daily_credits_cap = :daily_credits_cap,
        daily_credits_used = 0,
        last_daily_reset_date = :last_daily_reset_date,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND version = :expected_version
    RETURNING version
""")

# ---------------------------------------------------------------------------
# SQL: ledger_entries
# ---------------------------------------------------------------------------

_LEDGER_COLUMNS = """
    id, user_id, delta, daily_delta, reason, balance_after,
    idempotency_key, metadata, created_at
"""

_INSERT_LEDGER_SQL = text("""
    INSERT INTO ledger_entries
        (user_id, delta, daily_delta, reason, balance_after,
         idempotency_key, metadata, created_at)
    VALUES
        (:user_id, :delta, :daily_delta, :reason, :balance_after,
         :idempotency_key, CAST(:metadata AS JSONB), :created_at)
    ON CONFLICT (idempotency_key) WHERE idempotency_key IS NOT NULL DO NOTHING
    RETURNING id
""")

_GET_ENTRY_BY_KEY_SQL = text(f"""
    SELECT {_LEDGER_COLUMNS}
    FROM ledger_entries
    WHERE idempotency_key = :idempotency_key
""")

_LIST_LEDGER_SQL = text(f"""
    SELECT {_LEDGER_COLUMNS}
    FROM ledger_entries
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
      AND (CAST(:reason AS VARCHAR) IS NULL OR reason = :reason)
    ORDER BY id DESC
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# SQL: holds
# ---------------------------------------------------------------------------

_HOLD_COLUMNS = """
    id, user_id, amount, daily_portion, balance_portion, cap_date,
    status, created_at, expires_at, settled_at
"""

_INSERT_HOLD_SQL = text("""
    INSERT INTO holds
        (id, user_id, amount, daily_portion, balance_portion, cap_date,
         status, created_at, expires_at)
    VALUES
        (:id, :user_id, :amount, :daily_portion, :balance_portion, :cap_date,
         :status, :created_at, :expires_at)
    ON CONFLICT (id) DO NOTHING
    RETURNING id
""")

_TRANSITION_HOLD_SQL = text("""
    UPDATE holds
    SET status = :to_status,
        settled_at = :at
    WHERE id = :hold_id AND status = :from_status
    RETURNING id
""")

_GET_HOLD_SQL = text(f"""
    SELECT {_HOLD_COLUMNS}
    FROM holds
    WHERE id = :hold_id
""")

_LIST_EXPIRED_HOLDS_SQL = text(f"""
    SELECT {_HOLD_COLUMNS}
    FROM holds
    WHERE status = 'reserved' AND expires_at < :now
    ORDER BY expires_at ASC
    LIMIT :limit
""")


def _row_to_account(row: object) -> Account:
    return Account(
        user_id=row.user_id,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        plan=row.plan,  # type: ignore[attr-defined]
        daily_credits_used=row.daily_credits_used,  # type: ignore[attr-defined]
        daily_credits_cap=row.daily_credits_cap,  # type: ignore[attr-defined]
        last_daily_reset_date=row.last_daily_reset_date,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _decode_metadata(raw: Any) -> dict[str, Any]:
    # asyncpg hands JSONB back as text unless a codec is registered
    if raw is None:
        return {}
    if isinstance(raw, str):
        return dict(json.loads(raw))
    return dict(raw)


def _row_to_ledger(row: object) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        delta=row.delta,  # type: ignore[attr-defined]
        daily_delta=row.daily_delta,  # type: ignore[attr-defined]
        reason=row.reason,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        idempotency_key=row.idempotency_key,  # type: ignore[attr-defined]
        metadata=_decode_metadata(row.metadata),  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_hold(row: object) -> Hold:
    return Hold(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        daily_portion=row.daily_portion,  # type: ignore[attr-defined]
        balance_portion=row.balance_portion,  # type: ignore[attr-defined]
        cap_date=row.cap_date,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        expires_at=row.expires_at,  # type: ignore[attr-defined]
        settled_at=row.settled_at,  # type: ignore[attr-defined]
    )


class _AbortWrite(Exception):
    """Raised inside a transaction to roll it back with a given outcome."""

    def __init__(self, outcome: WriteOutcome) -> None:
        self.outcome = outcome
        super().__init__(outcome.value)


class SqlCreditStore:
    """Concrete store; every mutation is a single atomic transaction."""

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_account(self, user_id: str) -> Account | None:
        async with self._session_factory() as db:
            result = await db.execute(_GET_ACCOUNT_SQL, {"user_id": user_id})
            row = result.fetchone()
        return _row_to_account(row) if row else None

    async def create_account(
        self, user_id: str, plan: str, daily_credits_cap: int | None, today: date
    ) -> Account:
        async with self._session_factory() as db, db.begin():
            await db.execute(
                _CREATE_ACCOUNT_SQL,
                {
                    "user_id": user_id,
                    "plan": plan,
                    "daily_credits_cap": daily_credits_cap,
                    "last_daily_reset_date": today if daily_credits_cap is not None else None,
                },
            )
            result = await db.execute(_GET_ACCOUNT_SQL, {"user_id": user_id})
            row = result.fetchone()
        if row is None:
            raise InternalError(f"Account insert for {user_id} returned no rows")
        return _row_to_account(row)

    async def find_entry(self, idempotency_key: str) -> LedgerEntry | None:
        async with self._session_factory() as db:
            result = await db.execute(
                _GET_ENTRY_BY_KEY_SQL, {"idempotency_key": idempotency_key}
            )
            row = result.fetchone()
        return _row_to_ledger(row) if row else None

    async def apply_change(
        self, change: AccountChange, linked: LinkedWrite | None = None
    ) -> WriteOutcome:
        entry = change.entry
        try:
            async with self._session_factory() as db, db.begin():
                result = await db.execute(
                    _CAS_UPDATE_SQL,
                    {
                        "user_id": change.user_id,
                        "expected_version": change.expected_version,
                        "balance_after": change.balance_after,
                        "daily_credits_used": change.daily_credits_used_after,
                        "last_daily_reset_date": change.last_daily_reset_date_after,
                    },
                )
                if result.fetchone() is None:
                    raise _AbortWrite(WriteOutcome.VERSION_CONFLICT)

                try:
                    ledger_result = await db.execute(
                        _INSERT_LEDGER_SQL,
                        {
                            "user_id": entry.user_id,
                            "delta": entry.delta,
                            "daily_delta": entry.daily_delta,
                            "reason": entry.reason,
                            "balance_after": change.balance_after,
                            "idempotency_key": entry.idempotency_key,
                            "metadata": json.dumps(entry.metadata),
                            "created_at": entry.created_at,
                        },
                    )
                except SQLAlchemyError as exc:
                    logger.error(
                        "Ledger insert failed, rolling back balance update: user=%s key=%s",
                        entry.user_id,
                        entry.idempotency_key,
                    )
                    raise LedgerInsertFailedError(str(exc)) from exc
                if ledger_result.fetchone() is None:
                    raise _AbortWrite(WriteOutcome.DUPLICATE_KEY)

                if linked is not None and not await self._apply_linked(db, linked):
                    raise _AbortWrite(WriteOutcome.LINKED_CONFLICT)
        except _AbortWrite as abort:
            return abort.outcome
        return WriteOutcome.APPLIED

    async def _apply_linked(self, db: AsyncSession, linked: LinkedWrite) -> bool:
        if isinstance(linked, HoldInsert):
            hold = linked.hold
            result = await db.execute(
                _INSERT_HOLD_SQL,
                {
                    "id": hold.id,
                    "user_id": hold.user_id,
                    "amount": hold.amount,
                    "daily_portion": hold.daily_portion,
                    "balance_portion": hold.balance_portion,
                    "cap_date": hold.cap_date,
                    "status": hold.status,
                    "created_at": hold.created_at,
                    "expires_at": hold.expires_at,
                },
            )
            return result.fetchone() is not None
        if isinstance(linked, HoldTransition):
            return await self._transition(
                db, linked.hold_id, linked.from_status, linked.to_status, linked.at
            )
        raise InternalError(f"Unsupported linked write: {type(linked).__name__}")

    async def _transition(
        self, db: AsyncSession, hold_id: str, from_status: str, to_status: str, at: datetime
    ) -> bool:
        result = await db.execute(
            _TRANSITION_HOLD_SQL,
            {
                "hold_id": hold_id,
                "from_status": from_status,
                "to_status": to_status,
                "at": at,
            },
        )
        return result.fetchone() is not None

    async def update_plan(
        self,
        user_id: str,
        expected_version: int,
        plan: str,
        daily_credits_cap: int | None,
        last_daily_reset_date: date | None,
    ) -> bool:
        async with self._session_factory() as db, db.begin():
            result = await db.execute(
                _UPDATE_PLAN_SQL,
                {
                    "user_id": user_id,
                    "expected_version": expected_version,
                    "plan": plan,
                    "daily_credits_cap": daily_credits_cap,
                    "last_daily_reset_date": last_daily_reset_date,
                },
            )
            return result.fetchone() is not None

    async def get_hold(self, hold_id: str) -> Hold | None:
        async with self._session_factory() as db:
            result = await db.execute(_GET_HOLD_SQL, {"hold_id": hold_id})
            row = result.fetchone()
        return _row_to_hold(row) if row else None

    async def transition_hold(
        self, hold_id: str, from_status: str, to_status: str, at: datetime
    ) -> bool:
        async with self._session_factory() as db, db.begin():
            return await self._transition(db, hold_id, from_status, to_status, at)

    async def list_expired_holds(self, now: datetime, limit: int) -> list[Hold]:
        async with self._session_factory() as db:
            result = await db.execute(_LIST_EXPIRED_HOLDS_SQL, {"now": now, "limit": limit})
            rows = result.fetchall()
        return [_row_to_hold(row) for row in rows]

    async def list_entries(
        self,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        reason: str | None,
    ) -> list[LedgerEntry]:
        async with self._session_factory() as db:
            result = await db.execute(
                _LIST_LEDGER_SQL,
                {
                    "user_id": user_id,
                    "cursor_id": cursor_id,
                    "reason": reason,
                    "limit": limit,
                },
            )
            rows = result.fetchall()
        return [_row_to_ledger(row) for row in rows]
