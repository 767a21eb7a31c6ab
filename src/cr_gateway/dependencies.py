"""Service wiring for the internal RPC routers.

One store instance per process, chosen by STORE_BACKEND:
  postgres: SqlCreditStore over the shared async_session_factory
  memory:   InMemoryCreditStore (local runs and tests only, not durable)

Routers take their services through these functions with Depends, so tests
can swap the store with `use_store(...)` or `app.dependency_overrides`.
"""

import logging
from typing import Annotated

from fastapi import Path

from config.settings import settings
from src.cr_balance.application.engine import BalanceEngine
from src.cr_billing.application.service import BillingService
from src.cr_common.redis_client import get_redis
from src.cr_jobs.infrastructure.cache import OperationStatusCache
from src.cr_reservation.application.service import ReservationManager
from src.cr_store.domain.models import USER_ID_MAX_LENGTH
from src.cr_store.domain.repository import CreditStoreProtocol
from src.cr_store.infrastructure.memory import InMemoryCreditStore

logger = logging.getLogger(__name__)

UserIdPath = Annotated[str, Path(min_length=1, max_length=USER_ID_MAX_LENGTH)]

_store: CreditStoreProtocol | None = None
_engine: BalanceEngine | None = None
_reservations: ReservationManager | None = None
_billing: BillingService | None = None


def _build_store() -> CreditStoreProtocol:
    backend = settings.STORE_BACKEND.lower()
    if backend == "memory":
        logger.warning("Using in-memory credit store; balances are not durable")
        return InMemoryCreditStore()
    if backend != "postgres":
        raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")
    from src.cr_common.database import async_session_factory
    from src.cr_store.infrastructure.persistence import SqlCreditStore

    return SqlCreditStore(async_session_factory)


def use_store(store: CreditStoreProtocol | None) -> None:
    """Replace the process-wide store and rebuild everything on top of it."""
    global _store, _engine, _reservations, _billing  # noqa: PLW0603
    _store = store
    _engine = None
    _reservations = None
    _billing = None


def get_store() -> CreditStoreProtocol:
    global _store  # noqa: PLW0603
    if _store is None:
        _store = _build_store()
    return _store


def get_engine() -> BalanceEngine:
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = BalanceEngine(get_store())
    return _engine


def get_reservations() -> ReservationManager:
    global _reservations  # noqa: PLW0603
    if _reservations is None:
        _reservations = ReservationManager(get_engine(), get_store())
    return _reservations


def get_billing() -> BillingService:
    global _billing  # noqa: PLW0603
    if _billing is None:
        _billing = BillingService(get_engine(), get_store())
    return _billing


async def get_status_cache() -> OperationStatusCache:
    return OperationStatusCache(await get_redis())
