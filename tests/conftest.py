"""Shared test fixtures."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from src.cr_balance.application.engine import BalanceEngine
from src.cr_billing.application.service import BillingService
from src.cr_gateway.dependencies import use_store
from src.cr_reservation.application.service import ReservationManager
from src.cr_store.infrastructure.memory import InMemoryCreditStore
from src.cr_trial.domain.daily_cap import DailyCapTracker
from src.main import app


class FakeClock:
    """Settable clock; call it to read, `advance` to move forward."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 10, 12, 0, tzinfo=UTC))


@pytest.fixture
def store() -> InMemoryCreditStore:
    return InMemoryCreditStore()


@pytest.fixture
def engine(store: InMemoryCreditStore, clock: FakeClock) -> BalanceEngine:
    return BalanceEngine(store, DailyCapTracker("UTC"), max_retries=5, clock=clock)


@pytest.fixture
def manager(
    engine: BalanceEngine, store: InMemoryCreditStore, clock: FakeClock
) -> ReservationManager:
    return ReservationManager(engine, store, ttl_seconds=900, clock=clock)


@pytest.fixture
def billing(engine: BalanceEngine, store: InMemoryCreditStore) -> BillingService:
    return BillingService(engine, store)


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, backed by a fresh in-memory store."""
    use_store(InMemoryCreditStore())
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    use_store(None)
