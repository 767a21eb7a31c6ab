"""Integration-test fixtures (require a running PostgreSQL).

Tables are created from the ORM models on a NullPool engine; every test uses
fresh user ids so runs never interfere. When the database at DATABASE_URL is
unreachable the whole package is skipped.

All integration tests share one event loop; asyncpg connections must not
cross loops.
"""

import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config.settings import settings
from src.cr_balance.application.engine import BalanceEngine
from src.cr_common.database import Base
from src.cr_reservation.application.service import ReservationManager
from src.cr_store.infrastructure import db_models  # noqa: F401  -- registers the tables
from src.cr_store.infrastructure.persistence import SqlCreditStore


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def pg_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        await engine.dispose()
        pytest.skip(f"PostgreSQL not reachable: {exc}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def sql_store(pg_engine: AsyncEngine) -> SqlCreditStore:
    return SqlCreditStore(async_sessionmaker(pg_engine, expire_on_commit=False))


@pytest.fixture
def sql_engine(sql_store: SqlCreditStore) -> BalanceEngine:
    return BalanceEngine(sql_store, max_retries=10)


@pytest.fixture
def sql_manager(sql_engine: BalanceEngine, sql_store: SqlCreditStore) -> ReservationManager:
    return ReservationManager(sql_engine, sql_store, ttl_seconds=900)


@pytest.fixture
def user_id() -> str:
    return f"it_{uuid.uuid4().hex[:12]}"
