"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.cr_balance.api.router import router as credits_router
from src.cr_billing.api.router import router as billing_router
from src.cr_common.database import engine
from src.cr_common.errors import AppError
from src.cr_common.redis_client import close_redis
from src.cr_common.response import error_response
from src.cr_gateway.dependencies import get_reservations
from src.cr_gateway.middleware.request_log import RequestLogMiddleware
from src.cr_jobs.api.router import router as operations_router
from src.cr_policy.api.router import router as policy_router
from src.cr_reservation.api.router import router as holds_router
from src.cr_reservation.application.sweeper import HoldSweeper

API_PREFIX = "/internal/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify the DB, start the hold sweeper. Shutdown: stop and dispose."""
    uses_postgres = settings.STORE_BACKEND.lower() == "postgres"
    if uses_postgres:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    sweeper = HoldSweeper(get_reservations())
    if settings.HOLD_SWEEP_ENABLED:
        sweeper.start()
    app.state.hold_sweeper = sweeper
    yield
    await sweeper.stop()
    if uses_postgres:
        await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(credits_router, prefix=API_PREFIX)
app.include_router(holds_router, prefix=API_PREFIX)
app.include_router(billing_router, prefix=API_PREFIX)
app.include_router(policy_router, prefix=API_PREFIX)
app.include_router(operations_router, prefix=API_PREFIX)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
