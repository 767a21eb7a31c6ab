"""cr_balance internal API: balance reads, ledger history, signed deltas."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from src.cr_balance.application.engine import BalanceEngine
from src.cr_balance.application.schemas import (
    ApplyDeltaRequest,
    DeltaResponse,
    OpenAccountRequest,
)
from src.cr_common.response import ApiResponse, success_response, with_request_id
from src.cr_gateway.auth.internal_token import require_internal_caller
from src.cr_gateway.dependencies import UserIdPath, get_engine

router = APIRouter(
    prefix="/credits",
    tags=["credits"],
    dependencies=[Depends(require_internal_caller)],
)


@router.post("/{user_id}")
async def open_account(
    user_id: UserIdPath,
    body: OpenAccountRequest,
    engine: Annotated[BalanceEngine, Depends(get_engine)],
    request: Request,
) -> ApiResponse:
    await engine.open_account(user_id, body.plan)
    data = await engine.get_balance(user_id)
    return with_request_id(success_response(data.model_dump(mode="json")), request)


@router.get("/{user_id}/balance")
async def get_balance(
    user_id: UserIdPath,
    engine: Annotated[BalanceEngine, Depends(get_engine)],
    request: Request,
) -> ApiResponse:
    data = await engine.get_balance(user_id)
    return with_request_id(success_response(data.model_dump(mode="json")), request)


@router.get("/{user_id}/ledger")
async def list_ledger(
    user_id: UserIdPath,
    engine: Annotated[BalanceEngine, Depends(get_engine)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    reason: str | None = Query(None, description="Filter by LedgerReason"),
) -> ApiResponse:
    data = await engine.list_history(user_id, cursor, limit, reason)
    return with_request_id(success_response(data.model_dump()), request)


@router.post("/{user_id}/delta")
async def apply_delta(
    user_id: UserIdPath,
    body: ApplyDeltaRequest,
    engine: Annotated[BalanceEngine, Depends(get_engine)],
    request: Request,
) -> ApiResponse:
    result = await engine.apply_delta(
        user_id, body.delta, body.reason, body.idempotency_key, body.metadata
    )
    data = DeltaResponse(balance=result.balance, version=result.version, replayed=result.replayed)
    return with_request_id(success_response(data.model_dump()), request)
