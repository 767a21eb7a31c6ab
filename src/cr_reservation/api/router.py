"""cr_reservation internal API: reserve, settle and sweep holds."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.cr_common.response import ApiResponse, success_response, with_request_id
from src.cr_gateway.auth.internal_token import require_internal_caller
from src.cr_gateway.dependencies import get_reservations
from src.cr_reservation.application.schemas import ReserveRequest, SweepRequest
from src.cr_reservation.application.service import ReservationManager

router = APIRouter(
    prefix="/holds",
    tags=["holds"],
    dependencies=[Depends(require_internal_caller)],
)


@router.post("")
async def reserve(
    body: ReserveRequest,
    manager: Annotated[ReservationManager, Depends(get_reservations)],
    request: Request,
) -> ApiResponse:
    data = await manager.reserve(
        body.user_id, body.amount, body.ttl_seconds, body.idempotency_key
    )
    return with_request_id(success_response(data.model_dump(mode="json")), request)


@router.post("/sweep")
async def sweep(
    body: SweepRequest,
    manager: Annotated[ReservationManager, Depends(get_reservations)],
    request: Request,
) -> ApiResponse:
    data = await manager.sweep_expired_holds(limit=body.limit)
    return with_request_id(success_response(data.model_dump()), request)


@router.get("/{hold_id}")
async def get_hold(
    hold_id: str,
    manager: Annotated[ReservationManager, Depends(get_reservations)],
    request: Request,
) -> ApiResponse:
    data = await manager.get_hold(hold_id)
    return with_request_id(success_response(data.model_dump(mode="json")), request)


@router.post("/{hold_id}/commit")
async def commit(
    hold_id: str,
    manager: Annotated[ReservationManager, Depends(get_reservations)],
    request: Request,
) -> ApiResponse:
    data = await manager.commit(hold_id)
    return with_request_id(success_response(data.model_dump()), request)


@router.post("/{hold_id}/cancel")
async def cancel(
    hold_id: str,
    manager: Annotated[ReservationManager, Depends(get_reservations)],
    request: Request,
) -> ApiResponse:
    data = await manager.cancel(hold_id)
    return with_request_id(success_response(data.model_dump()), request)
