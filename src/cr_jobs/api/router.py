"""cr_jobs internal API: ephemeral status of in-flight generations."""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.cr_common.errors import OperationStatusNotFoundError
from src.cr_common.response import ApiResponse, success_response, with_request_id
from src.cr_gateway.auth.internal_token import require_internal_caller
from src.cr_gateway.dependencies import get_status_cache
from src.cr_jobs.application.schemas import OperationStatusView, PutStatusRequest
from src.cr_jobs.infrastructure.cache import OperationStatusCache

router = APIRouter(
    prefix="/operations",
    tags=["operations"],
    dependencies=[Depends(require_internal_caller)],
)


@router.put("/{op_id}")
async def put_status(
    op_id: str,
    body: PutStatusRequest,
    cache: Annotated[OperationStatusCache, Depends(get_status_cache)],
    request: Request,
) -> ApiResponse:
    record = await cache.put(op_id, body.status, body.hold_id, body.user_id, body.detail)
    data = OperationStatusView(**asdict(record))
    return with_request_id(success_response(data.model_dump(mode="json")), request)


@router.get("/{op_id}")
async def get_status(
    op_id: str,
    cache: Annotated[OperationStatusCache, Depends(get_status_cache)],
    request: Request,
) -> ApiResponse:
    record = await cache.get(op_id)
    if record is None:
        raise OperationStatusNotFoundError(op_id)
    data = OperationStatusView(**asdict(record))
    return with_request_id(success_response(data.model_dump(mode="json")), request)


@router.delete("/{op_id}")
async def delete_status(
    op_id: str,
    cache: Annotated[OperationStatusCache, Depends(get_status_cache)],
    request: Request,
) -> ApiResponse:
    await cache.delete(op_id)
    return with_request_id(success_response({"op_id": op_id}), request)
