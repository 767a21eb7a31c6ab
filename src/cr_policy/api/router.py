"""cr_policy internal API: plan entitlements and operation prices."""

from fastapi import APIRouter, Depends, Request

from src.cr_common.response import ApiResponse, success_response, with_request_id
from src.cr_gateway.auth.internal_token import require_internal_caller
from src.cr_policy.application.schemas import CostRequest, CostResponse, PlanView
from src.cr_policy.domain.plans import (
    cost_of,
    daily_credits_cap,
    entitlement,
    included_credits,
    normalize_plan,
)

router = APIRouter(
    prefix="/policy",
    tags=["policy"],
    dependencies=[Depends(require_internal_caller)],
)


@router.get("/{plan}")
async def get_plan(plan: str, request: Request) -> ApiResponse:
    resolved = normalize_plan(plan)
    data = PlanView.build(
        resolved.value,
        entitlement(resolved),
        included_credits(resolved),
        daily_credits_cap(resolved),
    )
    return with_request_id(success_response(data.model_dump()), request)


@router.post("/cost")
async def get_cost(body: CostRequest, request: Request) -> ApiResponse:
    credits = cost_of(body.kind, body.quantity, body.plan, body.quality, body.model)
    data = CostResponse(kind=body.kind, credits=credits)
    return with_request_id(success_response(data.model_dump(mode="json")), request)
