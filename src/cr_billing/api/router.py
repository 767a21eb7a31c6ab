"""cr_billing internal API: grants driven by payment-provider webhooks."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.cr_billing.application.schemas import (
    AdminCorrectionRequest,
    CreditPackGrantRequest,
    PlanChangeRequest,
    SubscriptionGrantRequest,
)
from src.cr_billing.application.service import BillingService
from src.cr_common.response import ApiResponse, success_response, with_request_id
from src.cr_gateway.auth.internal_token import require_internal_caller
from src.cr_gateway.dependencies import UserIdPath, get_billing

router = APIRouter(
    prefix="/billing",
    tags=["billing"],
    dependencies=[Depends(require_internal_caller)],
)


@router.post("/{user_id}/credit-pack")
async def grant_credit_pack(
    user_id: UserIdPath,
    body: CreditPackGrantRequest,
    billing: Annotated[BillingService, Depends(get_billing)],
    request: Request,
) -> ApiResponse:
    data = await billing.grant_credit_pack(user_id, body.pack, body.event_id)
    return with_request_id(success_response(data.model_dump()), request)


@router.post("/{user_id}/subscription")
async def grant_subscription(
    user_id: UserIdPath,
    body: SubscriptionGrantRequest,
    billing: Annotated[BillingService, Depends(get_billing)],
    request: Request,
) -> ApiResponse:
    data = await billing.grant_subscription(user_id, body.plan, body.event_id)
    return with_request_id(success_response(data.model_dump()), request)


@router.post("/{user_id}/plan")
async def change_plan(
    user_id: UserIdPath,
    body: PlanChangeRequest,
    billing: Annotated[BillingService, Depends(get_billing)],
    request: Request,
) -> ApiResponse:
    account = await billing.change_plan(user_id, body.plan)
    data = {"user_id": account.user_id, "plan": account.plan, "version": account.version}
    return with_request_id(success_response(data), request)


@router.post("/{user_id}/correction")
async def admin_correction(
    user_id: UserIdPath,
    body: AdminCorrectionRequest,
    billing: Annotated[BillingService, Depends(get_billing)],
    request: Request,
) -> ApiResponse:
    data = await billing.admin_correction(user_id, body.delta, body.note)
    return with_request_id(success_response(data.model_dump()), request)
