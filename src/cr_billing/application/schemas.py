"""Pydantic schemas for payment-provider grants."""

from pydantic import BaseModel, Field


class CreditPackGrantRequest(BaseModel):
    pack: str = Field(..., min_length=1, max_length=32)
    event_id: str = Field(..., min_length=1, max_length=128, description="Provider event id")


class SubscriptionGrantRequest(BaseModel):
    plan: str = Field(..., min_length=1, max_length=32)
    event_id: str = Field(..., min_length=1, max_length=128, description="Provider event id")


class PlanChangeRequest(BaseModel):
    plan: str = Field(..., min_length=1, max_length=32)


class AdminCorrectionRequest(BaseModel):
    delta: int
    note: str = Field(..., min_length=1, max_length=500)


class GrantResponse(BaseModel):
    user_id: str
    plan: str
    credits_granted: int
    balance: int
    replayed: bool
