"""Pydantic schemas for the hold API."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from src.cr_store.domain.models import USER_ID_MAX_LENGTH


class ReserveRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=USER_ID_MAX_LENGTH)
    amount: int = Field(..., gt=0, description="Whole credits to hold")
    ttl_seconds: int | None = Field(None, gt=0)
    idempotency_key: str | None = Field(None, max_length=128)


class ReserveResult(BaseModel):
    hold_id: str
    balance_after: int
    expires_at: datetime
    daily_portion: int
    balance_portion: int
    replayed: bool = False


class HoldView(BaseModel):
    hold_id: str
    user_id: str
    amount: int
    daily_portion: int
    balance_portion: int
    status: str
    cap_date: date | None
    created_at: datetime
    expires_at: datetime
    settled_at: datetime | None


class HoldStatusResponse(BaseModel):
    hold_id: str
    status: str


class SweepRequest(BaseModel):
    limit: int | None = Field(None, gt=0, le=10_000)


class SweepResult(BaseModel):
    scanned: int
    canceled: int
    failed: int = 0
