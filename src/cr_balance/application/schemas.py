"""Pydantic schemas and cursor utilities for the balance API."""

import base64
import json
from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from src.cr_common.enums import LedgerReason

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except (ValueError, KeyError, TypeError):
        return None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ApplyDeltaRequest(BaseModel):
    delta: int = Field(..., description="Signed whole-credit change, non-zero")
    reason: LedgerReason
    idempotency_key: str | None = Field(None, max_length=128)
    metadata: dict[str, Any] = Field(default_factory=dict)


class OpenAccountRequest(BaseModel):
    plan: str = "trial"


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceView(BaseModel):
    user_id: str
    balance: int
    version: int
    plan: str
    daily_credits_used: int
    daily_credits_cap: int | None
    daily_credits_remaining: int | None
    last_daily_reset_date: date | None


class DeltaResponse(BaseModel):
    balance: int
    version: int
    replayed: bool


class LedgerEntryItem(BaseModel):
    id: int
    delta: int
    daily_delta: int
    reason: str
    balance_after: int
    idempotency_key: str | None
    metadata: dict[str, Any]
    created_at: str  # ISO8601 string


class LedgerResponse(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool
