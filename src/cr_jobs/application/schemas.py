"""Pydantic schemas for the operation status API."""

from pydantic import BaseModel, Field

from src.cr_common.enums import OperationStatus
from src.cr_store.domain.models import USER_ID_MAX_LENGTH


class PutStatusRequest(BaseModel):
    status: OperationStatus
    hold_id: str = Field(..., min_length=1, max_length=128)
    user_id: str = Field(..., min_length=1, max_length=USER_ID_MAX_LENGTH)
    detail: str = Field("", max_length=1000)


class OperationStatusView(BaseModel):
    op_id: str
    status: OperationStatus
    hold_id: str
    user_id: str
    detail: str
