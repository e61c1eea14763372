"""Pydantic schemas for catalog and course access endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from credit_ledger.common.models import MAX_AMOUNT


class ResourceCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    credits_required: int = Field(default=0, ge=0, le=MAX_AMOUNT)
    id: Optional[str] = Field(default=None, max_length=36)


class ResourceResponse(BaseModel):
    id: str
    title: str
    credits_required: int
    created_at: datetime

    model_config = {"from_attributes": True}


class CoursePurchaseResponse(BaseModel):
    success: bool
    message: str
    already_owned: bool
    charged: int
    remaining_balance: int
