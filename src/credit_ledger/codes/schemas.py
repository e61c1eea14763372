"""Pydantic schemas for license code endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from credit_ledger.common.models import MAX_AMOUNT
from credit_ledger.common.schemas import Pagination


class CodeGenerateRequest(BaseModel):
    amount: int
    credit_type: Literal["universal", "video", "article", "both"] = "universal"
    credit_value: int = Field(default=0, ge=0, le=MAX_AMOUNT)
    video_minutes: int = Field(default=0, ge=0, le=MAX_AMOUNT)
    article_count: int = Field(default=0, ge=0, le=MAX_AMOUNT)
    prefix: Optional[str] = Field(default=None, max_length=32)


class LicenseCodeResponse(BaseModel):
    id: str
    code: str
    credit_type: str
    credit_value: int
    video_minutes: int
    article_count: int
    batch_id: Optional[str] = None
    redeemed: bool
    redeemed_by: Optional[str] = None
    redeemed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CodeGenerateResponse(BaseModel):
    message: str
    batch_id: str
    codes: list[LicenseCodeResponse]
    count: int
    requested: int


class LicenseReportPage(BaseModel):
    data: list[LicenseCodeResponse]
    pagination: Pagination
