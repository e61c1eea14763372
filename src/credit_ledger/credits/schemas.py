"""Pydantic schemas for credit endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from credit_ledger.common.models import MAX_AMOUNT
from credit_ledger.common.schemas import Pagination


# ── Balances ──

class BalanceResponse(BaseModel):
    balance: int
    video_watch_minutes: int
    article_credits: int
    total_earned: int
    total_spent: int


class OpenAccountRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255)


# ── Redemption ──

class RedeemRequest(BaseModel):
    code: str = Field(..., max_length=64)


class RedeemedCredits(BaseModel):
    balance: int
    video_minutes: int
    article_credits: int


class RedeemResponse(BaseModel):
    success: bool
    message: str
    credits: RedeemedCredits
    credit_type: str


# ── Consumption ──

class ConsumeVideoRequest(BaseModel):
    minutes: float = Field(..., gt=0, allow_inf_nan=False)
    course_id: str = Field(..., min_length=1)


class ConsumeVideoResponse(BaseModel):
    success: bool
    charged_minutes: int
    remaining_minutes: int
    remaining_balance: int


class ConsumeArticleRequest(BaseModel):
    article_id: str = Field(..., min_length=1)


class ConsumeArticleResponse(BaseModel):
    success: bool
    message: str
    charged: int
    remaining_credits: int
    remaining_balance: int


class AccessCheckResponse(BaseModel):
    has_access: bool
    requires_auth: Optional[bool] = None
    free: Optional[bool] = None
    credits_required: int


# ── Transactions ──

class TransactionResponse(BaseModel):
    id: str
    transaction_type: str
    balance_type: str
    amount: int
    description: str
    balance_before: int
    balance_after: int
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    transaction_date: datetime

    model_config = {"from_attributes": True}


class TransactionPage(BaseModel):
    data: list[TransactionResponse]
    pagination: Pagination


# ── Admin ──

class BonusRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255)
    balance_type: Literal["universal", "video", "article"] = "universal"
    amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    description: str = Field(default="", max_length=500)


class BonusResponse(BaseModel):
    success: bool
    balance_type: str
    amount: int
    balance_after: int


class BalanceReconciliation(BaseModel):
    ledger_sum: int
    current: int
    consistent: bool


class ReconcileResponse(BaseModel):
    user_id: str
    consistent: bool
    totals_consistent: bool
    balances: dict[str, BalanceReconciliation]
