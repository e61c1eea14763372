"""Credits API router — user balance operations and admin account tools."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from credit_ledger.common.schemas import Pagination
from credit_ledger.common.security import (
    UserContext,
    optional_user,
    require_api_key,
    require_user,
)
from credit_ledger.credits.schemas import (
    AccessCheckResponse,
    BalanceResponse,
    BonusRequest,
    BonusResponse,
    ConsumeArticleRequest,
    ConsumeArticleResponse,
    ConsumeVideoRequest,
    ConsumeVideoResponse,
    OpenAccountRequest,
    ReconcileResponse,
    RedeemRequest,
    RedeemResponse,
    TransactionPage,
    TransactionResponse,
)

router = APIRouter()


def _get_service():
    from credit_ledger.deps import get_credit_service
    return get_credit_service()


def _get_access():
    from credit_ledger.deps import get_access_service
    return get_access_service()


def _get_db():
    from credit_ledger.deps import get_db
    return get_db()


def _page_size(limit: Optional[int]) -> int:
    from credit_ledger.common.config import get_settings
    settings = get_settings()
    return min(limit or settings.default_page_size, settings.max_page_size)


# ── Balance & redemption ──

@router.get("/credits/balance", response_model=BalanceResponse)
async def get_balance(user: UserContext = Depends(require_user)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return BalanceResponse(**await svc.get_balance(session, user.user_id))


@router.post("/credits/redeem", response_model=RedeemResponse)
async def redeem_code(body: RedeemRequest, user: UserContext = Depends(require_user)):
    svc = _get_service()
    db = _get_db()
    result = await db.run_transaction(svc.redeem_code, user.user_id, body.code)
    return RedeemResponse(**result)


# ── Consumption ──

@router.post("/credits/consume-video", response_model=ConsumeVideoResponse)
async def consume_video(body: ConsumeVideoRequest, user: UserContext = Depends(require_user)):
    svc = _get_service()
    db = _get_db()
    result = await db.run_transaction(
        svc.consume_video_minutes, user.user_id, body.minutes, body.course_id,
    )
    return ConsumeVideoResponse(**result)


@router.post("/credits/consume-article", response_model=ConsumeArticleResponse)
async def consume_article(body: ConsumeArticleRequest, user: UserContext = Depends(require_user)):
    svc = _get_service()
    db = _get_db()
    result = await db.run_transaction(
        svc.consume_article_credit, user.user_id, body.article_id,
    )
    return ConsumeArticleResponse(**result)


# ── Access checks ──

@router.get(
    "/credits/check-article-access/{article_id}",
    response_model=AccessCheckResponse,
    response_model_exclude_none=True,
)
async def check_article_access(
    article_id: str, user: Optional[UserContext] = Depends(optional_user),
):
    access = _get_access()
    db = _get_db()
    async with db.get_session() as session:
        result = await access.check_resource_access(
            session, user.user_id if user else None, "article", article_id,
        )
        return AccessCheckResponse(**result)


@router.get(
    "/credits/check-course-access/{course_id}",
    response_model=AccessCheckResponse,
    response_model_exclude_none=True,
)
async def check_course_access(
    course_id: str, user: Optional[UserContext] = Depends(optional_user),
):
    access = _get_access()
    db = _get_db()
    async with db.get_session() as session:
        result = await access.check_resource_access(
            session, user.user_id if user else None, "course", course_id,
        )
        return AccessCheckResponse(**result)


# ── Transactions ──

@router.get("/credits/transactions", response_model=TransactionPage)
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    transaction_type: Optional[str] = Query(None, alias="type"),
    user: UserContext = Depends(require_user),
):
    svc = _get_service()
    db = _get_db()
    size = _page_size(limit)
    async with db.get_session() as session:
        items, total = await svc.list_transactions(
            session, user.user_id,
            offset=(page - 1) * size,
            limit=size,
            transaction_type=transaction_type,
        )
        return TransactionPage(
            data=[TransactionResponse.model_validate(t) for t in items],
            pagination=Pagination.build(total, page, size),
        )


# ── Admin ──

@router.post("/admin/credits/accounts", response_model=BalanceResponse, status_code=201)
async def open_account(body: OpenAccountRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()

    async def _open(session, user_id):
        await svc.open_account(session, user_id)
        return await svc.get_balance(session, user_id)

    return BalanceResponse(**await db.run_transaction(_open, body.user_id))


@router.post("/admin/credits/bonus", response_model=BonusResponse)
async def grant_bonus(body: BonusRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    result = await db.run_transaction(
        svc.grant_bonus, body.user_id, body.balance_type, body.amount,
        description=body.description,
    )
    return BonusResponse(**result)


@router.get("/admin/credits/{user_id}/reconcile", response_model=ReconcileResponse)
async def reconcile(user_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return ReconcileResponse(**await svc.reconcile(session, user_id))
