"""Access API router — course purchase and admin catalog management."""

from fastapi import APIRouter, Depends

from credit_ledger.access.schemas import (
    CoursePurchaseResponse,
    ResourceCreate,
    ResourceResponse,
)
from credit_ledger.common.security import UserContext, require_api_key, require_user

router = APIRouter()


def _get_service():
    from credit_ledger.deps import get_access_service
    return get_access_service()


def _get_credits():
    from credit_ledger.deps import get_credit_service
    return get_credit_service()


def _get_db():
    from credit_ledger.deps import get_db
    return get_db()


@router.post("/courses/{course_id}/access", response_model=CoursePurchaseResponse)
async def purchase_course(course_id: str, user: UserContext = Depends(require_user)):
    credits = _get_credits()
    db = _get_db()
    result = await db.run_transaction(credits.purchase_course, user.user_id, course_id)
    return CoursePurchaseResponse(
        success=result["success"],
        message=result["message"],
        already_owned=result["already_owned"],
        charged=result["charged"],
        remaining_balance=result["remaining_balance"],
    )


# ── Catalog (admin) ──

@router.post("/admin/articles", response_model=ResourceResponse, status_code=201)
async def create_article(body: ResourceCreate, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    article = await db.run_transaction(
        svc.create_article, body.title, body.credits_required, resource_id=body.id,
    )
    return ResourceResponse.model_validate(article)


@router.post("/admin/courses", response_model=ResourceResponse, status_code=201)
async def create_course(body: ResourceCreate, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    course = await db.run_transaction(
        svc.create_course, body.title, body.credits_required, resource_id=body.id,
    )
    return ResourceResponse.model_validate(course)
