"""Admin license code router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from credit_ledger.codes.schemas import (
    CodeGenerateRequest,
    CodeGenerateResponse,
    LicenseCodeResponse,
    LicenseReportPage,
)
from credit_ledger.common.exceptions import ResourceNotFoundError
from credit_ledger.common.messages import get_message
from credit_ledger.common.schemas import Pagination
from credit_ledger.common.security import require_api_key

router = APIRouter()


def _get_service():
    from credit_ledger.deps import get_code_service
    return get_code_service()


def _get_db():
    from credit_ledger.deps import get_db
    return get_db()


@router.post("/admin/codes/generate", response_model=CodeGenerateResponse, status_code=201)
async def generate_codes(body: CodeGenerateRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    result = await db.run_transaction(
        svc.generate_codes,
        body.amount,
        credit_type=body.credit_type,
        credit_value=body.credit_value,
        video_minutes=body.video_minutes,
        article_count=body.article_count,
        prefix=body.prefix,
    )
    return CodeGenerateResponse(
        message=get_message("CODES_GENERATED", svc.settings.locale),
        batch_id=result["batch_id"],
        codes=[LicenseCodeResponse.model_validate(c) for c in result["codes"]],
        count=result["count"],
        requested=result["requested"],
    )


@router.get("/admin/codes/{code}", response_model=LicenseCodeResponse)
async def get_code(code: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        license_code = await svc.get_code(session, code)
        if license_code is None:
            raise ResourceNotFoundError("License code not found", resource_type="license_code")
        return LicenseCodeResponse.model_validate(license_code)


@router.get("/admin/reports/licenses", response_model=LicenseReportPage)
async def license_report(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        items, total = await svc.license_report(
            session,
            search=search,
            offset=(page - 1) * limit,
            limit=limit,
            status=status,
        )
        return LicenseReportPage(
            data=[LicenseCodeResponse.model_validate(c) for c in items],
            pagination=Pagination.build(total, page, limit),
        )
