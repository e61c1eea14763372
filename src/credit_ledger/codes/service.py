"""Code service — license code batches, lookup and the admin license report."""

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.codes.generator import generate_batch, normalize_code, normalize_prefix
from credit_ledger.codes.models import CREDIT_TYPES, LicenseCodeModel
from credit_ledger.common.config import LedgerSettings
from credit_ledger.common.exceptions import ValidationError
from credit_ledger.common.logging import get_logger
from credit_ledger.common.models import MAX_AMOUNT, generate_uuid
from credit_ledger.common.search import LIKE_ESCAPE, build_like_pattern

logger = get_logger("codes.service")

REPORT_STATUSES = ("redeemed", "unredeemed")


def resolve_code_values(
    credit_type: str,
    credit_value: int = 0,
    video_minutes: int = 0,
    article_count: int = 0,
) -> dict[str, int]:
    """Keep only the value fields that apply to ``credit_type`` and check they are positive."""
    if credit_type not in CREDIT_TYPES:
        raise ValidationError(
            f"credit_type must be one of {', '.join(sorted(CREDIT_TYPES))}"
        )

    values = {"credit_value": 0, "video_minutes": 0, "article_count": 0}
    if credit_type == "universal":
        values["credit_value"] = credit_value
    if credit_type in ("video", "both"):
        values["video_minutes"] = video_minutes
    if credit_type in ("article", "both"):
        values["article_count"] = article_count

    required = {
        "universal": ("credit_value",),
        "video": ("video_minutes",),
        "article": ("article_count",),
        "both": ("video_minutes", "article_count"),
    }[credit_type]
    for name in required:
        if values[name] is None or values[name] <= 0:
            raise ValidationError(f"{name} must be greater than 0 for '{credit_type}' codes")
        if values[name] > MAX_AMOUNT:
            raise ValidationError(f"{name} must not exceed {MAX_AMOUNT}")
    return values


class CodeService:
    """License code generation and reporting."""

    def __init__(self, settings: LedgerSettings):
        self.settings = settings

    async def get_code(
        self, session: AsyncSession, raw_code: str
    ) -> LicenseCodeModel | None:
        result = await session.execute(
            select(LicenseCodeModel).where(LicenseCodeModel.code == normalize_code(raw_code))
        )
        return result.scalar_one_or_none()

    async def _stored_codes(self, session: AsyncSession, codes: list[str]) -> set[str]:
        if not codes:
            return set()
        result = await session.execute(
            select(LicenseCodeModel.code).where(LicenseCodeModel.code.in_(codes))
        )
        return set(result.scalars().all())

    async def generate_codes(
        self,
        session: AsyncSession,
        count: int,
        credit_type: str = "universal",
        credit_value: int = 0,
        video_minutes: int = 0,
        article_count: int = 0,
        prefix: str | None = None,
    ) -> dict:
        """Generate and persist a batch of unredeemed codes.

        The whole batch is written in the caller's transaction. Codes that
        still collide after the retry budget are dropped, so ``count`` may be
        lower than ``requested``.
        """
        max_batch = self.settings.max_codes_per_batch
        if count is None or count < 1 or count > max_batch:
            raise ValidationError(f"Amount must be between 1 and {max_batch}")

        values = resolve_code_values(credit_type, credit_value, video_minutes, article_count)
        normalized_prefix = normalize_prefix(prefix, self.settings.default_code_prefix)
        length = self.settings.code_suffix_length
        attempts = self.settings.code_collision_retries

        codes = generate_batch(normalized_prefix, count, length, attempts)
        seen_stored: set[str] = set()
        for _ in range(attempts):
            clashes = await self._stored_codes(session, codes)
            if not clashes:
                break
            seen_stored |= clashes
            codes = [c for c in codes if c not in clashes]
            codes += generate_batch(
                normalized_prefix, count - len(codes), length, attempts,
                exclude=set(codes) | seen_stored,
            )
        else:
            clashes = await self._stored_codes(session, codes)
            codes = [c for c in codes if c not in clashes]

        batch_id = generate_uuid()
        models = [
            LicenseCodeModel(
                code=code,
                credit_type=credit_type,
                batch_id=batch_id,
                redeemed=False,
                **values,
            )
            for code in codes
        ]
        session.add_all(models)
        await session.flush()

        context = {
            "batch_id": batch_id,
            "prefix": normalized_prefix,
            "credit_type": credit_type,
            "requested": count,
            "generated": len(models),
        }
        if len(models) < count:
            logger.warning("Code batch shortfall", extra={"context": context})
        else:
            logger.info("Code batch generated", extra={"context": context})

        return {
            "batch_id": batch_id,
            "codes": models,
            "count": len(models),
            "requested": count,
        }

    async def license_report(
        self,
        session: AsyncSession,
        search: str | None = None,
        offset: int = 0,
        limit: int = 20,
        status: str | None = None,
    ) -> tuple[list[LicenseCodeModel], int]:
        """List codes newest first. Returns (items, total_count)."""
        filters = []
        if status:
            if status not in REPORT_STATUSES:
                raise ValidationError(f"status must be one of {', '.join(REPORT_STATUSES)}")
            filters.append(LicenseCodeModel.redeemed == (status == "redeemed"))

        pattern = build_like_pattern(search)
        if pattern:
            filters.append(or_(
                LicenseCodeModel.code.ilike(pattern, escape=LIKE_ESCAPE),
                LicenseCodeModel.redeemed_by.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        count_query = select(func.count(LicenseCodeModel.id))
        query = select(LicenseCodeModel)
        if filters:
            count_query = count_query.where(*filters)
            query = query.where(*filters)

        count_result = await session.execute(count_query)
        total = count_result.scalar() or 0

        result = await session.execute(
            query
            .order_by(LicenseCodeModel.created_at.desc(), LicenseCodeModel.code)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total
