"""Credit service — balances, code redemption, metered consumption and the ledger.

Every public mutating method expects to run inside a single transaction
(``DatabaseManager.get_session`` / ``run_transaction``). Balance checks are
conditional single-statement updates, never read-then-write, so concurrent
requests from the same user cannot overdraw a balance or redeem a code twice.
"""

import math

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.access.service import AccessService
from credit_ledger.codes.generator import code_prefix, normalize_code
from credit_ledger.codes.models import LicenseCodeModel
from credit_ledger.common.config import LedgerSettings
from credit_ledger.common.exceptions import (
    AlreadyRedeemedError,
    InsufficientArticleCreditsError,
    InsufficientBalanceError,
    InsufficientMinutesError,
    InvalidCodeError,
    ResourceNotFoundError,
    ValidationError,
)
from credit_ledger.common.logging import get_logger
from credit_ledger.common.messages import get_message
from credit_ledger.common.models import MAX_AMOUNT, utcnow
from credit_ledger.credits.models import (
    BALANCE_FIELDS,
    TRANSACTION_TYPES,
    CreditTransactionModel,
    UserCreditsModel,
)

logger = get_logger("credits.service")

ZERO_BALANCE = {
    "balance": 0,
    "video_watch_minutes": 0,
    "article_credits": 0,
    "total_earned": 0,
    "total_spent": 0,
}

# Dialects with INSERT ... ON CONFLICT DO NOTHING
_INSERT_BY_DIALECT = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _balance_dict(account: UserCreditsModel | None) -> dict:
    if account is None:
        return dict(ZERO_BALANCE)
    return {
        "balance": account.balance,
        "video_watch_minutes": account.video_watch_minutes,
        "article_credits": account.article_credits,
        "total_earned": account.total_earned,
        "total_spent": account.total_spent,
    }


def _check_amount(amount: int) -> None:
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")


def redemption_deltas(code: LicenseCodeModel) -> list[tuple[str, int]]:
    """(balance_type, amount) pairs a code credits, skipping zero amounts."""
    deltas = {
        "universal": [("universal", code.credit_value)],
        "video": [("video", code.video_minutes)],
        "article": [("article", code.article_count)],
        "both": [("video", code.video_minutes), ("article", code.article_count)],
    }.get(code.credit_type, [])
    return [(balance_type, amount) for balance_type, amount in deltas if amount and amount > 0]


class CreditService:
    """Per-user balances and the append-only transaction trail."""

    def __init__(self, settings: LedgerSettings, access: AccessService):
        self.settings = settings
        self.access = access

    def _message(self, code: str) -> str:
        return get_message(code, self.settings.locale)

    # ── Accounts ──

    async def get_account(
        self, session: AsyncSession, user_id: str, fresh: bool = False
    ) -> UserCreditsModel | None:
        query = select(UserCreditsModel).where(UserCreditsModel.user_id == user_id)
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def open_account(self, session: AsyncSession, user_id: str) -> UserCreditsModel:
        """Create the all-zero account row if it does not exist yet (idempotent)."""
        account = await self.get_account(session, user_id)
        if account is not None:
            return account

        insert = _INSERT_BY_DIALECT.get(session.bind.dialect.name)
        if insert is not None:
            # A row opened concurrently by another request wins silently.
            await session.execute(
                insert(UserCreditsModel)
                .values(user_id=user_id, **ZERO_BALANCE)
                .on_conflict_do_nothing(index_elements=["user_id"])
            )
        else:
            try:
                async with session.begin_nested():
                    session.add(UserCreditsModel(user_id=user_id, **ZERO_BALANCE))
            except IntegrityError:
                logger.info("Account already open", extra={"context": {"user_id": user_id}})
        return await self.get_account(session, user_id, fresh=True)

    async def get_balance(self, session: AsyncSession, user_id: str) -> dict:
        """Current balances; a user without an account row has all zeros."""
        return _balance_dict(await self.get_account(session, user_id))

    # ── Ledger primitives ──

    async def _apply_delta(
        self, session: AsyncSession, user_id: str, balance_type: str, delta: int
    ) -> tuple[int, int, UserCreditsModel] | None:
        """Atomically add ``delta`` to one balance field.

        Debits only match rows that can afford them. Returns
        (before, after, account) or None when no row was updated.
        """
        field = BALANCE_FIELDS[balance_type]
        column = getattr(UserCreditsModel, field)
        values = {field: column + delta}
        if balance_type == "universal":
            if delta > 0:
                values["total_earned"] = UserCreditsModel.total_earned + delta
            else:
                values["total_spent"] = UserCreditsModel.total_spent - delta

        stmt = update(UserCreditsModel).where(UserCreditsModel.user_id == user_id)
        if delta < 0:
            stmt = stmt.where(column >= -delta)
        result = await session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        account = await self.get_account(session, user_id, fresh=True)
        after = getattr(account, field)
        return after - delta, after, account

    def _record(
        self,
        session: AsyncSession,
        user_id: str,
        transaction_type: str,
        balance_type: str,
        amount: int,
        balance_before: int,
        balance_after: int,
        description: str = "",
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
    ) -> CreditTransactionModel:
        entry = CreditTransactionModel(
            user_id=user_id,
            transaction_type=transaction_type,
            balance_type=balance_type,
            amount=amount,
            description=description,
            balance_before=balance_before,
            balance_after=balance_after,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            transaction_date=utcnow(),
        )
        session.add(entry)
        return entry

    async def _current(self, session: AsyncSession, user_id: str, balance_type: str) -> int:
        account = await self.get_account(session, user_id, fresh=True)
        return getattr(account, BALANCE_FIELDS[balance_type]) if account else 0

    # ── Redemption ──

    async def redeem_code(self, session: AsyncSession, user_id: str, raw_code: str) -> dict:
        """Redeem a one-time code for ``user_id``.

        The code claim is a conditional update on ``redeemed = false``: of two
        concurrent redeemers exactly one matches the row, the other gets
        AlreadyRedeemedError. Crediting and ledger rows share the claim's
        transaction, so a failure anywhere leaves the code unredeemed.
        """
        code_value = normalize_code(raw_code or "")
        if not code_value:
            raise ValidationError("Code is required")

        result = await session.execute(
            select(LicenseCodeModel).where(LicenseCodeModel.code == code_value)
        )
        license_code = result.scalar_one_or_none()
        if license_code is None:
            raise InvalidCodeError()
        if license_code.redeemed:
            raise AlreadyRedeemedError()

        claim = await session.execute(
            update(LicenseCodeModel)
            .where(
                LicenseCodeModel.id == license_code.id,
                LicenseCodeModel.redeemed == False,  # noqa: E712
            )
            .values(redeemed=True, redeemed_by=user_id, redeemed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount != 1:
            raise AlreadyRedeemedError()

        await self.open_account(session, user_id)
        for balance_type, amount in redemption_deltas(license_code):
            applied = await self._apply_delta(session, user_id, balance_type, amount)
            if applied is None:
                raise ResourceNotFoundError("Credit account not found", resource_type="account")
            before, after, _ = applied
            self._record(
                session, user_id, "redeem", balance_type, amount, before, after,
                description=f"License code redemption ({license_code.credit_type})",
                related_entity_type="license_code",
                related_entity_id=license_code.id,
            )
        await session.flush()

        account = await self.get_account(session, user_id, fresh=True)
        logger.info(
            "Code redeemed",
            extra={"context": {
                "user_id": user_id,
                "code_prefix": code_prefix(code_value),
                "credit_type": license_code.credit_type,
            }},
        )
        return {
            "success": True,
            "message": self._message("CODE_REDEEMED"),
            "credits": {
                "balance": account.balance,
                "video_minutes": account.video_watch_minutes,
                "article_credits": account.article_credits,
            },
            "credit_type": license_code.credit_type,
        }

    # ── Consumption ──

    async def consume_universal(
        self,
        session: AsyncSession,
        user_id: str,
        amount: int,
        resource_type: str,
        resource_id: str,
        description: str = "",
    ) -> dict:
        """Buy permanent access to a course or article with the universal balance.

        Debit, grant and ledger row commit together; if the grant insert
        fails the debit is rolled back with it.
        """
        _check_amount(amount)
        resource = await self.access.get_resource(session, resource_type, resource_id)

        if await self.access.has_access(session, user_id, resource_type, resource_id):
            account = await self.get_account(session, user_id)
            return {
                "success": True,
                "already_owned": True,
                "charged": 0,
                "message": self._message("ALREADY_HAS_ACCESS"),
                "remaining_balance": account.balance if account else 0,
            }

        applied = await self._apply_delta(session, user_id, "universal", -amount)
        if applied is None:
            current = await self._current(session, user_id, "universal")
            raise InsufficientBalanceError(required=amount, current=current)
        before, after, _ = applied

        await self.access.grant(session, user_id, resource_type, resource_id)
        self._record(
            session, user_id, "usage", "universal", -amount, before, after,
            description=description or f"Purchase {resource_type}: {resource.title}",
            related_entity_type=f"{resource_type}_access",
            related_entity_id=resource_id,
        )
        await session.flush()

        logger.info(
            "Universal balance consumed",
            extra={"context": {
                "user_id": user_id,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "amount": amount,
            }},
        )
        return {
            "success": True,
            "already_owned": False,
            "charged": amount,
            "message": self._message(
                "COURSE_PURCHASED" if resource_type == "course" else "ARTICLE_UNLOCKED"
            ),
            "remaining_balance": after,
        }

    async def purchase_course(self, session: AsyncSession, user_id: str, course_id: str) -> dict:
        """Unlock a course at its catalog price; free courses are granted without charge."""
        course = await self.access.get_resource(session, "course", course_id)
        if course.credits_required > 0:
            return await self.consume_universal(
                session, user_id, course.credits_required, "course", course_id,
                description=f"Course purchase: {course.title}",
            )

        already_owned = await self.access.has_access(session, user_id, "course", course_id)
        if not already_owned:
            await self.access.grant(session, user_id, "course", course_id)
        account = await self.get_account(session, user_id)
        return {
            "success": True,
            "already_owned": already_owned,
            "charged": 0,
            "message": self._message("ALREADY_HAS_ACCESS" if already_owned else "COURSE_PURCHASED"),
            "remaining_balance": account.balance if account else 0,
        }

    async def consume_video_minutes(
        self, session: AsyncSession, user_id: str, minutes: float, course_id: str
    ) -> dict:
        """Meter a watch session: charges ceil(minutes), creates no grant."""
        if minutes is None or not math.isfinite(minutes) or minutes <= 0:
            raise ValidationError("Minutes must be a finite number greater than 0")
        if not course_id:
            raise ValidationError("course_id is required")
        course = await self.access.get_resource(session, "course", course_id)

        charge = math.ceil(minutes)
        # No balance can cover a charge past the column range
        applied = None
        if charge <= MAX_AMOUNT:
            applied = await self._apply_delta(session, user_id, "video", -charge)
        if applied is None:
            current = await self._current(session, user_id, "video")
            raise InsufficientMinutesError(required=charge, current=current)
        before, after, account = applied

        self._record(
            session, user_id, "usage", "video", -charge, before, after,
            description=f"Video watch: {course.title}",
            related_entity_type="course",
            related_entity_id=course_id,
        )
        await session.flush()
        return {
            "success": True,
            "charged_minutes": charge,
            "remaining_minutes": after,
            "remaining_balance": account.balance,
        }

    async def consume_article_credit(
        self, session: AsyncSession, user_id: str, article_id: str
    ) -> dict:
        """Unlock an article with one article credit and grant permanent access."""
        article = await self.access.get_resource(session, "article", article_id)

        owned = article.credits_required == 0 or await self.access.has_access(
            session, user_id, "article", article_id,
        )
        if owned:
            account = await self.get_account(session, user_id)
            return {
                "success": True,
                "charged": 0,
                "message": self._message(
                    "ARTICLE_UNLOCKED" if article.credits_required == 0 else "ALREADY_HAS_ACCESS"
                ),
                "remaining_credits": account.article_credits if account else 0,
                "remaining_balance": account.balance if account else 0,
            }

        applied = await self._apply_delta(session, user_id, "article", -1)
        if applied is None:
            current = await self._current(session, user_id, "article")
            raise InsufficientArticleCreditsError(required=1, current=current)
        before, after, account = applied

        await self.access.grant(session, user_id, "article", article_id)
        self._record(
            session, user_id, "usage", "article", -1, before, after,
            description=f"Article unlock: {article.title}",
            related_entity_type="article_access",
            related_entity_id=article_id,
        )
        await session.flush()
        return {
            "success": True,
            "charged": 1,
            "message": self._message("ARTICLE_UNLOCKED"),
            "remaining_credits": after,
            "remaining_balance": account.balance,
        }

    # ── Admin ──

    async def grant_bonus(
        self,
        session: AsyncSession,
        user_id: str,
        balance_type: str,
        amount: int,
        description: str = "",
    ) -> dict:
        if balance_type not in BALANCE_FIELDS:
            raise ValidationError(
                f"balance_type must be one of {', '.join(BALANCE_FIELDS)}"
            )
        _check_amount(amount)

        await self.open_account(session, user_id)
        applied = await self._apply_delta(session, user_id, balance_type, amount)
        if applied is None:
            raise ResourceNotFoundError("Credit account not found", resource_type="account")
        before, after, _ = applied
        self._record(
            session, user_id, "bonus", balance_type, amount, before, after,
            description=description or "Bonus credit",
        )
        await session.flush()

        logger.info(
            "Bonus granted",
            extra={"context": {"user_id": user_id, "balance_type": balance_type, "amount": amount}},
        )
        return {
            "success": True,
            "balance_type": balance_type,
            "amount": amount,
            "balance_after": after,
        }

    async def reconcile(self, session: AsyncSession, user_id: str) -> dict:
        """Compare ledger sums with current balances, per balance type."""
        account = await self.get_account(session, user_id)
        result = await session.execute(
            select(
                CreditTransactionModel.balance_type,
                func.sum(CreditTransactionModel.amount).label("total"),
            )
            .where(CreditTransactionModel.user_id == user_id)
            .group_by(CreditTransactionModel.balance_type)
        )
        sums = {row.balance_type: int(row.total or 0) for row in result}

        balances = {}
        for balance_type, field in BALANCE_FIELDS.items():
            current = getattr(account, field) if account else 0
            ledger_sum = sums.get(balance_type, 0)
            balances[balance_type] = {
                "ledger_sum": ledger_sum,
                "current": current,
                "consistent": ledger_sum == current,
            }

        totals_consistent = (
            account is None
            or account.total_earned - account.total_spent == account.balance
        )
        return {
            "user_id": user_id,
            "consistent": totals_consistent and all(b["consistent"] for b in balances.values()),
            "totals_consistent": totals_consistent,
            "balances": balances,
        }

    # ── History ──

    async def list_transactions(
        self,
        session: AsyncSession,
        user_id: str,
        offset: int = 0,
        limit: int = 10,
        transaction_type: str | None = None,
    ) -> tuple[list[CreditTransactionModel], int]:
        """Newest-first transaction page. Returns (items, total_count)."""
        filters = [CreditTransactionModel.user_id == user_id]
        if transaction_type:
            if transaction_type not in TRANSACTION_TYPES:
                raise ValidationError(
                    f"type must be one of {', '.join(sorted(TRANSACTION_TYPES))}"
                )
            filters.append(CreditTransactionModel.transaction_type == transaction_type)

        count_result = await session.execute(
            select(func.count(CreditTransactionModel.id)).where(*filters)
        )
        total = count_result.scalar() or 0

        result = await session.execute(
            select(CreditTransactionModel)
            .where(*filters)
            .order_by(CreditTransactionModel.transaction_date.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total
