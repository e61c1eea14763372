"""Tests for the credit service — redeem, consume, bonus, history and reconciliation."""

from unittest.mock import patch

import pytest
from sqlalchemy import func, select, update

from credit_ledger.access.service import AccessService
from credit_ledger.codes.models import LicenseCodeModel
from credit_ledger.codes.service import CodeService
from credit_ledger.common.config import LedgerSettings
from credit_ledger.common.database import DatabaseManager
from credit_ledger.common.exceptions import (
    AccessGrantError,
    AlreadyRedeemedError,
    InsufficientArticleCreditsError,
    InsufficientBalanceError,
    InsufficientMinutesError,
    InvalidCodeError,
    ResourceNotFoundError,
    ValidationError,
)
from credit_ledger.common.models import MAX_AMOUNT
from credit_ledger.credits.models import CreditTransactionModel, UserCreditsModel
from credit_ledger.credits.service import CreditService


def make_settings(**overrides) -> LedgerSettings:
    defaults = {"secret_key": "test-secret", "db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return LedgerSettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def access_svc():
    return AccessService(make_settings())


@pytest.fixture
def codes_svc():
    return CodeService(make_settings())


@pytest.fixture
def svc(access_svc):
    return CreditService(make_settings(), access_svc)


async def _add_code(db, code="GIFT-XYZ", credit_type="universal", **values):
    async with db.get_session() as session:
        session.add(LicenseCodeModel(
            code=code,
            credit_type=credit_type,
            credit_value=values.get("credit_value", 0),
            video_minutes=values.get("video_minutes", 0),
            article_count=values.get("article_count", 0),
            redeemed=False,
        ))


async def _add_course(db, access_svc, course_id="course-1", price=30):
    async with db.get_session() as session:
        await access_svc.create_course(session, "Course", price, resource_id=course_id)


async def _add_article(db, access_svc, article_id="article-1", price=1):
    async with db.get_session() as session:
        await access_svc.create_article(session, "Article", price, resource_id=article_id)


async def _fund(db, svc, user_id="user-1", balance_type="universal", amount=100):
    async with db.get_session() as session:
        await svc.grant_bonus(session, user_id, balance_type, amount)


async def _transactions(db, user_id="user-1"):
    async with db.get_session() as session:
        result = await session.execute(
            select(CreditTransactionModel).where(CreditTransactionModel.user_id == user_id)
        )
        return list(result.scalars().all())


class TestAccounts:
    async def test_balance_of_unknown_user_is_zero(self, db, svc):
        async with db.get_session() as session:
            balance = await svc.get_balance(session, "nobody")
            assert balance == {
                "balance": 0,
                "video_watch_minutes": 0,
                "article_credits": 0,
                "total_earned": 0,
                "total_spent": 0,
            }
            assert await svc.get_account(session, "nobody") is None

    async def test_open_account_is_idempotent(self, db, svc):
        async with db.get_session() as session:
            first = await svc.open_account(session, "user-1")
        async with db.get_session() as session:
            second = await svc.open_account(session, "user-1")
            count = await session.execute(select(func.count(UserCreditsModel.id)))
            assert count.scalar() == 1
        assert first.id == second.id
        assert second.balance == 0


class TestRedeem:
    async def test_redeem_universal_code(self, db, svc):
        await _add_code(db, credit_value=100)
        async with db.get_session() as session:
            result = await svc.redeem_code(session, "user-1", "GIFT-XYZ")

        assert result["success"] is True
        assert result["credit_type"] == "universal"
        assert result["credits"] == {"balance": 100, "video_minutes": 0, "article_credits": 0}

        async with db.get_session() as session:
            balance = await svc.get_balance(session, "user-1")
        assert balance["total_earned"] == 100

        rows = await _transactions(db)
        assert len(rows) == 1
        assert rows[0].transaction_type == "redeem"
        assert rows[0].amount == 100
        assert rows[0].balance_before == 0
        assert rows[0].balance_after == 100

    async def test_redeem_marks_code(self, db, svc, codes_svc):
        await _add_code(db, credit_value=10)
        async with db.get_session() as session:
            await svc.redeem_code(session, "user-1", "GIFT-XYZ")
        async with db.get_session() as session:
            code = await codes_svc.get_code(session, "GIFT-XYZ")
            assert code.redeemed is True
            assert code.redeemed_by == "user-1"
            assert code.redeemed_at is not None

    async def test_redeem_is_case_insensitive(self, db, svc):
        await _add_code(db, credit_value=5)
        async with db.get_session() as session:
            result = await svc.redeem_code(session, "user-1", "  gift-xyz ")
        assert result["credits"]["balance"] == 5

    async def test_redeem_both_writes_two_rows(self, db, svc):
        await _add_code(db, credit_type="both", video_minutes=60, article_count=3)
        async with db.get_session() as session:
            result = await svc.redeem_code(session, "user-1", "GIFT-XYZ")
        assert result["credits"] == {"balance": 0, "video_minutes": 60, "article_credits": 3}

        rows = await _transactions(db)
        assert sorted((r.balance_type, r.amount) for r in rows) == [("article", 3), ("video", 60)]

    async def test_redeem_twice_fails(self, db, svc):
        await _add_code(db, credit_value=100)
        async with db.get_session() as session:
            await svc.redeem_code(session, "user-1", "GIFT-XYZ")
        with pytest.raises(AlreadyRedeemedError):
            async with db.get_session() as session:
                await svc.redeem_code(session, "user-2", "GIFT-XYZ")

        async with db.get_session() as session:
            assert (await svc.get_balance(session, "user-2"))["balance"] == 0

    async def test_unknown_code(self, db, svc):
        with pytest.raises(InvalidCodeError):
            async with db.get_session() as session:
                await svc.redeem_code(session, "user-1", "NOPE-0000")

    async def test_empty_code(self, db, svc):
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.redeem_code(session, "user-1", "   ")

    async def test_credit_failure_leaves_code_unredeemed(self, db, svc, codes_svc):
        await _add_code(db, credit_value=100)

        with patch.object(svc, "_apply_delta", side_effect=RuntimeError("storage down")):
            with pytest.raises(RuntimeError):
                async with db.get_session() as session:
                    await svc.redeem_code(session, "user-1", "GIFT-XYZ")

        async with db.get_session() as session:
            code = await codes_svc.get_code(session, "GIFT-XYZ")
            assert code.redeemed is False
            assert code.redeemed_by is None
            assert code.redeemed_at is None
            assert await svc.get_account(session, "user-1") is None
        assert await _transactions(db) == []


class TestConsumeUniversal:
    async def test_purchase_course(self, db, svc, access_svc):
        await _add_course(db, access_svc, price=30)
        await _fund(db, svc, amount=100)

        async with db.get_session() as session:
            result = await svc.consume_universal(session, "user-1", 30, "course", "course-1")
        assert result["charged"] == 30
        assert result["remaining_balance"] == 70

        async with db.get_session() as session:
            assert await access_svc.has_access(session, "user-1", "course", "course-1")
            balance = await svc.get_balance(session, "user-1")
        assert balance["total_spent"] == 30
        assert balance["total_earned"] - balance["total_spent"] == balance["balance"]

    async def test_already_owned_is_not_charged(self, db, svc, access_svc):
        await _add_course(db, access_svc, price=30)
        await _fund(db, svc, amount=100)
        async with db.get_session() as session:
            await svc.consume_universal(session, "user-1", 30, "course", "course-1")
        async with db.get_session() as session:
            result = await svc.consume_universal(session, "user-1", 30, "course", "course-1")
        assert result["already_owned"] is True
        assert result["charged"] == 0
        assert result["remaining_balance"] == 70

    async def test_insufficient_balance(self, db, svc, access_svc):
        await _add_course(db, access_svc, price=30)
        await _fund(db, svc, amount=10)
        with pytest.raises(InsufficientBalanceError) as exc_info:
            async with db.get_session() as session:
                await svc.consume_universal(session, "user-1", 30, "course", "course-1")
        assert exc_info.value.required == 30
        assert exc_info.value.current == 10

    async def test_non_positive_amount(self, db, svc, access_svc):
        await _add_course(db, access_svc)
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.consume_universal(session, "user-1", 0, "course", "course-1")

    async def test_amount_too_large(self, db, svc, access_svc):
        await _add_course(db, access_svc)
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.consume_universal(session, "user-1", 2**70, "course", "course-1")

    async def test_unknown_resource_type(self, db, svc):
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.consume_universal(session, "user-1", 5, "podcast", "p-1")

    async def test_missing_course(self, db, svc):
        with pytest.raises(ResourceNotFoundError):
            async with db.get_session() as session:
                await svc.consume_universal(session, "user-1", 5, "course", "missing")

    async def test_grant_failure_rolls_back_debit(self, db, svc, access_svc):
        await _add_course(db, access_svc, price=30)
        await _fund(db, svc, amount=100)

        with patch.object(access_svc, "grant", side_effect=AccessGrantError()):
            with pytest.raises(AccessGrantError):
                async with db.get_session() as session:
                    await svc.consume_universal(session, "user-1", 30, "course", "course-1")

        async with db.get_session() as session:
            balance = await svc.get_balance(session, "user-1")
            assert not await access_svc.has_access(session, "user-1", "course", "course-1")
        assert balance["balance"] == 100
        assert balance["total_spent"] == 0
        assert [r.transaction_type for r in await _transactions(db)] == ["bonus"]


class TestPurchaseCourse:
    async def test_charges_catalog_price(self, db, svc, access_svc):
        await _add_course(db, access_svc, price=40)
        await _fund(db, svc, amount=50)
        async with db.get_session() as session:
            result = await svc.purchase_course(session, "user-1", "course-1")
        assert result["charged"] == 40
        assert result["remaining_balance"] == 10

    async def test_free_course_granted_without_charge(self, db, svc, access_svc):
        await _add_course(db, access_svc, price=0)
        async with db.get_session() as session:
            result = await svc.purchase_course(session, "user-1", "course-1")
        assert result["charged"] == 0
        assert result["already_owned"] is False
        async with db.get_session() as session:
            assert await access_svc.has_access(session, "user-1", "course", "course-1")
        assert await _transactions(db) == []

    async def test_missing_course(self, db, svc):
        with pytest.raises(ResourceNotFoundError):
            async with db.get_session() as session:
                await svc.purchase_course(session, "user-1", "missing")


class TestConsumeVideo:
    async def test_charges_rounded_up_minutes(self, db, svc, access_svc):
        await _add_course(db, access_svc)
        await _fund(db, svc, balance_type="video", amount=10)
        async with db.get_session() as session:
            result = await svc.consume_video_minutes(session, "user-1", 2.5, "course-1")
        assert result["charged_minutes"] == 3
        assert result["remaining_minutes"] == 7
        assert result["remaining_balance"] == 0

        async with db.get_session() as session:
            assert not await access_svc.has_access(session, "user-1", "course", "course-1")

    async def test_insufficient_minutes(self, db, svc, access_svc):
        await _add_course(db, access_svc)
        await _fund(db, svc, balance_type="video", amount=2)
        with pytest.raises(InsufficientMinutesError) as exc_info:
            async with db.get_session() as session:
                await svc.consume_video_minutes(session, "user-1", 2.1, "course-1")
        assert exc_info.value.required == 3
        assert exc_info.value.current == 2

    async def test_zero_minutes(self, db, svc, access_svc):
        await _add_course(db, access_svc)
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.consume_video_minutes(session, "user-1", 0, "course-1")

    @pytest.mark.parametrize("minutes", [float("nan"), float("inf"), float("-inf")])
    async def test_non_finite_minutes(self, db, svc, access_svc, minutes):
        await _add_course(db, access_svc)
        await _fund(db, svc, balance_type="video", amount=10)
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.consume_video_minutes(session, "user-1", minutes, "course-1")

    async def test_huge_minutes_are_insufficient(self, db, svc, access_svc):
        await _add_course(db, access_svc)
        await _fund(db, svc, balance_type="video", amount=10)
        with pytest.raises(InsufficientMinutesError) as exc_info:
            async with db.get_session() as session:
                await svc.consume_video_minutes(session, "user-1", 1e300, "course-1")
        assert exc_info.value.required > MAX_AMOUNT
        assert exc_info.value.current == 10

        async with db.get_session() as session:
            assert (await svc.get_balance(session, "user-1"))["video_watch_minutes"] == 10

    async def test_missing_course(self, db, svc):
        with pytest.raises(ResourceNotFoundError):
            async with db.get_session() as session:
                await svc.consume_video_minutes(session, "user-1", 1, "missing")


class TestConsumeArticle:
    async def test_unlock_article(self, db, svc, access_svc):
        await _add_article(db, access_svc)
        await _fund(db, svc, balance_type="article", amount=2)
        async with db.get_session() as session:
            result = await svc.consume_article_credit(session, "user-1", "article-1")
        assert result["charged"] == 1
        assert result["remaining_credits"] == 1

        async with db.get_session() as session:
            assert await access_svc.has_access(session, "user-1", "article", "article-1")

    async def test_second_unlock_is_free(self, db, svc, access_svc):
        await _add_article(db, access_svc)
        await _fund(db, svc, balance_type="article", amount=2)
        async with db.get_session() as session:
            await svc.consume_article_credit(session, "user-1", "article-1")
        async with db.get_session() as session:
            result = await svc.consume_article_credit(session, "user-1", "article-1")
        assert result["charged"] == 0
        assert result["remaining_credits"] == 1

    async def test_free_article_is_not_charged(self, db, svc, access_svc):
        await _add_article(db, access_svc, price=0)
        async with db.get_session() as session:
            result = await svc.consume_article_credit(session, "user-1", "article-1")
        assert result["success"] is True
        assert result["charged"] == 0

    async def test_zero_credits(self, db, svc, access_svc):
        await _add_article(db, access_svc)
        async with db.get_session() as session:
            await svc.open_account(session, "user-1")
        with pytest.raises(InsufficientArticleCreditsError) as exc_info:
            async with db.get_session() as session:
                await svc.consume_article_credit(session, "user-1", "article-1")
        assert exc_info.value.current == 0
        async with db.get_session() as session:
            assert not await access_svc.has_access(session, "user-1", "article", "article-1")

    async def test_grant_failure_rolls_back_debit(self, db, svc, access_svc):
        await _add_article(db, access_svc)
        await _fund(db, svc, balance_type="article", amount=2)

        with patch.object(access_svc, "grant", side_effect=AccessGrantError()):
            with pytest.raises(AccessGrantError):
                async with db.get_session() as session:
                    await svc.consume_article_credit(session, "user-1", "article-1")

        async with db.get_session() as session:
            balance = await svc.get_balance(session, "user-1")
            assert not await access_svc.has_access(session, "user-1", "article", "article-1")
        assert balance["article_credits"] == 2
        assert [r.transaction_type for r in await _transactions(db)] == ["bonus"]

    async def test_missing_article(self, db, svc):
        with pytest.raises(ResourceNotFoundError):
            async with db.get_session() as session:
                await svc.consume_article_credit(session, "user-1", "missing")


class TestBonus:
    async def test_bonus_opens_account(self, db, svc):
        async with db.get_session() as session:
            result = await svc.grant_bonus(session, "user-9", "universal", 25, "welcome")
        assert result["balance_after"] == 25
        rows = await _transactions(db, "user-9")
        assert rows[0].transaction_type == "bonus"
        assert rows[0].description == "welcome"

    async def test_invalid_balance_type(self, db, svc):
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.grant_bonus(session, "user-1", "gold", 5)

    async def test_non_positive_amount(self, db, svc):
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.grant_bonus(session, "user-1", "universal", -5)

    async def test_amount_too_large(self, db, svc):
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.grant_bonus(session, "user-1", "universal", 2**70)
        async with db.get_session() as session:
            assert await svc.get_account(session, "user-1") is None
        assert await _transactions(db) == []


class TestTransactions:
    async def test_newest_first_and_filter(self, db, svc, access_svc):
        await _add_article(db, access_svc)
        await _fund(db, svc, balance_type="article", amount=1)
        async with db.get_session() as session:
            await svc.consume_article_credit(session, "user-1", "article-1")

        async with db.get_session() as session:
            items, total = await svc.list_transactions(session, "user-1")
            assert total == 2
            assert [t.transaction_type for t in items] == ["usage", "bonus"]

            usage, usage_total = await svc.list_transactions(
                session, "user-1", transaction_type="usage",
            )
            assert usage_total == 1
            assert usage[0].amount == -1

    async def test_pagination(self, db, svc):
        for _ in range(3):
            await _fund(db, svc, amount=1)
        async with db.get_session() as session:
            items, total = await svc.list_transactions(session, "user-1", offset=2, limit=2)
        assert total == 3
        assert len(items) == 1

    async def test_invalid_type(self, db, svc):
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.list_transactions(session, "user-1", transaction_type="refund")


class TestReconcile:
    async def test_consistent_after_mixed_activity(self, db, svc, access_svc):
        await _add_course(db, access_svc, price=30)
        await _add_code(db, credit_value=100)
        await _add_code(db, code="GIFT-BOTH", credit_type="both", video_minutes=10, article_count=2)
        async with db.get_session() as session:
            await svc.redeem_code(session, "user-1", "GIFT-XYZ")
        async with db.get_session() as session:
            await svc.redeem_code(session, "user-1", "GIFT-BOTH")
        async with db.get_session() as session:
            await svc.consume_universal(session, "user-1", 30, "course", "course-1")
        async with db.get_session() as session:
            await svc.consume_video_minutes(session, "user-1", 4, "course-1")

        async with db.get_session() as session:
            report = await svc.reconcile(session, "user-1")
        assert report["consistent"] is True
        assert report["balances"]["universal"] == {"ledger_sum": 70, "current": 70, "consistent": True}
        assert report["balances"]["video"]["current"] == 6
        assert report["balances"]["article"]["current"] == 2

    async def test_detects_out_of_band_change(self, db, svc):
        await _fund(db, svc, amount=10)
        async with db.get_session() as session:
            await session.execute(
                update(UserCreditsModel)
                .where(UserCreditsModel.user_id == "user-1")
                .values(balance=500)
            )
        async with db.get_session() as session:
            report = await svc.reconcile(session, "user-1")
        assert report["consistent"] is False
        assert report["totals_consistent"] is False
        assert report["balances"]["universal"]["consistent"] is False
