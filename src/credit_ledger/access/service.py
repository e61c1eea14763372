"""Access service — priced resource catalog and permanent access grants."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.access.models import (
    ArticleAccessModel,
    ArticleModel,
    CourseAccessModel,
    CourseModel,
)
from credit_ledger.common.config import LedgerSettings
from credit_ledger.common.exceptions import (
    AccessGrantError,
    ResourceNotFoundError,
    ValidationError,
)
from credit_ledger.common.logging import get_logger
from credit_ledger.common.models import MAX_AMOUNT

logger = get_logger("access.service")

# resource_type -> (resource model, grant model, grant foreign-key attribute)
RESOURCE_TYPES: dict[str, tuple[type, type, str]] = {
    "article": (ArticleModel, ArticleAccessModel, "article_id"),
    "course": (CourseModel, CourseAccessModel, "course_id"),
}


def _resolve_type(resource_type: str) -> tuple[type, type, str]:
    try:
        return RESOURCE_TYPES[resource_type]
    except KeyError:
        raise ValidationError(f"Unknown resource type '{resource_type}'") from None


class AccessService:
    """Catalog lookups, grant checks and grant creation."""

    def __init__(self, settings: LedgerSettings):
        self.settings = settings

    # ── Catalog ──

    async def create_resource(
        self,
        session: AsyncSession,
        resource_type: str,
        title: str,
        credits_required: int = 0,
        resource_id: str | None = None,
    ) -> ArticleModel | CourseModel:
        if credits_required < 0:
            raise ValidationError("credits_required must not be negative")
        if credits_required > MAX_AMOUNT:
            raise ValidationError(f"credits_required must not exceed {MAX_AMOUNT}")
        model, _, _ = _resolve_type(resource_type)
        resource = model(title=title, credits_required=credits_required)
        if resource_id:
            resource.id = resource_id
        session.add(resource)
        try:
            await session.flush()
        except IntegrityError as e:
            raise ValidationError(
                f"{resource_type.capitalize()} '{resource_id}' already exists"
            ) from e
        return resource

    async def create_article(
        self, session: AsyncSession, title: str, credits_required: int = 0, **kwargs: Any
    ) -> ArticleModel:
        return await self.create_resource(session, "article", title, credits_required, **kwargs)

    async def create_course(
        self, session: AsyncSession, title: str, credits_required: int = 0, **kwargs: Any
    ) -> CourseModel:
        return await self.create_resource(session, "course", title, credits_required, **kwargs)

    async def get_resource(
        self, session: AsyncSession, resource_type: str, resource_id: str
    ) -> ArticleModel | CourseModel:
        """Fetch an article or course, raising ResourceNotFoundError."""
        model, _, _ = _resolve_type(resource_type)
        resource = await session.get(model, resource_id)
        if resource is None:
            raise ResourceNotFoundError(
                f"{resource_type.capitalize()} not found", resource_type=resource_type,
            )
        return resource

    # ── Grants ──

    async def has_access(
        self, session: AsyncSession, user_id: str, resource_type: str, resource_id: str
    ) -> bool:
        _, grant_model, fk = _resolve_type(resource_type)
        result = await session.execute(
            select(grant_model.id).where(
                grant_model.user_id == user_id,
                getattr(grant_model, fk) == resource_id,
            )
        )
        return result.first() is not None

    async def grant(
        self, session: AsyncSession, user_id: str, resource_type: str, resource_id: str
    ) -> ArticleAccessModel | CourseAccessModel:
        """Insert a permanent grant row.

        A failed insert raises AccessGrantError; callers run inside the same
        transaction as the debit, so the debit rolls back with it.
        """
        _, grant_model, fk = _resolve_type(resource_type)
        grant = grant_model(user_id=user_id, **{fk: resource_id})
        session.add(grant)
        try:
            await session.flush()
        except IntegrityError as e:
            logger.warning(
                "Access grant rejected",
                extra={"context": {"resource_type": resource_type, "resource_id": resource_id}},
            )
            raise AccessGrantError() from e
        return grant

    # ── Checks ──

    @staticmethod
    def check_access_result(
        has_grant: bool | None, user_id: str | None, credits_required: int
    ) -> dict:
        """Shape an access answer; ``has_grant`` is only consulted for paid resources."""
        if credits_required == 0:
            return {"has_access": True, "free": True, "credits_required": 0}
        if user_id is None:
            return {
                "has_access": False,
                "requires_auth": True,
                "credits_required": credits_required,
            }
        return {"has_access": bool(has_grant), "credits_required": credits_required}

    async def check_access(
        self,
        session: AsyncSession,
        user_id: str | None,
        resource_id: str,
        credits_required: int,
        resource_type: str = "article",
    ) -> dict:
        """Read-only access check.

        Free resources short-circuit without a grant lookup, anonymous callers
        get ``requires_auth`` without learning any grant state.
        """
        if credits_required == 0 or user_id is None:
            return self.check_access_result(None, user_id, credits_required)
        has_grant = await self.has_access(session, user_id, resource_type, resource_id)
        return self.check_access_result(has_grant, user_id, credits_required)

    async def check_resource_access(
        self,
        session: AsyncSession,
        user_id: str | None,
        resource_type: str,
        resource_id: str,
    ) -> dict:
        resource = await self.get_resource(session, resource_type, resource_id)
        return await self.check_access(
            session, user_id, resource.id, resource.credits_required, resource_type,
        )
