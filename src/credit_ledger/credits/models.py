"""SQLAlchemy models for balances and the transaction ledger."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.common.models import Base, TimestampMixin, generate_uuid, utcnow

TRANSACTION_TYPES = frozenset({"redeem", "usage", "bonus"})

# balance_type -> user_credits column
BALANCE_FIELDS: dict[str, str] = {
    "universal": "balance",
    "video": "video_watch_minutes",
    "article": "article_credits",
}


class UserCreditsModel(Base, TimestampMixin):
    __tablename__ = "user_credits"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_credits_balance"),
        CheckConstraint("video_watch_minutes >= 0", name="ck_user_credits_video_minutes"),
        CheckConstraint("article_credits >= 0", name="ck_user_credits_article_credits"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    video_watch_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    article_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class CreditTransactionModel(Base):
    """Append-only ledger row. Never updated or deleted."""

    __tablename__ = "credit_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    balance_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    related_entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
