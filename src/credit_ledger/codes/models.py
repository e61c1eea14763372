"""SQLAlchemy model for redeemable license codes."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.common.models import Base, TimestampMixin, generate_uuid

CREDIT_TYPES = frozenset({"universal", "video", "article", "both"})


class LicenseCodeModel(Base, TimestampMixin):
    __tablename__ = "license_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    credit_type: Mapped[str] = mapped_column(String(20), nullable=False, default="universal")
    credit_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    video_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    article_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    batch_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    redeemed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    redeemed_by: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    redeemed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
