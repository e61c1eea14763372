"""SQLAlchemy models for priced resources and their access grants."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.common.models import Base, TimestampMixin, generate_uuid, utcnow


class ArticleModel(Base, TimestampMixin):
    __tablename__ = "articles"
    __table_args__ = (
        CheckConstraint("credits_required >= 0", name="ck_articles_credits_required"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    credits_required: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class CourseModel(Base, TimestampMixin):
    __tablename__ = "video_courses"
    __table_args__ = (
        CheckConstraint("credits_required >= 0", name="ck_video_courses_credits_required"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    credits_required: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ArticleAccessModel(Base):
    __tablename__ = "article_access"
    __table_args__ = (
        UniqueConstraint("user_id", "article_id", name="uq_article_access_user_article"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    article_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("articles.id"), nullable=False, index=True
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class CourseAccessModel(Base):
    __tablename__ = "course_access"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_access_user_course"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("video_courses.id"), nullable=False, index=True
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
