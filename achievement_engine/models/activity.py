"""
Activity signal tables read by accumulative achievements.

ActivityEnrollment — when an achiever started being tracked on a stream.
ActivityDay        — one row per (stream, achiever, day) with the three
                     flags the scan consumes. Missing days read as all-false.
"""
from datetime import datetime, date

from sqlalchemy import Boolean, Integer, String, DateTime, Date, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from achievement_engine.db.base import Base


class ActivityEnrollment(Base):
    __tablename__ = "activity_enrollments"
    __table_args__ = (
        UniqueConstraint("source_key", "achiever_id", name="uq_activity_enrollment"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    source_key: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achiever_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    enrolled_on: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ActivityDay(Base):
    __tablename__ = "activity_days"
    __table_args__ = (
        UniqueConstraint("source_key", "achiever_id", "day", name="uq_activity_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    source_key: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achiever_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    has_occurrence: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    has_engagement: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_exclusion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
