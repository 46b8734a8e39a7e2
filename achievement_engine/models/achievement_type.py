"""
AchievementType — configuration for one achievement rule.

kind values:
  "accumulative"          — N engaged days, optionally within a rolling window,
                            read from the activity stream named by source_key
  "threshold_count"       — N active memberships of the achiever
  "milestone_completion"  — every milestone in milestone_ids completed

milestone_ids / prerequisite_ids: JSON-encoded lists stored as Text.
"""
import enum
from datetime import datetime, date

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Date, Enum, func
from sqlalchemy.orm import Mapped, mapped_column

from achievement_engine.db.base import Base


class AchievementKind(str, enum.Enum):
    accumulative = "accumulative"
    threshold_count = "threshold_count"
    milestone_completion = "milestone_completion"


class AchievementType(Base):
    __tablename__ = "achievement_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[str] = mapped_column(
        Enum(AchievementKind, name="achievement_kind_enum"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    target_count: Mapped[int] = mapped_column(Integer, nullable=False)
    time_window_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    allow_over_achievement: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_successes_allowed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source_key: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    milestone_ids: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="JSON-encoded list of milestone identifiers",
    )
    prerequisite_ids: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="JSON-encoded list of achievement_types ids",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
