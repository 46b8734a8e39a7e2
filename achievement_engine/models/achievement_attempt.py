"""
AchievementAttempt — one persisted progress window toward an achievement.

Rows are written only by applying a reconciliation diff. A row that is both
successful and closed is history: later passes never update or delete it.
"""
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Integer, String, Numeric, DateTime, Date, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from achievement_engine.db.base import Base


class AchievementAttempt(Base):
    __tablename__ = "achievement_attempts"
    __table_args__ = (
        Index("ix_attempt_type_achiever_start", "achievement_type_id", "achiever_id", "start_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    achievement_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievement_types.id", ondelete="CASCADE"), nullable=False
    )
    achiever_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    progress: Mapped[Decimal] = mapped_column(
        Numeric(10, 9), nullable=False, default=Decimal("0"),
        comment="0.000000000–1.000000000",
    )
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_successful: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
