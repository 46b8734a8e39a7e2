from datetime import datetime, date

from sqlalchemy import Integer, String, DateTime, Date, func
from sqlalchemy.orm import Mapped, mapped_column

from achievement_engine.db.base import Base


class MilestoneCompletion(Base):
    __tablename__ = "milestone_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    achiever_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    milestone_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    completed_on: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
