from datetime import datetime

from sqlalchemy import Boolean, Integer, String, DateTime, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from achievement_engine.db.base import Base


class Membership(Base):
    """A member counted toward a group achiever's threshold achievements."""
    __tablename__ = "memberships"
    __table_args__ = (
        UniqueConstraint("achiever_id", "member_id", name="uq_membership"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    achiever_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
