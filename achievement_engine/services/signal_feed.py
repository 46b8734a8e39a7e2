"""
SQL-backed signal sources handed to the achievement kinds.

SqlActivityFeed      — SignalFeed over activity_enrollments / activity_days
SqlMilestoneLookup   — latest completion date per milestone within bounds
count_active_members — current count for threshold achievements

Any database failure while reading signals is raised as DataError so the
pass for that achiever aborts without touching its attempts.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterator, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from achievement_engine.core.errors import DataError
from achievement_engine.models.activity import ActivityDay, ActivityEnrollment
from achievement_engine.models.membership import Membership
from achievement_engine.models.milestone_completion import MilestoneCompletion
from achievement_engine.services.records import SignalDay


class SqlActivityFeed:

    def __init__(self, db: Session, source_key: str, achiever_id: str):
        self.db = db
        self.source_key = source_key
        self.achiever_id = achiever_id

    def enrollment_date(self) -> Optional[date]:
        """Explicit enrollment, else the first recorded activity day."""
        try:
            enrolled_on = (
                self.db.query(ActivityEnrollment.enrolled_on)
                .filter(
                    ActivityEnrollment.source_key == self.source_key,
                    ActivityEnrollment.achiever_id == self.achiever_id,
                )
                .scalar()
            )
            if enrolled_on is not None:
                return enrolled_on
            return (
                self.db.query(func.min(ActivityDay.day))
                .filter(
                    ActivityDay.source_key == self.source_key,
                    ActivityDay.achiever_id == self.achiever_id,
                )
                .scalar()
            )
        except SQLAlchemyError as exc:
            raise DataError(
                f"Could not read enrollment for stream {self.source_key!r}: {exc}",
                achiever_id=self.achiever_id,
            ) from exc

    def iter_days(self, start: date, end: date) -> Iterator[SignalDay]:
        try:
            rows = (
                self.db.query(ActivityDay)
                .filter(
                    ActivityDay.source_key == self.source_key,
                    ActivityDay.achiever_id == self.achiever_id,
                    ActivityDay.day >= start,
                    ActivityDay.day <= end,
                )
                .order_by(ActivityDay.day)
                .all()
            )
        except SQLAlchemyError as exc:
            raise DataError(
                f"Could not read activity for stream {self.source_key!r}: {exc}",
                achiever_id=self.achiever_id,
            ) from exc

        by_day = {row.day: row for row in rows}
        current = start
        while current <= end:
            row = by_day.get(current)
            if row is None:
                yield SignalDay(day=current)
            else:
                yield SignalDay(
                    day=current,
                    has_occurrence=row.has_occurrence,
                    has_engagement=row.has_engagement,
                    has_exclusion=row.has_exclusion,
                )
            current += timedelta(days=1)


class SqlMilestoneLookup:

    def __init__(self, db: Session, achiever_id: str):
        self.db = db
        self.achiever_id = achiever_id

    def completion_date(
        self, milestone_id: str, min_date: Optional[date], max_date: Optional[date]
    ) -> Optional[date]:
        q = self.db.query(func.max(MilestoneCompletion.completed_on)).filter(
            MilestoneCompletion.achiever_id == self.achiever_id,
            MilestoneCompletion.milestone_id == milestone_id,
        )
        if min_date is not None:
            q = q.filter(MilestoneCompletion.completed_on >= min_date)
        if max_date is not None:
            q = q.filter(MilestoneCompletion.completed_on <= max_date)
        try:
            return q.scalar()
        except SQLAlchemyError as exc:
            raise DataError(
                f"Could not read completions for milestone {milestone_id!r}: {exc}",
                achiever_id=self.achiever_id,
            ) from exc


def count_active_members(db: Session, achiever_id: str) -> int:
    try:
        return (
            db.query(func.count(Membership.id))
            .filter(Membership.achiever_id == achiever_id, Membership.is_archived == False)  # noqa
            .scalar()
            or 0
        )
    except SQLAlchemyError as exc:
        raise DataError(
            f"Could not count members: {exc}", achiever_id=achiever_id
        ) from exc
