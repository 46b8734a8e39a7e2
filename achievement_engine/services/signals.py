"""
Signal recording: writes the source data achievements are computed from.

Public API
----------
record_activity(db, source_key, achiever_id, enrolled_on, days)  → int
record_milestone_completion(db, achiever_id, milestone_id, completed_on) → int
record_membership(db, achiever_id, member_id, is_archived)  → int

Each returns the number of rows inserted or updated and commits. Callers
then run `achievement_service.process_source_change` for the achiever.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from achievement_engine.models.activity import ActivityDay, ActivityEnrollment
from achievement_engine.models.membership import Membership
from achievement_engine.models.milestone_completion import MilestoneCompletion

logger = logging.getLogger(__name__)


@dataclass
class DayFlags:
    """Lightweight DTO so the service layer stays schema-agnostic."""
    day: date
    has_occurrence: bool = True
    has_engagement: bool = False
    has_exclusion: bool = False


def record_activity(
    db: Session,
    source_key: str,
    achiever_id: str,
    enrolled_on: Optional[date],
    days: list[DayFlags],
) -> int:
    written = 0

    if enrolled_on is not None:
        enrollment = (
            db.query(ActivityEnrollment)
            .filter(
                ActivityEnrollment.source_key == source_key,
                ActivityEnrollment.achiever_id == achiever_id,
            )
            .first()
        )
        if enrollment is None:
            db.add(ActivityEnrollment(
                source_key=source_key, achiever_id=achiever_id, enrolled_on=enrolled_on
            ))
            written += 1
        elif enrollment.enrolled_on != enrolled_on:
            enrollment.enrolled_on = enrolled_on
            written += 1

    if days:
        existing = {
            row.day: row
            for row in db.query(ActivityDay).filter(
                ActivityDay.source_key == source_key,
                ActivityDay.achiever_id == achiever_id,
                ActivityDay.day.in_([d.day for d in days]),
            )
        }
        for flags in days:
            row = existing.get(flags.day)
            if row is None:
                row = ActivityDay(source_key=source_key, achiever_id=achiever_id, day=flags.day)
                db.add(row)
            row.has_occurrence = flags.has_occurrence
            row.has_engagement = flags.has_engagement
            row.has_exclusion = flags.has_exclusion
            written += 1

    db.commit()
    logger.info(
        "Recorded %d activity row(s) for stream=%s achiever=%s", written, source_key, achiever_id
    )
    return written


def record_milestone_completion(
    db: Session, achiever_id: str, milestone_id: str, completed_on: date
) -> int:
    db.add(MilestoneCompletion(
        achiever_id=achiever_id, milestone_id=milestone_id, completed_on=completed_on
    ))
    db.commit()
    logger.info("Recorded completion of milestone=%s by achiever=%s", milestone_id, achiever_id)
    return 1


def record_membership(
    db: Session, achiever_id: str, member_id: str, is_archived: bool = False
) -> int:
    """Add a member, or flip the archived flag of an existing one."""
    row = (
        db.query(Membership)
        .filter(Membership.achiever_id == achiever_id, Membership.member_id == member_id)
        .first()
    )
    if row is None:
        db.add(Membership(achiever_id=achiever_id, member_id=member_id, is_archived=is_archived))
    elif row.is_archived == is_archived:
        return 0
    else:
        row.is_archived = is_archived
    db.commit()
    return 1
