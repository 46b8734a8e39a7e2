"""
Signals router.

PUT  /signals/activity/{source_key}/{achiever_id}  — upsert activity days
POST /signals/milestones                           — record a milestone completion
POST /signals/memberships                          — add or archive a member

Every write is followed by a reconciliation of the active achievement
types that the changed source feeds, for that achiever only.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from achievement_engine.db.base import get_db
from achievement_engine.models.achievement_type import AchievementKind
from achievement_engine.routers.achievements import to_batch_items
from achievement_engine.schemas.signals import (
    ActivityUpload,
    MembershipIn,
    MilestoneCompletionIn,
    SignalResponse,
)
from achievement_engine.services.achievement_service import process_source_change
from achievement_engine.services.signals import (
    DayFlags,
    record_activity,
    record_membership,
    record_milestone_completion,
)

router = APIRouter(prefix="/signals", tags=["signals"])


@router.put(
    "/activity/{source_key}/{achiever_id}",
    response_model=SignalResponse,
    summary="Upsert activity days for one stream",
)
def put_activity(
    payload: ActivityUpload,
    source_key: str = Path(max_length=64),
    achiever_id: str = Path(max_length=64),
    today: Optional[date] = Query(default=None, description="Evaluation date. Defaults to today (UTC)."),
    db: Session = Depends(get_db),
):
    recorded = record_activity(
        db,
        source_key,
        achiever_id,
        payload.enrolled_on,
        [DayFlags(**d.model_dump()) for d in payload.days],
    )
    raw_results = process_source_change(
        db, AchievementKind.accumulative, achiever_id, source_key=source_key, today=today
    )
    return SignalResponse(recorded=recorded, reconciled=to_batch_items(raw_results))


@router.post(
    "/milestones",
    response_model=SignalResponse,
    summary="Record a milestone completion",
)
def post_milestone(
    payload: MilestoneCompletionIn,
    today: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
):
    recorded = record_milestone_completion(
        db, payload.achiever_id, payload.milestone_id, payload.completed_on
    )
    raw_results = process_source_change(
        db,
        AchievementKind.milestone_completion,
        payload.achiever_id,
        milestone_id=payload.milestone_id,
        today=today,
    )
    return SignalResponse(recorded=recorded, reconciled=to_batch_items(raw_results))


@router.post(
    "/memberships",
    response_model=SignalResponse,
    summary="Add or archive a member",
)
def post_membership(
    payload: MembershipIn,
    today: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
):
    """Threshold achievements of the achiever are re-evaluated on every change."""
    recorded = record_membership(db, payload.achiever_id, payload.member_id, payload.is_archived)
    raw_results = process_source_change(
        db, AchievementKind.threshold_count, payload.achiever_id, today=today
    )
    return SignalResponse(recorded=recorded, reconciled=to_batch_items(raw_results))
