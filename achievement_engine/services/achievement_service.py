"""
Achievement service: runs reconciliation passes against the database.

Public API
----------
create_definition(db, data)                                   -> AchievementType
get_definition(db, type_id)                                   -> AchievementType
list_definitions(db, kind, active_only, limit, offset)        -> (total, page)
to_definition(row)                                            -> AchievementDefinition
list_attempts(db, type_id, achiever_id, limit, offset)        -> (total, page)
reconcile_achiever(db, type_id, achiever_id, boundary, today) -> ReconcileSummary
reconcile_batch(db, type_id, achiever_ids, boundary, today)   -> list[dict]
rebuild_definition(db, type_id, boundary, today)              -> list[dict]
process_source_change(db, kind, achiever_id, ...)             -> list[dict]

Internal
--------
_reconcile_one(...)   → ReconcileSummary   (flush only, no commit)

Transactions: a single reconcile commits once; batch-style calls use one
savepoint per (definition, achiever) pair so a failure for one pair leaves
the others intact.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from achievement_engine.core.config import settings
from achievement_engine.core.errors import (
    ConfigurationError,
    DefinitionNotFoundError,
    ReconciliationError,
)
from achievement_engine.models.achievement_attempt import AchievementAttempt
from achievement_engine.models.achievement_type import AchievementKind, AchievementType
from achievement_engine.models.activity import ActivityDay, ActivityEnrollment
from achievement_engine.models.membership import Membership
from achievement_engine.models.milestone_completion import MilestoneCompletion
from achievement_engine.services.achievement_kinds import KindStrategy, build_strategy
from achievement_engine.services.attempt_reconciler import reconcile
from achievement_engine.services.attempt_store import apply_diff, load_attempts
from achievement_engine.services.prerequisites import get_unmet_prerequisites
from achievement_engine.services.records import AchievementDefinition
from achievement_engine.services.signal_feed import (
    SqlActivityFeed,
    SqlMilestoneLookup,
    count_active_members,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class ReconcileSummary:
    definition_id: int
    achiever_id: str
    created: list[AchievementAttempt] = field(default_factory=list)
    updated: list[AchievementAttempt] = field(default_factory=list)
    deleted_ids: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _today() -> date:
    return datetime.now(tz=timezone.utc).date()


def default_streak_breaking_boundary(today: date) -> date:
    return today - timedelta(days=settings.STREAK_BREAKING_GRACE_DAYS)


def _load_json_list(row: AchievementType, column: str) -> list:
    raw = getattr(row, column)
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Column {column!r} does not hold valid JSON.", definition_id=row.id
        ) from exc
    if not isinstance(value, list):
        raise ConfigurationError(
            f"Column {column!r} must hold a JSON list.", definition_id=row.id
        )
    return value


def to_definition(row: AchievementType) -> AchievementDefinition:
    """Freeze an AchievementType row into the snapshot the engine reads."""
    return AchievementDefinition(
        id=row.id,
        kind=AchievementKind(row.kind),
        target_count=row.target_count,
        time_window_days=row.time_window_days,
        start_date=row.start_date,
        end_date=row.end_date,
        allow_over_achievement=bool(row.allow_over_achievement),
        max_successes_allowed=row.max_successes_allowed,
        prerequisite_ids=frozenset(int(i) for i in _load_json_list(row, "prerequisite_ids")),
        is_active=bool(row.is_active),
        source_key=row.source_key,
        milestone_ids=tuple(
            dict.fromkeys(str(m) for m in _load_json_list(row, "milestone_ids"))
        ),
    )


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

def create_definition(db: Session, data: dict[str, Any]) -> AchievementType:
    values = dict(data)
    values["milestone_ids"] = json.dumps(list(dict.fromkeys(values.get("milestone_ids") or [])))
    values["prerequisite_ids"] = json.dumps(sorted(set(values.get("prerequisite_ids") or [])))
    row = AchievementType(**values)
    to_definition(row).validate()
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Created achievement type %s (%s)", row.id, row.kind)
    return row


def get_definition(db: Session, type_id: int) -> AchievementType:
    row = db.get(AchievementType, type_id)
    if row is None:
        raise DefinitionNotFoundError(type_id)
    return row


def list_definitions(
    db: Session,
    kind: Optional[str] = None,
    active_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[AchievementType]]:
    q = db.query(AchievementType)
    if kind:
        q = q.filter(AchievementType.kind == kind)
    if active_only:
        q = q.filter(AchievementType.is_active == True)  # noqa
    total = q.count()
    items = q.order_by(AchievementType.id).offset(offset).limit(limit).all()
    return total, items


def list_attempts(
    db: Session,
    type_id: int,
    achiever_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[AchievementAttempt]]:
    """Return (total, page) of attempts ordered by start_date desc."""
    get_definition(db, type_id)
    q = db.query(AchievementAttempt).filter(AchievementAttempt.achievement_type_id == type_id)
    if achiever_id:
        q = q.filter(AchievementAttempt.achiever_id == achiever_id)
    total = q.count()
    items = (
        q.order_by(AchievementAttempt.start_date.desc(), AchievementAttempt.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return total, items


# ---------------------------------------------------------------------------
# Core pass (flush only)
# ---------------------------------------------------------------------------

def _build_strategy(
    db: Session,
    definition: AchievementDefinition,
    achiever_id: str,
    today: date,
    boundary: date,
) -> KindStrategy:
    if definition.kind == AchievementKind.accumulative:
        if not definition.source_key:
            raise ConfigurationError(
                "Accumulative achievements need a source_key.", definition_id=definition.id
            )
        return build_strategy(
            definition,
            today=today,
            signal_feed=SqlActivityFeed(db, definition.source_key, achiever_id),
            streak_breaking_boundary=boundary,
        )
    if definition.kind == AchievementKind.threshold_count:
        return build_strategy(
            definition, today=today, current_count=count_active_members(db, achiever_id)
        )
    return build_strategy(
        definition, today=today, milestone_lookup=SqlMilestoneLookup(db, achiever_id)
    )


def _reconcile_one(
    db: Session,
    row: AchievementType,
    achiever_id: str,
    streak_breaking_boundary: Optional[date] = None,
    today: Optional[date] = None,
) -> ReconcileSummary:
    today = today or _today()
    boundary = streak_breaking_boundary or default_streak_breaking_boundary(today)

    try:
        definition = to_definition(row)
        strategy = _build_strategy(db, definition, achiever_id, today, boundary)
        unmet = get_unmet_prerequisites(db, definition, achiever_id)
        existing = load_attempts(db, definition.id, achiever_id)
    except ReconciliationError as exc:
        raise exc.with_context(definition_id=row.id, achiever_id=achiever_id)

    result = reconcile(definition, achiever_id, existing, strategy, unmet)
    if result.error is not None:
        raise result.error

    applied = apply_diff(db, definition.id, achiever_id, result)
    return ReconcileSummary(
        definition_id=definition.id,
        achiever_id=achiever_id,
        created=applied.created,
        updated=applied.updated,
        deleted_ids=applied.deleted_ids,
    )


def _run_isolated(
    db: Session,
    pairs: list[tuple[AchievementType, str]],
    streak_breaking_boundary: Optional[date],
    today: Optional[date],
) -> list[dict]:
    """One savepoint per pair; collect per-pair outcomes in input order."""
    raw_results = []

    for i, (row, achiever_id) in enumerate(pairs):
        savepoint = db.begin_nested()
        try:
            summary = _reconcile_one(db, row, achiever_id, streak_breaking_boundary, today)
            savepoint.commit()
            raw_results.append({"index": i, "ok": True, "summary": summary, "error": None})
        except ReconciliationError as exc:
            savepoint.rollback()
            raw_results.append({"index": i, "ok": False, "summary": None, "error": exc})
        except SQLAlchemyError as exc:
            savepoint.rollback()
            logger.exception(
                "Database error reconciling definition=%s achiever=%s", row.id, achiever_id
            )
            raw_results.append({
                "index": i, "ok": False, "summary": None,
                "error": ReconciliationError(
                    str(exc), definition_id=row.id, achiever_id=achiever_id
                ),
            })
        raw_results[-1]["definition_id"] = row.id
        raw_results[-1]["achiever_id"] = achiever_id

    db.commit()
    return raw_results


# ---------------------------------------------------------------------------
# Public: reconciliation entry points
# ---------------------------------------------------------------------------

def reconcile_achiever(
    db: Session,
    type_id: int,
    achiever_id: str,
    streak_breaking_boundary: Optional[date] = None,
    today: Optional[date] = None,
) -> ReconcileSummary:
    """Reconcile one pair and commit. Typed errors propagate after rollback."""
    row = get_definition(db, type_id)
    try:
        summary = _reconcile_one(db, row, achiever_id, streak_breaking_boundary, today)
    except ReconciliationError as exc:
        db.rollback()
        logger.warning(
            "Reconcile of type=%s achiever=%s rolled back: %s [%s]",
            type_id, achiever_id, exc.message, exc.code,
        )
        raise
    db.commit()
    return summary


def reconcile_batch(
    db: Session,
    type_id: int,
    achiever_ids: list[str],
    streak_breaking_boundary: Optional[date] = None,
    today: Optional[date] = None,
) -> list[dict]:
    row = get_definition(db, type_id)
    return _run_isolated(
        db, [(row, a) for a in achiever_ids], streak_breaking_boundary, today
    )


def _known_achievers(db: Session, row: AchievementType) -> list[str]:
    definition = to_definition(row)
    ids: set[str] = {
        a for (a,) in db.query(AchievementAttempt.achiever_id)
        .filter(AchievementAttempt.achievement_type_id == row.id)
        .distinct()
    }

    if definition.kind == AchievementKind.accumulative and definition.source_key:
        for model in (ActivityEnrollment, ActivityDay):
            ids.update(
                a for (a,) in db.query(model.achiever_id)
                .filter(model.source_key == definition.source_key)
                .distinct()
            )
    elif definition.kind == AchievementKind.threshold_count:
        ids.update(a for (a,) in db.query(Membership.achiever_id).distinct())
    elif definition.kind == AchievementKind.milestone_completion:
        ids.update(
            a for (a,) in db.query(MilestoneCompletion.achiever_id)
            .filter(MilestoneCompletion.milestone_id.in_(definition.milestone_ids))
            .distinct()
        )
    return sorted(ids)


def rebuild_definition(
    db: Session,
    type_id: int,
    streak_breaking_boundary: Optional[date] = None,
    today: Optional[date] = None,
) -> list[dict]:
    """Reconcile every achiever that has source data or attempts for the type."""
    row = get_definition(db, type_id)
    achievers = _known_achievers(db, row)
    logger.info("Rebuilding achievement type %s for %d achiever(s)", row.id, len(achievers))
    return _run_isolated(
        db, [(row, a) for a in achievers], streak_breaking_boundary, today
    )


def is_relevant(
    definition: AchievementDefinition,
    kind: AchievementKind,
    source_key: Optional[str] = None,
    milestone_id: Optional[str] = None,
) -> bool:
    """Whether a change to the given source can move this definition."""
    if not definition.is_active or definition.kind != kind:
        return False
    if kind == AchievementKind.accumulative:
        return source_key is not None and definition.source_key == source_key
    if kind == AchievementKind.milestone_completion:
        return milestone_id is not None and milestone_id in definition.milestone_ids
    return True


def _fed_by(
    row: AchievementType,
    kind: AchievementKind,
    source_key: Optional[str] = None,
    milestone_id: Optional[str] = None,
) -> bool:
    try:
        definition = to_definition(row)
    except ConfigurationError:
        # Unreadable rows are reconciled so the pair reports the error.
        return True
    return is_relevant(definition, kind, source_key=source_key, milestone_id=milestone_id)


def process_source_change(
    db: Session,
    kind: AchievementKind,
    achiever_id: str,
    source_key: Optional[str] = None,
    milestone_id: Optional[str] = None,
    today: Optional[date] = None,
) -> list[dict]:
    """Reconcile every active definition the changed source feeds."""
    rows = (
        db.query(AchievementType)
        .filter(AchievementType.kind == kind, AchievementType.is_active == True)  # noqa
        .order_by(AchievementType.id)
        .all()
    )
    relevant = [
        r for r in rows
        if _fed_by(r, kind, source_key=source_key, milestone_id=milestone_id)
    ]
    return _run_isolated(db, [(r, achiever_id) for r in relevant], None, today)
