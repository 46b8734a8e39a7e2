"""
Attempt store: loads attempts for the reconciler and applies its diff.

apply_diff only flushes; the caller owns the transaction (one per
(achiever, definition) pair, or one savepoint per pair in a batch).
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from achievement_engine.core.errors import DataError
from achievement_engine.models.achievement_attempt import AchievementAttempt
from achievement_engine.services.attempt_reconciler import ReconcileResult
from achievement_engine.services.records import AttemptRecord


@dataclass
class AppliedDiff:
    created: list[AchievementAttempt]
    updated: list[AchievementAttempt]
    deleted_ids: list[int]


def to_record(row: AchievementAttempt) -> AttemptRecord:
    return AttemptRecord(
        id=row.id,
        definition_id=row.achievement_type_id,
        achiever_id=row.achiever_id,
        start_date=row.start_date,
        end_date=row.end_date,
        progress=row.progress,
        is_closed=row.is_closed,
        is_successful=row.is_successful,
    )


def load_attempts(db: Session, type_id: int, achiever_id: str) -> list[AttemptRecord]:
    """Attempts for the pair, newest start date first."""
    try:
        rows = (
            db.query(AchievementAttempt)
            .filter(
                AchievementAttempt.achievement_type_id == type_id,
                AchievementAttempt.achiever_id == achiever_id,
            )
            .order_by(AchievementAttempt.start_date.desc(), AchievementAttempt.id.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise DataError(
            f"Could not read attempts: {exc}", definition_id=type_id, achiever_id=achiever_id
        ) from exc
    return [to_record(r) for r in rows]


def _write(row: AchievementAttempt, record: AttemptRecord) -> None:
    row.start_date = record.start_date
    row.end_date = record.end_date
    row.progress = record.progress
    row.is_closed = record.is_closed
    row.is_successful = record.is_successful


def apply_diff(
    db: Session, type_id: int, achiever_id: str, result: ReconcileResult
) -> AppliedDiff:
    applied = AppliedDiff(created=[], updated=[], deleted_ids=[])

    for record in result.to_upsert:
        if record.id is None:
            row = AchievementAttempt(achievement_type_id=type_id, achiever_id=achiever_id)
            _write(row, record)
            db.add(row)
            applied.created.append(row)
            continue

        row = db.get(AchievementAttempt, record.id)
        if row is None:
            raise DataError(
                f"Attempt {record.id} disappeared before it could be updated.",
                definition_id=type_id,
                achiever_id=achiever_id,
            )
        _write(row, record)
        applied.updated.append(row)

    for record in result.to_delete:
        row = db.get(AchievementAttempt, record.id) if record.id is not None else None
        if row is not None:
            db.delete(row)
            applied.deleted_ids.append(record.id)

    db.flush()
    return applied
