"""
Progress arithmetic shared by every achievement kind.

Public API
----------
calculate_progress(count, target)                          -> Decimal in [0, 1]
calculate_deficiency(attempt, target)                      -> int
next_valid_start_date(attempt, target)                     -> date
calculate_min_date(enrollment, most_recent, start, target) -> date | None
calculate_max_date(min_date, end_bound, today)             -> date
attempt_from_accumulation(accumulation, target, is_closed) -> AttemptRecord
"""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_HALF_UP
from typing import Optional

from achievement_engine.services.records import Accumulation, AttemptRecord

# Matches the scale of achievement_attempts.progress so a value read back
# from the database compares equal to a freshly computed one.
PROGRESS_QUANTUM = Decimal("0.000000001")

_ZERO = Decimal("0")
_ONE = Decimal("1")


def calculate_progress(count: int, target: int) -> Decimal:
    raw = Decimal(count) / Decimal(target)
    clamped = min(max(raw, _ZERO), _ONE)
    return clamped.quantize(PROGRESS_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_deficiency(attempt: Optional[AttemptRecord], target: int) -> int:
    """Number of additional qualifying days the attempt still needed."""
    progress = attempt.progress if attempt is not None else _ZERO
    progress = min(max(progress, _ZERO), _ONE)
    achieved = int((progress * target).quantize(_ONE, rounding=ROUND_HALF_EVEN))
    return target - achieved


def next_valid_start_date(attempt: AttemptRecord, target: int) -> date:
    """
    Earliest start for an attempt following `attempt`.

    A window that used every qualifying day frees the day after it ended;
    otherwise the next window can begin `deficiency` days after its start.
    """
    deficiency = calculate_deficiency(attempt, target)
    if deficiency == 0 and attempt.end_date is not None:
        return attempt.end_date + timedelta(days=1)
    if deficiency >= 1:
        return attempt.start_date + timedelta(days=deficiency)
    return attempt.start_date + timedelta(days=1)


def calculate_min_date(
    enrollment_date: Optional[date],
    most_recent: Optional[AttemptRecord],
    start_bound: Optional[date],
    target: int,
) -> Optional[date]:
    candidates = [d for d in (enrollment_date, start_bound) if d is not None]
    if most_recent is not None:
        candidates.append(next_valid_start_date(most_recent, target))
    return max(candidates) if candidates else None


def calculate_max_date(min_date: Optional[date], end_bound: Optional[date], today: date) -> date:
    max_date = today
    if end_bound is not None and end_bound < max_date:
        max_date = end_bound
    if min_date is not None and max_date < min_date:
        max_date = min_date
    return max_date


def attempt_from_accumulation(
    accumulation: Accumulation, target: int, is_closed: bool
) -> AttemptRecord:
    progress = calculate_progress(accumulation.count, target)
    return AttemptRecord(
        start_date=accumulation.start_date,
        end_date=accumulation.end_date,
        progress=progress,
        is_closed=is_closed,
        is_successful=progress >= _ONE,
    )
