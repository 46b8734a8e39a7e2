"""
Sliding-window accumulation over a day-indexed signal feed.

The feed yields one `SignalDay` per calendar day. A day is *engaged* when it
has both an occurrence and an engagement. Scans are written as pure step
functions `step(state, signal) -> stop` driven by `iterate_signal_days`; the
only mutable data is the explicit state object passed in.

Public API
----------
iterate_signal_days(feed, start, end, step, state)       -> state
scan_open_attempt(feed, definition, attempt, boundary, today)
scan_new_attempts(feed, definition, most_recent_success, boundary, today,
                  stop_after_successes=None)             -> NewAttemptScan
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Optional, Protocol, TypeVar

from achievement_engine.core.errors import DataError
from achievement_engine.services.progress import (
    attempt_from_accumulation,
    calculate_max_date,
    calculate_min_date,
    calculate_progress,
)
from achievement_engine.services.records import (
    Accumulation,
    AchievementDefinition,
    AttemptRecord,
    SignalDay,
)

logger = logging.getLogger(__name__)

S = TypeVar("S")


class SignalFeed(Protocol):
    """Day-indexed activity source for one achiever."""

    def enrollment_date(self) -> Optional[date]: ...

    def iter_days(self, start: date, end: date) -> Iterable[SignalDay]: ...


# ---------------------------------------------------------------------------
# Iterator
# ---------------------------------------------------------------------------

def iterate_signal_days(
    feed: SignalFeed,
    start: date,
    end: date,
    step: Callable[[S, SignalDay], bool],
    state: S,
) -> S:
    """
    Feed every day in [start, end] to `step` in ascending order.
    Stops early when `step` returns True. Raises DataError on a malformed feed.
    """
    previous: Optional[date] = None
    for signal in feed.iter_days(start, end):
        if not isinstance(signal, SignalDay):
            raise DataError(f"Signal feed yielded {type(signal).__name__}, expected SignalDay.")
        if signal.day < start or signal.day > end:
            raise DataError(f"Signal feed yielded {signal.day} outside {start}..{end}.")
        if previous is not None and signal.day <= previous:
            raise DataError(f"Signal feed is not ascending: {signal.day} after {previous}.")
        previous = signal.day
        if step(state, signal):
            break
    return state


# ---------------------------------------------------------------------------
# Extend an open attempt
# ---------------------------------------------------------------------------

@dataclass
class OpenAttemptScan:
    attempt: AttemptRecord
    accumulation: Accumulation
    target_count: int
    time_window_days: Optional[int]
    allow_over_achievement: bool
    streak_breaking_boundary: date


def _settle(attempt: AttemptRecord, accumulation: Accumulation, target: int, is_closed: bool) -> None:
    progress = calculate_progress(accumulation.count, target)
    attempt.end_date = accumulation.end_date
    attempt.progress = progress
    attempt.is_closed = is_closed
    attempt.is_successful = progress >= 1


def _extend_step(scan: OpenAttemptScan, signal: SignalDay) -> bool:
    accumulation = scan.accumulation

    if signal.is_engaged:
        accumulation.count += 1
        accumulation.end_date = signal.day

        if accumulation.count >= scan.target_count:
            _settle(
                scan.attempt, accumulation, scan.target_count,
                is_closed=not scan.allow_over_achievement,
            )
            if not scan.allow_over_achievement:
                return True

    if (
        scan.time_window_days is not None
        and accumulation.inclusive_age(signal.day) >= scan.time_window_days
    ):
        # Only break the window once the day can no longer gain engagement.
        _settle(
            scan.attempt, accumulation, scan.target_count,
            is_closed=signal.day <= scan.streak_breaking_boundary,
        )
        return True

    return False


def scan_open_attempt(
    feed: SignalFeed,
    definition: AchievementDefinition,
    attempt: AttemptRecord,
    streak_breaking_boundary: date,
    today: date,
) -> AttemptRecord:
    """
    Re-accumulate `attempt` from its start date and update it in place.
    The count restarts at zero because the scan covers the whole window again.
    """
    min_date = attempt.start_date
    max_date = calculate_max_date(min_date, definition.end_date, today)

    scan = OpenAttemptScan(
        attempt=attempt,
        accumulation=Accumulation(start_date=min_date),
        target_count=definition.target_count,
        time_window_days=definition.time_window_days,
        allow_over_achievement=definition.allow_over_achievement,
        streak_breaking_boundary=streak_breaking_boundary,
    )
    attempt.is_closed = False
    iterate_signal_days(feed, min_date, max_date, _extend_step, scan)

    if not attempt.is_closed:
        _settle(attempt, scan.accumulation, scan.target_count, is_closed=False)

    return attempt


# ---------------------------------------------------------------------------
# Derive new attempts
# ---------------------------------------------------------------------------

@dataclass
class NewAttemptScan:
    target_count: int
    time_window_days: Optional[int]
    allow_over_achievement: bool
    streak_breaking_boundary: date
    enrollment_date: Optional[date]
    start_bound: Optional[date]
    stop_after_successes: Optional[int] = None
    candidates: list[Accumulation] = field(default_factory=list)
    attempts: list[AttemptRecord] = field(default_factory=list)

    @property
    def closed_successes(self) -> int:
        return sum(1 for a in self.attempts if a.is_successful and a.is_closed)


def _derive_step(scan: NewAttemptScan, signal: SignalDay) -> bool:
    engaged = signal.is_engaged
    window = scan.time_window_days

    # Without a window one running counter is enough.
    if engaged and (window is not None or not scan.candidates):
        scan.candidates.append(Accumulation(start_date=signal.day))

    # Oldest candidate first: when several could finish the same day the
    # earliest start date wins.
    for accumulation in list(scan.candidates):
        if accumulation not in scan.candidates:
            continue

        if engaged:
            accumulation.count += 1
            accumulation.end_date = signal.day

            if accumulation.count >= scan.target_count:
                if scan.allow_over_achievement:
                    scan.candidates[:] = [accumulation]
                else:
                    scan.attempts.append(
                        attempt_from_accumulation(accumulation, scan.target_count, is_closed=True)
                    )
                    scan.candidates.clear()
                    break

        if window is not None and accumulation.inclusive_age(signal.day) >= window:
            expired = attempt_from_accumulation(
                accumulation, scan.target_count,
                is_closed=signal.day <= scan.streak_breaking_boundary,
            )
            scan.attempts.append(expired)
            scan.candidates.remove(accumulation)

            # Later candidates may not overlap the days the expired window
            # still needed.
            next_start = calculate_min_date(
                scan.enrollment_date, expired, scan.start_bound, scan.target_count
            )
            scan.candidates[:] = [c for c in scan.candidates if c.start_date >= next_start]

    return (
        scan.stop_after_successes is not None
        and scan.closed_successes >= scan.stop_after_successes
    )


def scan_new_attempts(
    feed: SignalFeed,
    definition: AchievementDefinition,
    most_recent_success: Optional[AttemptRecord],
    streak_breaking_boundary: date,
    today: date,
    stop_after_successes: Optional[int] = None,
) -> NewAttemptScan:
    """
    Scan from just after `most_recent_success` and collect the attempts the
    signal data implies. The oldest surviving candidate becomes an open
    attempt at the end of the scan.
    """
    enrollment = feed.enrollment_date()
    scan = NewAttemptScan(
        target_count=definition.target_count,
        time_window_days=definition.time_window_days,
        allow_over_achievement=definition.allow_over_achievement,
        streak_breaking_boundary=streak_breaking_boundary,
        enrollment_date=enrollment,
        start_bound=definition.start_date,
        stop_after_successes=stop_after_successes,
    )

    min_date = calculate_min_date(
        enrollment, most_recent_success, definition.start_date, definition.target_count
    )
    if min_date is None or min_date > today:
        return scan
    if definition.end_date is not None and min_date > definition.end_date:
        return scan
    max_date = calculate_max_date(min_date, definition.end_date, today)

    iterate_signal_days(feed, min_date, max_date, _derive_step, scan)

    if scan.candidates and not (
        stop_after_successes is not None and scan.closed_successes >= stop_after_successes
    ):
        scan.attempts.append(
            attempt_from_accumulation(scan.candidates[0], scan.target_count, is_closed=False)
        )

    logger.debug(
        "Scanned %s..%s for definition %s: %d attempt(s)",
        min_date, max_date, definition.id, len(scan.attempts),
    )
    return scan
