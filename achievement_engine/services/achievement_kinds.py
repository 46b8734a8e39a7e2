"""
Per-kind attempt logic.

Each kind implements the two hooks the reconciler drives:

  extend(open_attempt)                 — update the open over-achieving
                                         success in place
  derive(most_recent_success, ...)     — the attempts that should exist
                                         after the most recent success

Kinds
-----
  accumulative          rolling-window streak over a SignalFeed
  threshold_count       stateless comparison of an external count
  milestone_completion  all-of-N milestones completed within bounds

`build_strategy` picks the variant from `definition.kind`.
"""
from __future__ import annotations

import abc
from datetime import date
from typing import Optional, Protocol

from achievement_engine.core.errors import ConfigurationError
from achievement_engine.models.achievement_type import AchievementKind
from achievement_engine.services.accumulation import (
    SignalFeed,
    scan_new_attempts,
    scan_open_attempt,
)
from achievement_engine.services.progress import calculate_progress
from achievement_engine.services.records import AchievementDefinition, AttemptRecord


class MilestoneLookup(Protocol):
    def completion_date(
        self, milestone_id: str, min_date: Optional[date], max_date: Optional[date]
    ) -> Optional[date]: ...


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class KindStrategy(abc.ABC):
    """Hooks the reconciler calls for one (definition, achiever) pass."""

    #: Kinds that only ever keep one attempt per achiever.
    single_attempt: bool = False

    def __init__(self, definition: AchievementDefinition, today: date):
        self.definition = definition
        self.today = today

    @property
    def max_successes(self) -> Optional[int]:
        if self.single_attempt:
            return 1
        return self.definition.max_successes_allowed

    def matches(self, existing: AttemptRecord, derived: AttemptRecord) -> bool:
        """Whether `existing` can be reused to hold `derived`."""
        if self.single_attempt:
            return True
        return existing.start_date == derived.start_date

    @abc.abstractmethod
    def extend(self, open_attempt: AttemptRecord) -> None:
        ...

    @abc.abstractmethod
    def derive(
        self,
        most_recent_success: Optional[AttemptRecord],
        candidates: list[AttemptRecord],
        remaining_successes: Optional[int] = None,
    ) -> list[AttemptRecord]:
        ...


# ---------------------------------------------------------------------------
# Accumulative
# ---------------------------------------------------------------------------

class AccumulativeStrategy(KindStrategy):

    def __init__(
        self,
        definition: AchievementDefinition,
        today: date,
        feed: SignalFeed,
        streak_breaking_boundary: date,
    ):
        super().__init__(definition, today)
        self.feed = feed
        self.streak_breaking_boundary = streak_breaking_boundary

    def extend(self, open_attempt: AttemptRecord) -> None:
        scan_open_attempt(
            self.feed, self.definition, open_attempt,
            self.streak_breaking_boundary, self.today,
        )

    def derive(self, most_recent_success, candidates, remaining_successes=None):
        scan = scan_new_attempts(
            self.feed, self.definition, most_recent_success,
            self.streak_breaking_boundary, self.today,
            stop_after_successes=remaining_successes,
        )
        return sorted(scan.attempts, key=lambda a: a.start_date)


# ---------------------------------------------------------------------------
# Threshold count
# ---------------------------------------------------------------------------

class ThresholdCountStrategy(KindStrategy):
    """
    progress = current_count / target_count, never decreasing.
    A success closes the attempt; with max_successes == 1 it is never
    recomputed again.
    """
    single_attempt = True

    def __init__(self, definition: AchievementDefinition, today: date, current_count: int):
        super().__init__(definition, today)
        self.current_count = current_count

    def extend(self, open_attempt: AttemptRecord) -> None:
        # Successful threshold attempts are immutable.
        return None

    def derive(self, most_recent_success, candidates, remaining_successes=None):
        current = candidates[0] if candidates else None
        progress = calculate_progress(self.current_count, self.definition.target_count)

        if current is None:
            if self.current_count <= 0:
                return []
            current = AttemptRecord(start_date=self.today, end_date=self.today)
        else:
            current = current.clone()
            if progress <= current.progress:
                return [current]

        current.progress = progress
        current.is_successful = progress >= 1
        current.is_closed = current.is_successful
        return [current]


# ---------------------------------------------------------------------------
# Milestone completion
# ---------------------------------------------------------------------------

class MilestoneCompletionStrategy(KindStrategy):
    single_attempt = True

    def __init__(self, definition: AchievementDefinition, today: date, lookup: MilestoneLookup):
        super().__init__(definition, today)
        self.lookup = lookup

    def extend(self, open_attempt: AttemptRecord) -> None:
        return None

    def derive(self, most_recent_success, candidates, remaining_successes=None):
        required = tuple(dict.fromkeys(self.definition.milestone_ids))
        completed = sorted(
            d for d in (
                self.lookup.completion_date(
                    milestone_id, self.definition.start_date, self.definition.end_date
                )
                for milestone_id in required
            )
            if d is not None
        )
        if not completed:
            return []

        progress = calculate_progress(len(completed), len(required))
        is_successful = progress >= 1
        return [AttemptRecord(
            start_date=completed[0],
            end_date=completed[-1],
            progress=progress,
            is_closed=is_successful,
            is_successful=is_successful,
        )]


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def build_strategy(
    definition: AchievementDefinition,
    *,
    today: date,
    signal_feed: Optional[SignalFeed] = None,
    streak_breaking_boundary: Optional[date] = None,
    current_count: Optional[int] = None,
    milestone_lookup: Optional[MilestoneLookup] = None,
) -> KindStrategy:
    kind = definition.kind

    if kind == AchievementKind.accumulative:
        if signal_feed is None:
            raise ConfigurationError(
                "Accumulative achievements need a signal feed.", definition_id=definition.id
            )
        return AccumulativeStrategy(
            definition, today, signal_feed,
            streak_breaking_boundary if streak_breaking_boundary is not None else today,
        )

    if kind == AchievementKind.threshold_count:
        if current_count is None:
            raise ConfigurationError(
                "Threshold achievements need a current count.", definition_id=definition.id
            )
        return ThresholdCountStrategy(definition, today, current_count)

    if kind == AchievementKind.milestone_completion:
        if milestone_lookup is None:
            raise ConfigurationError(
                "Milestone achievements need a completion lookup.", definition_id=definition.id
            )
        return MilestoneCompletionStrategy(definition, today, milestone_lookup)

    raise ConfigurationError(f"Unknown achievement kind {kind!r}.", definition_id=definition.id)
