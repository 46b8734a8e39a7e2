"""
Plain data types shared by the reconciliation engine.

No ORM, no Pydantic: the engine only ever sees these dataclasses. The
service layer converts `AchievementType` / `AchievementAttempt` rows into
them before a pass and converts the resulting diff back afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from achievement_engine.core.errors import ConfigurationError
from achievement_engine.models.achievement_type import AchievementKind


# ---------------------------------------------------------------------------
# Configuration snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AchievementDefinition:
    id: int
    kind: AchievementKind
    target_count: int
    time_window_days: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    allow_over_achievement: bool = False
    max_successes_allowed: Optional[int] = None
    prerequisite_ids: frozenset[int] = frozenset()
    is_active: bool = True
    source_key: Optional[str] = None
    milestone_ids: tuple[str, ...] = ()

    def validate(self) -> None:
        """Raise ConfigurationError if the rule cannot be evaluated."""
        if self.target_count is None or self.target_count <= 0:
            raise ConfigurationError(
                "target_count must be at least 1.", definition_id=self.id
            )
        if self.time_window_days is not None and self.time_window_days <= 0:
            raise ConfigurationError(
                "time_window_days must be at least 1 when set.", definition_id=self.id
            )
        if self.max_successes_allowed is not None and self.max_successes_allowed <= 0:
            raise ConfigurationError(
                "max_successes_allowed must be at least 1 when set.", definition_id=self.id
            )
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ConfigurationError(
                "start_date must not be after end_date.", definition_id=self.id
            )
        if self.kind == AchievementKind.milestone_completion and not self.milestone_ids:
            raise ConfigurationError(
                "A milestone completion achievement needs at least one milestone.",
                definition_id=self.id,
            )


# ---------------------------------------------------------------------------
# Attempt
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class AttemptRecord:
    """
    One progress window toward an achievement.

    Compared by identity (eq=False) so records can live in sets while being
    mutated; use `same_state` to compare contents.
    """
    start_date: date
    end_date: Optional[date] = None
    progress: Decimal = Decimal("0")
    is_closed: bool = False
    is_successful: bool = False
    id: Optional[int] = None
    definition_id: Optional[int] = None
    achiever_id: Optional[str] = None

    @property
    def is_anchor(self) -> bool:
        """Successful and closed: must never be touched again."""
        return self.is_successful and self.is_closed

    def same_state(self, other: "AttemptRecord") -> bool:
        return (
            self.start_date == other.start_date
            and self.end_date == other.end_date
            and self.progress == other.progress
            and self.is_closed == other.is_closed
            and self.is_successful == other.is_successful
        )

    def copy_state_from(self, other: "AttemptRecord") -> None:
        self.start_date = other.start_date
        self.end_date = other.end_date
        self.progress = other.progress
        self.is_closed = other.is_closed
        self.is_successful = other.is_successful

    def clone(self) -> "AttemptRecord":
        return AttemptRecord(
            start_date=self.start_date,
            end_date=self.end_date,
            progress=self.progress,
            is_closed=self.is_closed,
            is_successful=self.is_successful,
            id=self.id,
            definition_id=self.definition_id,
            achiever_id=self.achiever_id,
        )


# ---------------------------------------------------------------------------
# Transient scan types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SignalDay:
    day: date
    has_occurrence: bool = False
    has_engagement: bool = False
    has_exclusion: bool = False

    @property
    def is_engaged(self) -> bool:
        return self.has_occurrence and self.has_engagement


@dataclass(eq=False)
class Accumulation:
    """A candidate window under construction during a scan."""
    start_date: date
    end_date: Optional[date] = None
    count: int = 0

    def __post_init__(self) -> None:
        if self.end_date is None:
            self.end_date = self.start_date

    def inclusive_age(self, day: date) -> int:
        return (day - self.start_date).days + 1
