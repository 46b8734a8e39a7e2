"""
Signal schemas: the source data achievements are computed from.

PUT  /signals/activity/{source_key}/{achiever_id}  → ActivityUpload
POST /signals/milestones                           → MilestoneCompletionIn
POST /signals/memberships                          → MembershipIn
"""
from __future__ import annotations

from datetime import date
from typing import Annotated, Optional

from pydantic import BaseModel, Field, field_validator

from achievement_engine.schemas.achievement import BatchItemResult


class ActivityDayIn(BaseModel):
    day: date
    has_occurrence: bool = Field(default=True, description="The activity was scheduled that day.")
    has_engagement: bool = Field(default=False, description="The achiever engaged with it.")
    has_exclusion: bool = Field(
        default=False,
        description="The day was excused. Stored with the signal; it never counts as engagement.",
    )


class ActivityUpload(BaseModel):
    """Enrollment and day-by-day flags for one activity stream.

    Days are upserted by date; days not listed are left as they are.
    """
    enrolled_on: Optional[date] = None
    days: list[ActivityDayIn] = Field(default_factory=list)

    @field_validator("days")
    @classmethod
    def check_unique_days(cls, v: list[ActivityDayIn]) -> list[ActivityDayIn]:
        seen = set()
        for item in v:
            if item.day in seen:
                raise ValueError(f"day {item.day.isoformat()} listed more than once")
            seen.add(item.day)
        return v


class MilestoneCompletionIn(BaseModel):
    achiever_id: Annotated[str, Field(min_length=1, max_length=64)]
    milestone_id: Annotated[str, Field(min_length=1, max_length=64)]
    completed_on: date


class MembershipIn(BaseModel):
    achiever_id: Annotated[str, Field(min_length=1, max_length=64)]
    member_id: Annotated[str, Field(min_length=1, max_length=64)]
    is_archived: bool = False


class SignalResponse(BaseModel):
    """What was recorded, and the reconciliation it triggered."""
    recorded: int = Field(description="Rows inserted or updated.")
    reconciled: list[BatchItemResult] = Field(
        description="One entry per active achievement type fed by this signal.",
    )
