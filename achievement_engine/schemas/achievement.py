"""
Achievement type / attempt schemas.

Definitions:  POST /achievement-types           → AchievementTypeCreate → AchievementTypeOut
Reconcile:    POST /achievement-types/{id}/reconcile        → ReconcileRequest → ReconcileResponse
Batch:        POST /achievement-types/{id}/reconcile/batch  → BatchReconcileRequest → BatchReconcileResponse
"""
from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from achievement_engine.core.config import settings
from achievement_engine.models.achievement_type import AchievementKind


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

class AchievementTypeCreate(BaseModel):
    """A new achievement definition."""
    model_config = ConfigDict(use_enum_values=True)

    name: Annotated[str, Field(min_length=1, max_length=128, examples=["Ten-day streak"])]
    kind: AchievementKind = Field(description="Which rule family computes progress.")
    target_count: int = Field(ge=1, description="Count needed for a success.")
    time_window_days: Optional[int] = Field(
        default=None, ge=1,
        description="Accumulative only: size of the sliding window in days.",
    )
    start_date: Optional[date] = Field(default=None, description="No progress before this date.")
    end_date: Optional[date] = Field(default=None, description="No progress after this date.")
    allow_over_achievement: bool = Field(
        default=False,
        description="Keep counting into a successful attempt until the window closes.",
    )
    max_successes_allowed: Optional[int] = Field(
        default=None, ge=1, description="Cap on successful attempts. Unlimited when omitted.",
    )
    is_active: bool = True
    source_key: Optional[str] = Field(
        default=None, max_length=64,
        description="Accumulative only: activity stream the rule counts.",
        examples=["daily-journal"],
    )
    milestone_ids: list[str] = Field(
        default_factory=list,
        description="Milestone completion only: milestones that must all be completed.",
    )
    prerequisite_ids: list[int] = Field(
        default_factory=list,
        description="Achievement types the achiever must already hold.",
    )

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_kind_fields(self) -> "AchievementTypeCreate":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        kind = AchievementKind(self.kind)
        if kind == AchievementKind.accumulative and not self.source_key:
            raise ValueError("accumulative achievements need a source_key")
        if kind == AchievementKind.milestone_completion and not self.milestone_ids:
            raise ValueError("milestone_completion achievements need at least one milestone")
        return self


class AchievementTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    kind: str
    target_count: int
    time_window_days: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    allow_over_achievement: bool
    max_successes_allowed: Optional[int] = None
    is_active: bool
    source_key: Optional[str] = None
    milestone_ids: list[str] = Field(default_factory=list)
    prerequisite_ids: list[int] = Field(default_factory=list)
    created_at: datetime

    @field_validator("kind", mode="before")
    @classmethod
    def kind_value(cls, v):
        return v.value if hasattr(v, "value") else v

    @field_validator("milestone_ids", "prerequisite_ids", mode="before")
    @classmethod
    def decode_json_list(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v if v is not None else []


class AchievementTypeListResponse(BaseModel):
    total: int
    items: list[AchievementTypeOut]


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------

class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    achievement_type_id: int
    achiever_id: str
    start_date: date
    end_date: Optional[date] = None
    progress: Decimal = Field(description="Fraction of the target reached, 0 to 1.")
    is_closed: bool
    is_successful: bool


class AttemptListResponse(BaseModel):
    total: int
    items: list[AttemptOut]


# ---------------------------------------------------------------------------
# Reconcile
# ---------------------------------------------------------------------------

class ReconcileRequest(BaseModel):
    achiever_id: Annotated[str, Field(min_length=1, max_length=64, examples=["user-42"])]
    streak_breaking_boundary: Optional[date] = Field(
        default=None,
        description="Windows ending on or before this date may close. Defaults to "
                    "today minus the configured grace days.",
    )
    today: Optional[date] = Field(
        default=None, description="Evaluation date. Defaults to today (UTC).",
    )


class ReconcileResponse(BaseModel):
    achievement_type_id: int
    achiever_id: str
    created: list[AttemptOut]
    updated: list[AttemptOut]
    deleted_ids: list[int]


class BatchReconcileRequest(BaseModel):
    """Reconcile several achievers against one achievement type.

    - Achievers are processed in order.
    - Each achiever is independent: a failure on one does not cancel the others.
    """
    achiever_ids: Annotated[list[str], Field(
        description=f"Achievers to reconcile (1–{settings.RECONCILE_BATCH_MAX} items).",
    )]
    streak_breaking_boundary: Optional[date] = None
    today: Optional[date] = None


class RebuildRequest(BaseModel):
    streak_breaking_boundary: Optional[date] = None
    today: Optional[date] = None


class BatchItemResult(BaseModel):
    """Outcome for one (achievement type, achiever) pair."""
    index: int = Field(description="Zero-based position in the processed list.")
    achievement_type_id: int
    achiever_id: str
    ok: bool
    result: Optional[ReconcileResponse] = Field(default=None, description="Populated when ok=True.")
    error_code: Optional[str] = None
    error: Optional[str] = Field(default=None, description="Error message when ok=False.")


class BatchReconcileResponse(BaseModel):
    total: int = Field(description="Pairs processed.")
    succeeded: int
    failed: int
    items: list[BatchItemResult] = Field(description="Per-pair results in processing order.")
