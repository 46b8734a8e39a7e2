"""
Achievement types router.

POST /achievement-types                          — create a definition
GET  /achievement-types                          — list definitions
GET  /achievement-types/{id}                     — fetch one definition
GET  /achievement-types/{id}/attempts            — list attempts
POST /achievement-types/{id}/reconcile           — reconcile one achiever
POST /achievement-types/{id}/reconcile/batch     — reconcile many achievers
POST /achievement-types/{id}/rebuild             — reconcile every known achiever
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from achievement_engine.core.config import settings
from achievement_engine.core.errors import BatchTooLargeError, EmptyBatchError
from achievement_engine.db.base import get_db
from achievement_engine.models.achievement_type import AchievementKind
from achievement_engine.schemas.common import ErrorResponse
from achievement_engine.schemas.achievement import (
    AchievementTypeCreate,
    AchievementTypeListResponse,
    AchievementTypeOut,
    AttemptListResponse,
    AttemptOut,
    BatchItemResult,
    BatchReconcileRequest,
    BatchReconcileResponse,
    RebuildRequest,
    ReconcileRequest,
    ReconcileResponse,
)
from achievement_engine.services import achievement_service
from achievement_engine.services.achievement_service import ReconcileSummary

router = APIRouter(prefix="/achievement-types", tags=["achievements"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def summary_to_response(summary: ReconcileSummary) -> ReconcileResponse:
    return ReconcileResponse(
        achievement_type_id=summary.definition_id,
        achiever_id=summary.achiever_id,
        created=[AttemptOut.model_validate(a) for a in summary.created],
        updated=[AttemptOut.model_validate(a) for a in summary.updated],
        deleted_ids=summary.deleted_ids,
    )


def to_batch_items(raw_results: list[dict]) -> list[BatchItemResult]:
    return [
        BatchItemResult(
            index=r["index"],
            achievement_type_id=r["definition_id"],
            achiever_id=r["achiever_id"],
            ok=r["ok"],
            result=summary_to_response(r["summary"]) if r["ok"] else None,
            error_code=r["error"].code if r["error"] is not None else None,
            error=r["error"].message if r["error"] is not None else None,
        )
        for r in raw_results
    ]


def _batch_response(raw_results: list[dict]) -> BatchReconcileResponse:
    items = to_batch_items(raw_results)
    succeeded = sum(1 for r in items if r.ok)
    return BatchReconcileResponse(
        total=len(items),
        succeeded=succeeded,
        failed=len(items) - succeeded,
        items=items,
    )


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=AchievementTypeOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an achievement type",
    responses={422: {"description": "Invalid or inconsistent configuration."}},
)
def create_achievement_type(payload: AchievementTypeCreate, db: Session = Depends(get_db)):
    """
    Register a new achievement definition.

    Kind-specific fields are checked up front: accumulative types need a
    `source_key`, milestone completion types need `milestone_ids`.
    """
    return achievement_service.create_definition(db, payload.model_dump())


@router.get(
    "",
    response_model=AchievementTypeListResponse,
    summary="List achievement types",
)
def list_achievement_types(
    kind: Optional[AchievementKind] = Query(default=None),
    active_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    total, items = achievement_service.list_definitions(
        db, kind=kind.value if kind else None, active_only=active_only, limit=limit, offset=offset
    )
    return AchievementTypeListResponse(
        total=total, items=[AchievementTypeOut.model_validate(i) for i in items]
    )


@router.get(
    "/{type_id}",
    response_model=AchievementTypeOut,
    summary="Get an achievement type",
    responses={404: {"model": ErrorResponse, "description": "Achievement type not found."}},
)
def get_achievement_type(type_id: int, db: Session = Depends(get_db)):
    return achievement_service.get_definition(db, type_id)


@router.get(
    "/{type_id}/attempts",
    response_model=AttemptListResponse,
    summary="List attempts for an achievement type",
    responses={404: {"model": ErrorResponse, "description": "Achievement type not found."}},
)
def list_attempts(
    type_id: int,
    achiever_id: Optional[str] = Query(default=None, max_length=64),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    """Attempts ordered by start date, newest first."""
    total, items = achievement_service.list_attempts(
        db, type_id, achiever_id=achiever_id, limit=limit, offset=offset
    )
    return AttemptListResponse(total=total, items=[AttemptOut.model_validate(i) for i in items])


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

@router.post(
    "/{type_id}/reconcile",
    response_model=ReconcileResponse,
    summary="Reconcile one achiever",
    responses={
        404: {"model": ErrorResponse, "description": "Achievement type not found."},
        422: {
            "model": ErrorResponse,
            "description": "The achievement type's configuration cannot be evaluated.",
        },
        502: {"model": ErrorResponse, "description": "Signal data for the achiever could not be read."},
    },
)
def reconcile_one(type_id: int, payload: ReconcileRequest, db: Session = Depends(get_db)):
    """
    Recompute the achiever's attempts and persist the difference.

    The response lists only attempts that changed. Running it again over
    unchanged data returns empty lists.
    """
    summary = achievement_service.reconcile_achiever(
        db,
        type_id,
        payload.achiever_id,
        streak_breaking_boundary=payload.streak_breaking_boundary,
        today=payload.today,
    )
    return summary_to_response(summary)


@router.post(
    "/{type_id}/reconcile/batch",
    response_model=BatchReconcileResponse,
    status_code=status.HTTP_207_MULTI_STATUS,
    summary="Reconcile a batch of achievers",
    responses={
        207: {"description": "Multi-status: check each item's `ok` field."},
        404: {"model": ErrorResponse, "description": "Achievement type not found."},
        422: {"description": "Batch-level validation error (empty list, too many items)."},
    },
)
def reconcile_batch(type_id: int, payload: BatchReconcileRequest, db: Session = Depends(get_db)):
    """
    Reconcile up to `RECONCILE_BATCH_MAX` achievers.

    Each achiever runs in its own savepoint: a configuration or data error
    for one achiever leaves the others' attempts intact.
    """
    if not payload.achiever_ids:
        raise EmptyBatchError()
    if len(payload.achiever_ids) > settings.RECONCILE_BATCH_MAX:
        raise BatchTooLargeError(
            max_items=settings.RECONCILE_BATCH_MAX, received=len(payload.achiever_ids)
        )

    raw_results = achievement_service.reconcile_batch(
        db,
        type_id,
        payload.achiever_ids,
        streak_breaking_boundary=payload.streak_breaking_boundary,
        today=payload.today,
    )
    return _batch_response(raw_results)


@router.post(
    "/{type_id}/rebuild",
    response_model=BatchReconcileResponse,
    status_code=status.HTTP_207_MULTI_STATUS,
    summary="Reconcile every achiever with data for this type",
    responses={404: {"model": ErrorResponse, "description": "Achievement type not found."}},
)
def rebuild(
    type_id: int,
    payload: Optional[RebuildRequest] = None,
    db: Session = Depends(get_db),
):
    """
    Reconcile every achiever that has source data feeding this type or
    already holds attempts for it. Use after changing signal history in bulk.
    """
    payload = payload or RebuildRequest()
    raw_results = achievement_service.rebuild_definition(
        db,
        type_id,
        streak_breaking_boundary=payload.streak_breaking_boundary,
        today=payload.today,
    )
    return _batch_response(raw_results)
