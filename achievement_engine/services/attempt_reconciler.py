"""
Attempt reconciler — diff existing attempts against recomputed progress.

Algorithm (one achiever, one definition)
----------------------------------------
  1. Inactive definition or unmet prerequisites → nothing to do.
  2. most_recent_success = newest attempt with is_successful.
  3. If over-achievement is allowed and that success is still open, extend
     it in place. While it stays open no new attempt may start.
  4. Stop when the success count already reached the cap.
  5. Attempts that started after most_recent_success are deletion
     candidates; everything at or before it is history and never touched.
  6. The kind strategy derives the attempts that should exist now.
  7. Each derived attempt reuses a matching candidate (same start date)
     or becomes a new record. The cap is re-checked after each success.
  8. Unused candidates are deleted.

Only records whose state actually changed are returned for upsert, so a
second pass over unchanged data yields an empty diff.

Pure: no I/O, no session. The caller persists the returned diff.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from achievement_engine.core.errors import ReconciliationError
from achievement_engine.services.achievement_kinds import KindStrategy
from achievement_engine.services.records import AchievementDefinition, AttemptRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class ReconcileResult:
    to_upsert: list[AttemptRecord] = field(default_factory=list)
    to_delete: list[AttemptRecord] = field(default_factory=list)
    error: Optional[ReconciliationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_empty(self) -> bool:
        return not self.to_upsert and not self.to_delete

    @property
    def created(self) -> list[AttemptRecord]:
        return [a for a in self.to_upsert if a.id is None]

    @property
    def updated(self) -> list[AttemptRecord]:
        return [a for a in self.to_upsert if a.id is not None]

    def _mark(self, attempt: AttemptRecord) -> None:
        if not any(a is attempt for a in self.to_upsert):
            self.to_upsert.append(attempt)


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def reconcile(
    definition: AchievementDefinition,
    achiever_id: str,
    existing_attempts: Iterable[AttemptRecord],
    strategy: KindStrategy,
    unmet_prerequisites: Iterable[int] = (),
) -> ReconcileResult:
    """
    Compute the upsert / delete diff for one (definition, achiever) pair.

    `existing_attempts` are never mutated: the pass works on copies, and the
    copies are what the result refers to. Configuration and signal errors
    are returned in `ReconcileResult.error` with an empty diff.
    """
    try:
        definition.validate()
        return _reconcile(definition, achiever_id, existing_attempts, strategy, unmet_prerequisites)
    except ReconciliationError as exc:
        exc.with_context(definition_id=definition.id, achiever_id=achiever_id)
        logger.warning(
            "Reconciliation aborted for definition=%s achiever=%s: %s",
            definition.id, achiever_id, exc.message,
        )
        return ReconcileResult(error=exc)


def _reconcile(
    definition: AchievementDefinition,
    achiever_id: str,
    existing_attempts: Iterable[AttemptRecord],
    strategy: KindStrategy,
    unmet_prerequisites: Iterable[int],
) -> ReconcileResult:
    result = ReconcileResult()

    if not definition.is_active:
        return result

    unmet = set(unmet_prerequisites)
    if unmet:
        logger.debug(
            "Skipping definition=%s achiever=%s: unmet prerequisites %s",
            definition.id, achiever_id, sorted(unmet),
        )
        return result

    attempts = sorted(
        (a.clone() for a in existing_attempts),
        key=lambda a: a.start_date,
        reverse=True,
    )
    most_recent_success = next((a for a in attempts if a.is_successful), None)
    max_successes = strategy.max_successes

    if (
        definition.allow_over_achievement
        and most_recent_success is not None
        and not most_recent_success.is_closed
    ):
        before = most_recent_success.clone()
        strategy.extend(most_recent_success)
        if not most_recent_success.same_state(before):
            result._mark(most_recent_success)
        if not most_recent_success.is_closed:
            return result

    success_count = sum(1 for a in attempts if a.is_successful)
    if max_successes is not None and success_count >= max_successes:
        return result

    if most_recent_success is None:
        candidates = list(attempts)
    else:
        candidates = [a for a in attempts if a.start_date > most_recent_success.start_date]

    remaining = None if max_successes is None else max_successes - success_count
    derived = strategy.derive(most_recent_success, list(candidates), remaining)

    for new_attempt in sorted(derived, key=lambda a: a.start_date):
        existing = next((c for c in candidates if strategy.matches(c, new_attempt)), None)

        if existing is not None:
            candidates.remove(existing)
            if not existing.same_state(new_attempt):
                existing.copy_state_from(new_attempt)
                result._mark(existing)
        else:
            new_attempt.id = None
            new_attempt.achiever_id = achiever_id
            new_attempt.definition_id = definition.id
            result._mark(new_attempt)

        if new_attempt.is_successful:
            success_count += 1
            if max_successes is not None and success_count >= max_successes:
                break

    result.to_delete = candidates

    if not result.is_empty:
        logger.info(
            "Reconciled definition=%s achiever=%s: %d created, %d updated, %d deleted",
            definition.id, achiever_id,
            len(result.created), len(result.updated), len(result.to_delete),
        )
    return result
