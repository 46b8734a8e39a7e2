"""
Tests for the attempt reconciler.

Each scenario runs `reconcile` against an in-memory attempt store so that
repeated passes can be checked the same way the service applies them.

Covered:
  - fresh derivation, update, deletion
  - a second pass over unchanged data yields an empty diff
  - closed successful attempts are never touched
  - max_successes_allowed caps successes
  - open over-achieving successes are extended in place
  - inactive definitions and unmet prerequisites
  - configuration / signal errors are returned, not raised
"""
from __future__ import annotations

import itertools
from decimal import Decimal

from conftest import FakeFeed, FakeMilestones, d
from achievement_engine.core.errors import ConfigurationError, DataError
from achievement_engine.models.achievement_type import AchievementKind
from achievement_engine.services.achievement_kinds import (
    AccumulativeStrategy,
    MilestoneCompletionStrategy,
    ThresholdCountStrategy,
)
from achievement_engine.services.attempt_reconciler import reconcile
from achievement_engine.services.records import AchievementDefinition, AttemptRecord, SignalDay

ACHIEVER = "achiever-1"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _Store:
    """Applies reconcile results the way the attempt store does, with ids."""

    def __init__(self, attempts=()):
        self._ids = itertools.count(1)
        self.rows: dict[int, AttemptRecord] = {}
        for attempt in attempts:
            self._insert(attempt.clone())

    def _insert(self, attempt):
        if attempt.id is None:
            attempt.id = next(self._ids)
        self.rows[attempt.id] = attempt

    def attempts(self) -> list[AttemptRecord]:
        return [a.clone() for a in self.rows.values()]

    def apply(self, result):
        for attempt in result.to_delete:
            del self.rows[attempt.id]
        for attempt in result.to_upsert:
            self._insert(attempt.clone())

    def spans(self):
        return sorted(
            (a.start_date, a.end_date, a.is_closed, a.is_successful) for a in self.rows.values()
        )


def _accumulative(**overrides) -> AchievementDefinition:
    values = dict(id=10, kind=AchievementKind.accumulative, target_count=3, source_key="journal")
    values.update(overrides)
    return AchievementDefinition(**values)


def _strategy(definition, engaged, today, boundary=None):
    return AccumulativeStrategy(
        definition, today, FakeFeed(engaged), boundary if boundary is not None else today
    )


def _success(start, end, closed=True, id=None):
    return AttemptRecord(
        start_date=start, end_date=end, progress=Decimal("1"),
        is_closed=closed, is_successful=True, id=id,
    )


# ---------------------------------------------------------------------------
# Accumulative
# ---------------------------------------------------------------------------

class TestAccumulativeReconcile:
    def test_fresh_derivation(self):
        definition = _accumulative(time_window_days=5)
        strategy = _strategy(definition, [d(1), d(2), d(6)], today=d(8), boundary=d(7))
        result = reconcile(definition, ACHIEVER, [], strategy)

        assert result.ok
        assert len(result.created) == 3
        assert result.to_delete == []
        for attempt in result.created:
            assert attempt.achiever_id == ACHIEVER
            assert attempt.definition_id == definition.id

    def test_second_pass_is_empty(self):
        definition = _accumulative(time_window_days=5)
        store = _Store()
        store.apply(reconcile(
            definition, ACHIEVER, store.attempts(),
            _strategy(definition, [d(1), d(2), d(6)], today=d(8), boundary=d(7)),
        ))
        before = store.spans()

        again = reconcile(
            definition, ACHIEVER, store.attempts(),
            _strategy(definition, [d(1), d(2), d(6)], today=d(8), boundary=d(7)),
        )
        assert again.is_empty
        assert store.spans() == before

    def test_open_attempt_is_updated_in_place(self):
        definition = _accumulative(target_count=3)
        store = _Store()
        store.apply(reconcile(
            definition, ACHIEVER, store.attempts(), _strategy(definition, [d(1)], today=d(1)),
        ))
        [first_id] = store.rows

        result = reconcile(
            definition, ACHIEVER, store.attempts(),
            _strategy(definition, [d(1), d(2)], today=d(2)),
        )
        assert result.created == []
        assert [a.id for a in result.updated] == [first_id]
        assert result.updated[0].progress == Decimal("0.666666667")

    def test_stale_attempt_is_deleted(self):
        definition = _accumulative(time_window_days=5)
        stale = AttemptRecord(
            start_date=d(4), end_date=d(4), progress=Decimal("0.333333333"), id=1,
        )
        result = reconcile(
            definition, ACHIEVER, [stale], _strategy(definition, [], today=d(8)),
        )
        assert result.to_upsert == []
        assert [a.id for a in result.to_delete] == [1]

    def test_existing_attempts_are_not_mutated(self):
        definition = _accumulative(target_count=3)
        existing = AttemptRecord(start_date=d(1), end_date=d(1), progress=Decimal("0.333333333"), id=1)
        result = reconcile(
            definition, ACHIEVER, [existing],
            _strategy(definition, [d(1), d(2), d(3)], today=d(3)),
        )
        assert result.updated[0] is not existing
        assert existing.progress == Decimal("0.333333333")
        assert existing.is_closed is False

    def test_closed_success_is_never_touched(self):
        definition = _accumulative(target_count=2)
        anchor = _success(d(1), d(2), id=1)
        # Signal history changed: the anchor's days are no longer engaged.
        result = reconcile(
            definition, ACHIEVER, [anchor], _strategy(definition, [d(5)], today=d(6)),
        )
        assert all(a.id != 1 for a in result.to_upsert)
        assert all(a.id != 1 for a in result.to_delete)
        assert [(a.start_date, a.end_date) for a in result.created] == [(d(5), d(5))]

    def test_attempts_before_success_are_history(self):
        definition = _accumulative(target_count=2, time_window_days=3)
        failed = AttemptRecord(
            start_date=d(1), end_date=d(1), progress=Decimal("0.5"), is_closed=True, id=1,
        )
        anchor = _success(d(4), d(5), id=2)
        result = reconcile(
            definition, ACHIEVER, [failed, anchor], _strategy(definition, [], today=d(8)),
        )
        assert result.is_empty


class TestMaxSuccesses:
    def test_cap_already_reached(self):
        definition = _accumulative(target_count=2, max_successes_allowed=1)
        result = reconcile(
            definition, ACHIEVER, [_success(d(1), d(2), id=1)],
            _strategy(definition, [d(i) for i in range(1, 9)], today=d(8)),
        )
        assert result.is_empty

    def test_cap_reached_during_pass(self):
        definition = _accumulative(target_count=2, max_successes_allowed=2)
        result = reconcile(
            definition, ACHIEVER, [],
            _strategy(definition, [d(i) for i in range(1, 9)], today=d(8)),
        )
        assert [(a.start_date, a.end_date) for a in result.created] == [
            (d(1), d(2)), (d(3), d(4)),
        ]
        assert all(a.is_successful for a in result.created)

    def test_cap_counts_existing_successes(self):
        definition = _accumulative(target_count=2, max_successes_allowed=2)
        result = reconcile(
            definition, ACHIEVER, [_success(d(1), d(2), id=1)],
            _strategy(definition, [d(i) for i in range(1, 9)], today=d(8)),
        )
        assert [(a.start_date, a.end_date) for a in result.created] == [(d(3), d(4))]


class TestOverAchievement:
    def test_open_success_is_extended(self):
        definition = _accumulative(target_count=2, allow_over_achievement=True)
        open_success = _success(d(1), d(2), closed=False, id=1)
        result = reconcile(
            definition, ACHIEVER, [open_success],
            _strategy(definition, [d(i) for i in range(1, 6)], today=d(5)),
        )
        assert result.created == []
        [extended] = result.updated
        assert extended.id == 1
        assert extended.end_date == d(5)
        assert extended.is_closed is False
        assert extended.progress == Decimal("1")

    def test_extension_is_idempotent(self):
        definition = _accumulative(target_count=2, allow_over_achievement=True)
        store = _Store([_success(d(1), d(2), closed=False)])
        engaged = [d(i) for i in range(1, 6)]
        store.apply(reconcile(
            definition, ACHIEVER, store.attempts(), _strategy(definition, engaged, today=d(5)),
        ))
        again = reconcile(
            definition, ACHIEVER, store.attempts(), _strategy(definition, engaged, today=d(5)),
        )
        assert again.is_empty

    def test_closed_extension_allows_new_attempts(self):
        definition = _accumulative(target_count=2, time_window_days=3, allow_over_achievement=True)
        open_success = _success(d(1), d(2), closed=False, id=1)
        result = reconcile(
            definition, ACHIEVER, [open_success],
            _strategy(definition, [d(i) for i in range(1, 7)], today=d(6), boundary=d(5)),
        )
        [extended] = result.updated
        assert (extended.end_date, extended.is_closed) == (d(3), True)
        [created] = result.created
        assert created.start_date == d(4)
        assert created.is_successful is True


class TestSkips:
    def test_inactive_definition(self):
        definition = _accumulative(is_active=False)
        result = reconcile(
            definition, ACHIEVER, [], _strategy(definition, [d(1), d(2), d(3)], today=d(3)),
        )
        assert result.ok
        assert result.is_empty

    def test_unmet_prerequisites(self):
        definition = _accumulative(prerequisite_ids=frozenset({99}))
        result = reconcile(
            definition, ACHIEVER, [], _strategy(definition, [d(1), d(2), d(3)], today=d(3)),
            unmet_prerequisites={99},
        )
        assert result.ok
        assert result.is_empty


class TestErrorsAsValues:
    def test_invalid_configuration(self):
        definition = _accumulative(target_count=0)
        result = reconcile(definition, ACHIEVER, [], _strategy(definition, [d(1)], today=d(1)))
        assert isinstance(result.error, ConfigurationError)
        assert result.error.details == {"definition_id": 10, "achiever_id": ACHIEVER}
        assert result.is_empty

    def test_broken_feed(self):
        class BrokenFeed(FakeFeed):
            def iter_days(self, start, end):
                yield SignalDay(day=end)
                yield SignalDay(day=start)

        definition = _accumulative()
        strategy = AccumulativeStrategy(definition, d(5), BrokenFeed([]), d(5))
        existing = AttemptRecord(start_date=d(2), end_date=d(2), progress=Decimal("0.333333333"), id=4)
        result = reconcile(definition, ACHIEVER, [existing], strategy)
        assert isinstance(result.error, DataError)
        assert result.error.achiever_id == ACHIEVER
        assert result.to_upsert == []
        assert result.to_delete == []


# ---------------------------------------------------------------------------
# Single-attempt kinds
# ---------------------------------------------------------------------------

class TestThresholdReconcile:
    DEFINITION = AchievementDefinition(id=20, kind=AchievementKind.threshold_count, target_count=4)

    def _pass(self, store, count, today):
        strategy = ThresholdCountStrategy(self.DEFINITION, today, current_count=count)
        result = reconcile(self.DEFINITION, ACHIEVER, store.attempts(), strategy)
        store.apply(result)
        return result

    def test_single_attempt_progresses_then_freezes(self):
        store = _Store()
        assert len(self._pass(store, 1, d(1)).created) == 1

        result = self._pass(store, 3, d(2))
        assert result.created == []
        assert len(store.rows) == 1

        self._pass(store, 4, d(3))
        [attempt] = store.rows.values()
        assert attempt.is_successful and attempt.is_closed
        assert attempt.start_date == d(1)

        assert self._pass(store, 0, d(4)).is_empty
        assert len(store.rows) == 1

    def test_lower_count_keeps_progress(self):
        store = _Store()
        self._pass(store, 3, d(1))
        assert self._pass(store, 1, d(2)).is_empty
        [attempt] = store.rows.values()
        assert attempt.progress == Decimal("0.75")


class TestMilestoneReconcile:
    DEFINITION = AchievementDefinition(
        id=30, kind=AchievementKind.milestone_completion, target_count=1,
        milestone_ids=("intro", "final"),
    )

    def test_partial_then_complete(self):
        store = _Store()
        strategy = MilestoneCompletionStrategy(self.DEFINITION, d(9), FakeMilestones({"intro": d(2)}))
        store.apply(reconcile(self.DEFINITION, ACHIEVER, store.attempts(), strategy))
        assert store.spans() == [(d(2), d(2), False, False)]

        strategy = MilestoneCompletionStrategy(
            self.DEFINITION, d(9), FakeMilestones({"intro": d(2), "final": d(5)})
        )
        result = reconcile(self.DEFINITION, ACHIEVER, store.attempts(), strategy)
        assert result.created == []
        store.apply(result)
        assert store.spans() == [(d(2), d(5), True, True)]

    def test_open_attempt_removed_when_completions_disappear(self):
        existing = AttemptRecord(start_date=d(2), end_date=d(2), progress=Decimal("0.5"), id=7)
        strategy = MilestoneCompletionStrategy(self.DEFINITION, d(9), FakeMilestones({}))
        result = reconcile(self.DEFINITION, ACHIEVER, [existing], strategy)
        assert [a.id for a in result.to_delete] == [7]

    def test_complete_attempt_is_immutable(self):
        done = AttemptRecord(
            start_date=d(2), end_date=d(5), progress=Decimal("1"),
            is_closed=True, is_successful=True, id=3,
        )
        strategy = MilestoneCompletionStrategy(self.DEFINITION, d(9), FakeMilestones({}))
        assert reconcile(self.DEFINITION, ACHIEVER, [done], strategy).is_empty
