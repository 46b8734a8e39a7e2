"""
Integration tests for API endpoints using the SQLite test DB.

Dates are in 2032 and passed explicitly so results do not depend on the
day the suite runs. Achiever ids are unique per test.
"""
import uuid
from decimal import Decimal

import pytest

from achievement_engine.core.config import settings

BASE_URL = "/achievement-types"


def _uid(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def _create(client, **overrides) -> dict:
    payload = {
        "name": "Journal streak",
        "kind": "accumulative",
        "target_count": 3,
        "time_window_days": 5,
        "source_key": _uid("journal"),
    }
    payload.update(overrides)
    r = client.post(BASE_URL, json=payload)
    assert r.status_code == 201, r.text
    return r.json()


def _put_activity(client, source_key, achiever_id, days, today="2032-01-08"):
    return client.put(
        f"/signals/activity/{source_key}/{achiever_id}",
        params={"today": today},
        json={
            "enrolled_on": "2032-01-01",
            "days": [{"day": day, "has_engagement": True} for day in days],
        },
    )


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


class TestAchievementTypes:
    def test_create_and_fetch(self, client):
        created = _create(client, milestone_ids=[], prerequisite_ids=[])
        assert created["id"] > 0
        assert created["kind"] == "accumulative"
        assert created["is_active"] is True

        r = client.get(f"{BASE_URL}/{created['id']}")
        assert r.status_code == 200
        assert r.json()["source_key"] == created["source_key"]

    def test_milestone_ids_returned_as_list(self, client):
        created = _create(
            client, kind="milestone_completion", target_count=1, source_key=None,
            time_window_days=None, milestone_ids=["m-1", "m-2"],
        )
        assert created["milestone_ids"] == ["m-1", "m-2"]

    def test_list_filters_by_kind(self, client):
        _create(client, kind="threshold_count", source_key=None, time_window_days=None)
        r = client.get(BASE_URL, params={"kind": "threshold_count", "limit": 200})
        assert r.status_code == 200
        body = r.json()
        assert body["total"] >= 1
        assert all(item["kind"] == "threshold_count" for item in body["items"])

    def test_unknown_type_returns_404(self, client):
        r = client.get(f"{BASE_URL}/987654")
        assert r.status_code == 404
        body = r.json()
        assert body["code"] == "ACHIEVEMENT_TYPE_NOT_FOUND"
        assert body["details"]["definition_id"] == 987654

    @pytest.mark.parametrize("overrides", [
        {"target_count": 0},
        {"time_window_days": 0},
        {"source_key": None},
        {"kind": "milestone_completion", "source_key": None},
        {"start_date": "2032-02-01", "end_date": "2032-01-01"},
        {"kind": "sprint"},
    ])
    def test_invalid_definition_rejected(self, client, overrides):
        payload = {
            "name": "Bad", "kind": "accumulative", "target_count": 3, "source_key": "s",
        }
        payload.update(overrides)
        r = client.post(BASE_URL, json=payload)
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"


class TestReconcile:
    def test_reconcile_then_list_attempts(self, client):
        definition = _create(client)
        achiever = _uid("user")
        source = definition["source_key"]
        _put_activity(client, source, achiever, ["2032-01-01", "2032-01-02", "2032-01-06"])

        r = client.post(
            f"{BASE_URL}/{definition['id']}/reconcile",
            json={"achiever_id": achiever, "today": "2032-01-08",
                  "streak_breaking_boundary": "2032-01-07"},
        )
        assert r.status_code == 200
        # The activity upload already reconciled this achiever.
        assert r.json()["created"] == []

        r = client.get(
            f"{BASE_URL}/{definition['id']}/attempts", params={"achiever_id": achiever}
        )
        body = r.json()
        assert body["total"] == 3
        assert [a["start_date"] for a in body["items"]] == [
            "2032-01-06", "2032-01-02", "2032-01-01",
        ]
        assert Decimal(body["items"][2]["progress"]) == Decimal("0.666666667")

    def test_reconcile_unknown_type(self, client):
        r = client.post(f"{BASE_URL}/987654/reconcile", json={"achiever_id": "x"})
        assert r.status_code == 404

    def test_reconcile_requires_achiever(self, client):
        definition = _create(client)
        r = client.post(f"{BASE_URL}/{definition['id']}/reconcile", json={})
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"


class TestBatchReconcile:
    def test_batch_returns_207(self, client):
        definition = _create(client, kind="threshold_count", source_key=None,
                             time_window_days=None, target_count=2)
        group = _uid("group")
        client.post("/signals/memberships", json={"achiever_id": group, "member_id": "a"})

        r = client.post(
            f"{BASE_URL}/{definition['id']}/reconcile/batch",
            json={"achiever_ids": [group, _uid("group")], "today": "2032-01-01"},
        )
        assert r.status_code == 207
        body = r.json()
        assert body["total"] == 2
        assert body["succeeded"] == 2
        assert body["failed"] == 0
        assert [item["index"] for item in body["items"]] == [0, 1]

    def test_empty_batch_rejected(self, client):
        definition = _create(client)
        r = client.post(f"{BASE_URL}/{definition['id']}/reconcile/batch", json={"achiever_ids": []})
        assert r.status_code == 422
        assert r.json()["code"] == "EMPTY_BATCH"

    def test_oversized_batch_rejected(self, client):
        definition = _create(client)
        ids = [f"u{i}" for i in range(settings.RECONCILE_BATCH_MAX + 1)]
        r = client.post(f"{BASE_URL}/{definition['id']}/reconcile/batch", json={"achiever_ids": ids})
        assert r.status_code == 422
        body = r.json()
        assert body["code"] == "BATCH_TOO_LARGE"
        assert body["details"]["received"] == settings.RECONCILE_BATCH_MAX + 1

    def test_rebuild(self, client):
        definition = _create(client, target_count=1, time_window_days=None)
        achiever = _uid("user")
        _put_activity(client, definition["source_key"], achiever, ["2032-01-03"])

        r = client.post(f"{BASE_URL}/{definition['id']}/rebuild", json={"today": "2032-01-08"})
        assert r.status_code == 207
        body = r.json()
        assert [item["achiever_id"] for item in body["items"]] == [achiever]
        assert body["items"][0]["ok"] is True


class TestSignals:
    def test_activity_upload_reconciles(self, client):
        definition = _create(client, target_count=2, time_window_days=None)
        achiever = _uid("user")
        r = _put_activity(
            client, definition["source_key"], achiever, ["2032-01-01", "2032-01-02"],
            today="2032-01-02",
        )
        assert r.status_code == 200
        body = r.json()
        assert body["recorded"] == 3
        [item] = body["reconciled"]
        assert item["achievement_type_id"] == definition["id"]
        [attempt] = item["result"]["created"]
        assert attempt["is_successful"] is True
        assert attempt["is_closed"] is True

    def test_duplicate_days_rejected(self, client):
        r = client.put(
            "/signals/activity/journal/someone",
            json={"days": [{"day": "2032-01-01"}, {"day": "2032-01-01"}]},
        )
        assert r.status_code == 422

    def test_milestone_completion(self, client):
        milestone = _uid("lesson")
        definition = _create(
            client, kind="milestone_completion", target_count=1, source_key=None,
            time_window_days=None, milestone_ids=[milestone],
        )
        achiever = _uid("user")
        r = client.post(
            "/signals/milestones",
            params={"today": "2032-01-10"},
            json={"achiever_id": achiever, "milestone_id": milestone, "completed_on": "2032-01-05"},
        )
        assert r.status_code == 200
        [item] = r.json()["reconciled"]
        assert item["achievement_type_id"] == definition["id"]
        [attempt] = item["result"]["created"]
        assert attempt["start_date"] == "2032-01-05"
        assert attempt["is_successful"] is True

    def test_membership_threshold_progress(self, client):
        definition = _create(client, kind="threshold_count", source_key=None,
                             time_window_days=None, target_count=2)
        group = _uid("group")
        client.post("/signals/memberships", json={"achiever_id": group, "member_id": "a"},
                    params={"today": "2032-01-01"})
        client.post("/signals/memberships", json={"achiever_id": group, "member_id": "b"},
                    params={"today": "2032-01-02"})

        r = client.get(f"{BASE_URL}/{definition['id']}/attempts", params={"achiever_id": group})
        [attempt] = r.json()["items"]
        assert attempt["start_date"] == "2032-01-01"
        assert Decimal(attempt["progress"]) == Decimal("1")
        assert attempt["is_closed"] is True

    def test_repeated_membership_records_nothing(self, client):
        group = _uid("group")
        client.post("/signals/memberships", json={"achiever_id": group, "member_id": "a"})
        r = client.post("/signals/memberships", json={"achiever_id": group, "member_id": "a"})
        assert r.status_code == 200
        assert r.json()["recorded"] == 0
