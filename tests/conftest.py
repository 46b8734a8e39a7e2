"""
Shared pytest fixtures.

Uses a file-backed SQLite database so no Postgres is required for tests.
Engine-level tests use the in-memory fakes below instead of the database.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_achievements.db")

from datetime import date, timedelta
from typing import Iterable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from achievement_engine.db.base import Base, get_db
from achievement_engine.main import app
from achievement_engine.services.records import SignalDay

SQLITE_URL = "sqlite:///./test_achievements.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Day 1 of every engine scenario.
DAY_ONE = date(2030, 1, 1)


def d(n: int) -> date:
    """Calendar date of scenario day `n` (1-based)."""
    return DAY_ONE + timedelta(days=n - 1)


class FakeFeed:
    """In-memory SignalFeed: every listed day is an engaged occurrence."""

    def __init__(self, engaged: Iterable[date], enrolled_on: Optional[date] = DAY_ONE):
        self.engaged = set(engaged)
        self.enrolled_on = enrolled_on
        self.requested: list[tuple[date, date]] = []

    def enrollment_date(self) -> Optional[date]:
        return self.enrolled_on

    def iter_days(self, start: date, end: date):
        self.requested.append((start, end))
        current = start
        while current <= end:
            engaged = current in self.engaged
            yield SignalDay(day=current, has_occurrence=True, has_engagement=engaged)
            current += timedelta(days=1)


class FakeMilestones:
    """In-memory MilestoneLookup keyed by milestone id."""

    def __init__(self, completions: dict[str, date]):
        self.completions = completions

    def completion_date(self, milestone_id, min_date, max_date):
        done = self.completions.get(milestone_id)
        if done is None:
            return None
        if min_date is not None and done < min_date:
            return None
        if max_date is not None and done > max_date:
            return None
        return done


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
