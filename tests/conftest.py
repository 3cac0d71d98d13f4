"""Shared fixtures: an initialised SQLite file per test and a controllable clock."""

from datetime import datetime, timedelta, timezone

import pytest

from srs_engine.db.sqlite import init_sqlite
from srs_engine.services.engine import SpacedRepetitionEngine
from srs_engine.services.store import ScheduleStore

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
async def db_path(tmp_path):
    path = tmp_path / "srs.db"
    await init_sqlite(path)
    return path


@pytest.fixture
async def store(db_path):
    s = ScheduleStore(db_path)
    yield s
    await s.flush()


@pytest.fixture
def engine(store, clock) -> SpacedRepetitionEngine:
    return SpacedRepetitionEngine(store, clock=clock)
