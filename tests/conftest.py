"""Shared fixtures for the timetable tests."""
import datetime as dt
import itertools
import typing as t

import pytest

from timetable_server.models import Pattern
from timetable_server.reconciler import Reconciler, RetryConfig
from timetable_server.store import InMemoryStore

# 2025-01-14 is a Tuesday; its week runs Monday 13th to Sunday 19th
TUESDAY = dt.date(2025, 1, 14)
WEEK_START = dt.date(2025, 1, 13)
WEEK_END = dt.date(2025, 1, 19)


def make_pattern(
    pattern_id: str = "p1",
    day_of_week: t.Optional[str] = "tuesday",
    start: t.Optional[str] = "10:00",
    end: t.Optional[str] = "11:00",
    start_date: t.Optional[dt.date] = None,
    end_date: t.Optional[dt.date] = None,
    program_id: str = "prog",
    class_id: str = "c1",
) -> Pattern:
    """Build a Pattern with Tuesday 10:00-11:00 defaults."""
    return Pattern(
        id=pattern_id,
        program_id=program_id,
        class_id=class_id,
        day_of_week=day_of_week,
        start_time=dt.time.fromisoformat(start) if start else None,
        end_time=dt.time.fromisoformat(end) if end else None,
        start_date=start_date,
        end_date=end_date,
    )


@pytest.fixture
def store() -> InMemoryStore:
    """An in-memory store holding the Tuesday pattern p1."""
    memory = InMemoryStore()
    memory.insert_pattern(make_pattern())
    return memory


@pytest.fixture
def reconciler(store: InMemoryStore) -> Reconciler:
    """A reconciler with deterministic override ids and no retry delay."""
    counter = itertools.count(1)
    return Reconciler(
        store,
        retry=RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0),
        id_factory=lambda: f"ov{next(counter)}",
    )
