"""Tests for the store implementations, run against both backends."""
import datetime as dt
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import TUESDAY, WEEK_END, WEEK_START, make_pattern
from timetable_server.config import open_store
from timetable_server.display import load_occurrences
from timetable_server.errors import StoreReadFailure, StoreWriteFailure
from timetable_server.models import ClassInfo, Holiday, Override
from timetable_server.reconciler import Reconciler, RetryConfig
from timetable_server.sqlite_store import SQLiteStore
from timetable_server.store import InMemoryStore


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryStore()
    return SQLiteStore(tmp_path / "timetable.db")


def test_pattern_round_trip(backend) -> None:
    pattern = make_pattern(start_date=dt.date(2025, 1, 1), end_date=dt.date(2025, 6, 30))
    backend.insert_pattern(pattern)

    assert backend.get_pattern("p1") == pattern
    assert backend.list_patterns("prog") == [pattern]
    assert backend.list_patterns("other") == []
    assert backend.get_pattern("missing") is None


def test_patterns_are_ordered_by_weekday_then_position(backend) -> None:
    backend.insert_pattern(make_pattern("fri", day_of_week="friday"))
    backend.insert_pattern(make_pattern("mon", day_of_week="monday"))
    backend.insert_pattern(make_pattern("tue", day_of_week="tuesday"))

    assert [p.id for p in backend.list_patterns("prog")] == ["mon", "tue", "fri"]


def test_update_missing_rows_fail(backend) -> None:
    with pytest.raises(StoreWriteFailure):
        backend.update_pattern(make_pattern("ghost"))
    with pytest.raises(StoreWriteFailure):
        backend.update_override(Override(id="ghost", pattern_id="p1", override_date=TUESDAY))


def test_override_lookup_by_natural_key(backend) -> None:
    backend.insert_pattern(make_pattern())
    override = Override(
        id="o1",
        pattern_id="p1",
        override_date=TUESDAY,
        start_time=dt.time(9, 15),
        end_time=dt.time(10, 15),
        holiday_active_override=True,
    )
    backend.insert_override(override)

    assert backend.find_override("p1", TUESDAY) == override
    assert backend.find_override("p1", TUESDAY + dt.timedelta(days=7)) is None
    assert backend.list_overrides(["p1", "p2"]) == [override]
    assert backend.list_overrides([]) == []

    updated = Override(id="o1", pattern_id="p1", override_date=TUESDAY, is_deleted=True)
    backend.update_override(updated)
    assert backend.find_override("p1", TUESDAY) == updated


def test_delete_pattern_removes_its_overrides(backend) -> None:
    backend.insert_pattern(make_pattern("p1"))
    backend.insert_pattern(make_pattern("p2"))
    backend.insert_override(Override(id="o1", pattern_id="p1", override_date=TUESDAY))
    backend.insert_override(Override(id="o2", pattern_id="p2", override_date=TUESDAY))

    backend.delete_pattern("p1")

    assert backend.get_pattern("p1") is None
    assert backend.list_overrides(["p1", "p2"]) == [
        Override(id="o2", pattern_id="p2", override_date=TUESDAY)
    ]


def test_holidays_and_classes(backend) -> None:
    backend.add_holiday(Holiday(date=dt.date(2025, 1, 20), name="Holiday A"))
    backend.add_holiday(Holiday(date=TUESDAY, name="Holiday B"))
    backend.add_holiday(Holiday(date=TUESDAY, name="Renamed"))
    backend.put_class(ClassInfo(id="c1", title="Algebra", tutor_name="Sam Lee"))

    assert backend.list_holidays() == [
        Holiday(date=TUESDAY, name="Renamed"),
        Holiday(date=dt.date(2025, 1, 20), name="Holiday A"),
    ]
    assert backend.list_holidays(WEEK_START, WEEK_END) == [Holiday(date=TUESDAY, name="Renamed")]
    assert backend.list_classes() == {"c1": ClassInfo(id="c1", title="Algebra", tutor_name="Sam Lee")}


def test_transaction_rolls_back_on_error(backend) -> None:
    backend.insert_pattern(make_pattern())

    with pytest.raises(RuntimeError):
        with backend.transaction():
            backend.insert_override(Override(id="o1", pattern_id="p1", override_date=TUESDAY))
            raise RuntimeError("boom")

    assert backend.find_override("p1", TUESDAY) is None


def test_transaction_commits(backend) -> None:
    backend.insert_pattern(make_pattern())

    with backend.transaction():
        backend.insert_override(Override(id="o1", pattern_id="p1", override_date=TUESDAY))
        with backend.transaction():
            backend.insert_override(Override(id="o2", pattern_id="p1", override_date=TUESDAY + dt.timedelta(days=1)))

    assert len(backend.list_overrides(["p1"])) == 2


def test_tuesday_scenario_through_store(backend) -> None:
    """Delete then relocate, reading back through the store each time."""
    backend.insert_pattern(make_pattern())
    reconciler = Reconciler(backend)

    assert len(load_occurrences(backend, "prog", WEEK_START, WEEK_END)) == 1

    reconciler.delete_occurrence("p1", TUESDAY)
    assert load_occurrences(backend, "prog", WEEK_START, WEEK_END) == []

    wednesday = TUESDAY + dt.timedelta(days=1)
    reconciler.relocate_occurrence("p1", TUESDAY, wednesday, dt.time(14), dt.time(15))
    (occ,) = load_occurrences(backend, "prog", WEEK_START, WEEK_END)
    assert occ.occurrence_date == wednesday
    assert occ.start == dt.datetime(2025, 1, 15, 14, 0)
    assert len(backend.list_overrides(["p1"])) == 2


def test_sqlite_persists_between_instances(tmp_path) -> None:
    path = tmp_path / "nested" / "timetable.db"
    SQLiteStore(path).insert_pattern(make_pattern())

    assert SQLiteStore(path).get_pattern("p1") == make_pattern()


def test_sqlite_errors_are_wrapped(tmp_path) -> None:
    """Driver errors surface as store failures, not sqlite3 exceptions."""
    path = tmp_path / "timetable.db"
    store = SQLiteStore(path)
    store.insert_pattern(make_pattern())

    with pytest.raises(StoreWriteFailure) as excinfo:
        store.insert_pattern(make_pattern())
    assert isinstance(excinfo.value.__cause__, sqlite3.IntegrityError)
    assert not excinfo.value.transient

    conn = sqlite3.connect(str(path))
    conn.execute("DROP TABLE program_item_overrides")
    conn.commit()
    conn.close()
    with pytest.raises(StoreReadFailure):
        store.list_overrides(["p1"])


def test_open_store_picks_backend(tmp_path) -> None:
    assert isinstance(open_store(str(tmp_path / "configured.db")), SQLiteStore)
    assert isinstance(open_store(""), InMemoryStore)


def test_upsert_override_keys_on_pattern_and_date(backend) -> None:
    backend.insert_pattern(make_pattern())

    first = backend.upsert_override(Override(id="o1", pattern_id="p1", override_date=TUESDAY, is_deleted=True))
    second = backend.upsert_override(
        Override(id="o2", pattern_id="p1", override_date=TUESDAY, start_time=dt.time(9, 0))
    )

    assert first.id == "o1"
    assert second == Override(id="o1", pattern_id="p1", override_date=TUESDAY, start_time=dt.time(9, 0))
    assert backend.list_overrides(["p1"]) == [second]


def test_concurrent_retimes_leave_one_override_per_date(backend) -> None:
    """Racing writers on the same date end with one row, and delete still hides it."""
    backend.insert_pattern(make_pattern())
    reconciler = Reconciler(backend, retry=RetryConfig(max_retries=5, base_delay=0.01))
    tuesdays = [TUESDAY + dt.timedelta(weeks=n) for n in range(20)]
    barrier = threading.Barrier(4, timeout=30)

    def retime_all(hour: int) -> None:
        for day in tuesdays:
            barrier.wait()
            reconciler.retime_occurrence("p1", day, dt.time(hour, 0), dt.time(hour, 30))

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [pool.submit(retime_all, hour) for hour in (12, 13, 14, 15)]
        for future in futures:
            future.result()

    overrides = backend.list_overrides(["p1"])
    assert sorted(o.override_date for o in overrides) == tuesdays

    for day in tuesdays:
        reconciler.delete_occurrence("p1", day)
    assert load_occurrences(backend, "prog", tuesdays[0], tuesdays[-1]) == []


def test_sqlite_rejects_second_row_for_a_date(tmp_path) -> None:
    store = SQLiteStore(tmp_path / "timetable.db")
    store.insert_pattern(make_pattern())
    store.insert_override(Override(id="o1", pattern_id="p1", override_date=TUESDAY))

    with pytest.raises(StoreWriteFailure):
        store.insert_override(Override(id="o2", pattern_id="p1", override_date=TUESDAY))
    assert [o.id for o in store.list_overrides(["p1"])] == ["o1"]


def test_memory_rollback_keeps_writes_from_other_threads() -> None:
    """A writer on another thread waits for the transaction instead of being rolled back."""
    store = InMemoryStore()
    writer = threading.Thread(target=store.add_holiday, args=(Holiday(date=TUESDAY, name="Staff"),))

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert_pattern(make_pattern())
            writer.start()
            writer.join(timeout=0.2)
            assert writer.is_alive()
            raise RuntimeError("boom")

    writer.join(timeout=5)
    assert store.get_pattern("p1") is None
    assert store.list_holidays() == [Holiday(date=TUESDAY, name="Staff")]
