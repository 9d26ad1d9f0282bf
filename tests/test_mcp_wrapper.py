"""Tests for the HTTP-backed MCP wrapper, served in-process by TestClient."""
import datetime as dt

import httpx
import pytest
from fastapi.testclient import TestClient

from mcp_wrappers.timetable import mcp_service
from services.timetable_service.app import app, get_store
from timetable_server.models import Occurrence, Override, Pattern
from timetable_server.store import InMemoryStore


@pytest.fixture
def memory(monkeypatch) -> InMemoryStore:
    """Route the wrapper's httpx calls to the service app over an in-memory store."""
    store = InMemoryStore()
    app.dependency_overrides[get_store] = lambda: store
    monkeypatch.setattr(mcp_service.httpx, "Client", lambda timeout: TestClient(app))
    yield store
    app.dependency_overrides.clear()


def test_create_and_list_patterns(memory) -> None:
    pattern = mcp_service._create_pattern("prog", "c1", "tuesday", "10:00", "11:00")

    assert isinstance(pattern, Pattern)
    assert pattern.start_time == dt.time(10, 0)
    assert mcp_service._list_patterns("prog") == [pattern]
    assert memory.get_pattern(pattern.id) == pattern


def test_occurrence_edits_round_trip(memory) -> None:
    """Delete, relocate and retime through the wrapper; read back the week."""
    pattern = mcp_service._create_pattern("prog", "c1", "tuesday", "10:00", "11:00")

    (occ,) = mcp_service._list_occurrences("prog", "2025-01-14")
    assert isinstance(occ, Occurrence)
    assert occ.start == dt.datetime(2025, 1, 14, 10, 0)

    deleted = mcp_service._delete_occurrence(pattern.id, "2025-01-14")
    assert isinstance(deleted, Override)
    assert deleted.is_deleted
    assert mcp_service._list_occurrences("prog", "2025-01-13", "2025-01-19") == []

    result = mcp_service._relocate_occurrence(pattern.id, "2025-01-14", "2025-01-15", "14:00", "15:00")
    assert result.suppressed.override_date == dt.date(2025, 1, 14)
    assert result.materialized.start_time == dt.time(14, 0)

    retimed = mcp_service._retime_occurrence(pattern.id, "2025-01-15", "16:00", "17:00")
    assert retimed.id == result.materialized.id

    (occ,) = mcp_service._list_occurrences("prog", "2025-01-13", "2025-01-19")
    assert occ.occurrence_date == dt.date(2025, 1, 15)
    assert occ.start == dt.datetime(2025, 1, 15, 16, 0)
    assert occ.relocated


def test_show_timetable_with_metadata(memory) -> None:
    mcp_service._create_pattern("prog", "c1", "tuesday", "10:00", "11:00")
    mcp_service._put_class("c1", "Algebra", tutor_name="Sam Lee")
    holiday = mcp_service._add_holiday("2025-01-14", "Staff day")

    assert holiday.date == dt.date(2025, 1, 14)
    text = mcp_service._show_timetable("prog", "2025-01-13", "2025-01-19")
    assert "Algebra" in text
    assert "inactive" in text


def test_remove_pattern(memory) -> None:
    pattern = mcp_service._create_pattern("prog", "c1", "tuesday", "10:00", "11:00")

    assert mcp_service._remove_pattern(pattern.id) == f"Removed pattern {pattern.id}"
    assert memory.patterns == {}


def test_service_errors_become_runtime_errors(memory) -> None:
    with pytest.raises(RuntimeError, match="404"):
        mcp_service._delete_occurrence("nope", "2025-01-14")


def test_timeouts_become_runtime_errors(monkeypatch) -> None:
    class TimingOutClient:
        def __init__(self, timeout):
            self.timeout = timeout

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def request(self, method, url, **kwargs):
            raise httpx.ReadTimeout("slow", request=httpx.Request(method, url))

    monkeypatch.setattr(mcp_service.httpx, "Client", TimingOutClient)
    with pytest.raises(RuntimeError, match="timed out"):
        mcp_service._list_patterns("prog")
