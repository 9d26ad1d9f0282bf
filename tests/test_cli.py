"""Tests for the command line, run against a temporary SQLite file."""
import pytest
from click.testing import CliRunner

from orchestrator.run import main
from timetable_server.sqlite_store import SQLiteStore


@pytest.fixture
def db(tmp_path) -> str:
    return str(tmp_path / "timetable.db")


def _run(db: str, *args: str):
    return CliRunner().invoke(main, ["--db", db, *args])


def _only_pattern_id(db: str) -> str:
    (pattern,) = SQLiteStore(db).list_patterns("prog")
    return pattern.id


def test_add_pattern_and_show_week(db) -> None:
    result = _run(db, "add-pattern", "prog", "c1", "tuesday", "10:00", "11:00")
    assert result.exit_code == 0, result.output
    assert "Created pattern" in result.output

    assert _run(db, "set-class", "c1", "Algebra", "--tutor", "Sam").exit_code == 0

    result = _run(db, "week", "prog", "--date", "2025-01-16")
    assert result.exit_code == 0, result.output
    assert "Algebra" in result.output
    assert "10:00" in result.output
    assert "Classes: 1" in result.output


def test_patterns_lists_slots(db) -> None:
    _run(db, "add-pattern", "prog", "c1", "mon", "09:00", "10:00", "--from", "2025-01-01")

    result = _run(db, "patterns", "prog")
    assert result.exit_code == 0, result.output
    assert "Monday" in result.output
    assert "2025-01-01" in result.output


def test_delete_and_relocate(db) -> None:
    _run(db, "add-pattern", "prog", "c1", "tuesday", "10:00", "11:00")
    pattern_id = _only_pattern_id(db)

    result = _run(db, "delete", pattern_id, "2025-01-14")
    assert result.exit_code == 0, result.output
    result = _run(db, "week", "prog", "--date", "2025-01-14")
    assert "No classes scheduled" in result.output

    result = _run(db, "relocate", pattern_id, "2025-01-14", "2025-01-15", "--start", "14:00", "--end", "15:00")
    assert result.exit_code == 0, result.output

    result = _run(db, "week", "prog", "--date", "2025-01-14")
    assert "Wed 15/01" in result.output
    assert "14:00" in result.output
    assert "moved" in result.output


def test_retime_and_holiday(db) -> None:
    _run(db, "add-pattern", "prog", "c1", "tuesday", "10:00", "11:00")
    pattern_id = _only_pattern_id(db)
    assert _run(db, "add-holiday", "2025-01-21", "--name", "Staff").exit_code == 0

    result = _run(db, "retime", pattern_id, "2025-01-14", "12:00", "13:00")
    assert result.exit_code == 0, result.output
    assert "12:00" in result.output

    result = _run(db, "week", "prog", "--date", "2025-01-21")
    assert "inactive" in result.output
    assert "Inactive: 1" in result.output


def test_errors_exit_non_zero(db) -> None:
    result = _run(db, "delete", "missing", "2025-01-14")
    assert result.exit_code == 1
    assert "not found" in result.output

    result = _run(db, "add-pattern", "prog", "c1", "tuesday", "11:00", "10:00")
    assert result.exit_code == 1

    result = _run(db, "retime", "missing", "not-a-date", "10:00", "11:00")
    assert result.exit_code == 1
    assert "must be a date" in result.output


def test_remove_pattern(db) -> None:
    _run(db, "add-pattern", "prog", "c1", "tuesday", "10:00", "11:00")
    pattern_id = _only_pattern_id(db)

    result = _run(db, "remove-pattern", pattern_id)
    assert result.exit_code == 0, result.output
    assert SQLiteStore(db).list_patterns("prog") == []
