"""Tests for the calendar helpers."""
import datetime as dt

import pytest

from timetable_server import dates


@pytest.mark.parametrize(
    "name, expected",
    [
        ("monday", 0),
        ("Tuesday", 1),
        ("WED", 2),
        ("thurs", 3),
        (" sunday ", 6),
        ("tu", None),
        ("funday", None),
        ("", None),
        (None, None),
    ],
)
def test_weekday_index(name, expected) -> None:
    """Full names and unambiguous prefixes map to date.weekday()."""
    assert dates.weekday_index(name) == expected


def test_weekly_dates_includes_both_ends() -> None:
    """Enumeration starts on the first match and includes the end date."""
    start = dt.date(2025, 1, 14)  # Tuesday
    end = dt.date(2025, 1, 28)    # Tuesday
    assert list(dates.weekly_dates(start, end, 1)) == [
        dt.date(2025, 1, 14),
        dt.date(2025, 1, 21),
        dt.date(2025, 1, 28),
    ]


def test_weekly_dates_skips_to_first_matching_weekday() -> None:
    """A range starting on Monday yields its Thursday first."""
    result = list(dates.weekly_dates(dt.date(2025, 1, 13), dt.date(2025, 1, 19), 3))
    assert result == [dt.date(2025, 1, 16)]


def test_weekly_dates_empty_when_no_match() -> None:
    """A range shorter than a week may hold no matching weekday."""
    assert list(dates.weekly_dates(dt.date(2025, 1, 14), dt.date(2025, 1, 15), 4)) == []
    assert list(dates.weekly_dates(dt.date(2025, 1, 15), dt.date(2025, 1, 14), 1)) == []


def test_weekly_dates_near_date_max() -> None:
    """Enumeration near the end of the calendar does not overflow."""
    end = dt.date.max
    start = end - dt.timedelta(days=20)
    result = list(dates.weekly_dates(start, end, end.weekday()))
    assert result[-1] == end
    assert len(result) == 3


def test_next_weekday_past_date_max() -> None:
    """No matching weekday remains after date.max."""
    weekday = (dt.date.max.weekday() + 1) % 7
    assert dates.next_weekday_on_or_after(dt.date.max, weekday) is None


def test_intersect_open_ended() -> None:
    """Absent validity bounds are unbounded."""
    window = (dt.date(2025, 1, 13), dt.date(2025, 1, 19))
    assert dates.intersect(None, None, *window) == window
    assert dates.intersect(dt.date(2025, 1, 15), None, *window) == (dt.date(2025, 1, 15), window[1])
    assert dates.intersect(None, dt.date(2025, 1, 12), *window) is None


def test_parse_date_formats() -> None:
    assert dates.parse_date("2025-01-14") == dt.date(2025, 1, 14)
    assert dates.parse_date("14/01/2025") == dt.date(2025, 1, 14)
    assert dates.parse_date(dt.datetime(2025, 1, 14, 9, 30)) == dt.date(2025, 1, 14)
    assert dates.parse_date("") is None
    with pytest.raises(ValueError):
        dates.parse_date("next tuesday")


def test_parse_time_formats() -> None:
    assert dates.parse_time("10:00") == dt.time(10, 0)
    assert dates.parse_time("14:30:15") == dt.time(14, 30, 15)
    assert dates.parse_time(None) is None
    with pytest.raises(ValueError):
        dates.parse_time("10")
    with pytest.raises(ValueError):
        dates.parse_time("25:00")


def test_week_bounds() -> None:
    """The week runs Monday to Sunday."""
    assert dates.week_bounds(dt.date(2025, 1, 16)) == (dt.date(2025, 1, 13), dt.date(2025, 1, 19))
    assert dates.week_bounds(dt.date(2025, 1, 13)) == (dt.date(2025, 1, 13), dt.date(2025, 1, 19))
