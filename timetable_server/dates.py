"""Local calendar arithmetic shared by the materializer and the reconciler."""
from __future__ import annotations

import datetime as dt
import typing as t

from timetable_server.models import WEEKDAYS

EARLIEST_DATE = dt.date.min
LATEST_DATE = dt.date.max

# Python's date.weekday(): Monday == 0
WEEKDAY_TO_INDEX: dict[str, int] = {name: idx for idx, name in enumerate(WEEKDAYS)}


def weekday_index(day_of_week: t.Optional[str]) -> t.Optional[int]:
    """Map a symbolic weekday ('tuesday', 'Tue', ...) to date.weekday(), or None."""
    if not day_of_week:
        return None
    name = day_of_week.strip().lower()
    if name in WEEKDAY_TO_INDEX:
        return WEEKDAY_TO_INDEX[name]
    for full, idx in WEEKDAY_TO_INDEX.items():
        if len(name) >= 3 and full.startswith(name):
            return idx
    return None


def weekday_name(day: dt.date) -> str:
    return WEEKDAYS[day.weekday()]


def next_weekday_on_or_after(start: dt.date, weekday: int) -> t.Optional[dt.date]:
    """First date >= start falling on weekday; None if it would pass date.max."""
    diff = (weekday - start.weekday()) % 7
    if (LATEST_DATE - start).days < diff:
        return None
    return start + dt.timedelta(days=diff)


def weekly_dates(start: dt.date, end: dt.date, weekday: int) -> t.Iterator[dt.date]:
    """Yield every date in [start, end] (inclusive) that falls on weekday.

    The number of steps is computed up front, so enumeration never steps
    past ``end`` and cannot overflow at the edge of the representable range.
    """
    if start > end:
        return
    first = next_weekday_on_or_after(start, weekday)
    if first is None or first > end:
        return
    steps = (end - first).days // 7
    for i in range(steps + 1):
        yield first + dt.timedelta(days=7 * i)


def intersect(
    a_start: t.Optional[dt.date],
    a_end: t.Optional[dt.date],
    b_start: dt.date,
    b_end: dt.date,
) -> t.Optional[tuple[dt.date, dt.date]]:
    """Intersect an optional (open-ended) validity window with a display window."""
    start = max(a_start or EARLIEST_DATE, b_start)
    end = min(a_end or LATEST_DATE, b_end)
    if start > end:
        return None
    return start, end


def combine(day: dt.date, time_of_day: dt.time) -> dt.datetime:
    """Naive local datetime for a wall-clock time on a calendar date."""
    return dt.datetime.combine(day, time_of_day.replace(tzinfo=None))


def parse_date(value: t.Union[str, dt.date, None]) -> t.Optional[dt.date]:
    """Parse 'YYYY-MM-DD' (or 'DD/MM/YYYY') into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = value.strip()
    if "/" in text:
        return dt.datetime.strptime(text, "%d/%m/%Y").date()
    return dt.date.fromisoformat(text[:10])


def parse_time(value: t.Union[str, dt.time, None]) -> t.Optional[dt.time]:
    """Parse 'HH:MM' or 'HH:MM:SS' into a time (second precision)."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.time):
        return value.replace(microsecond=0)
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return dt.time(hour, minute, second)


def format_time(value: t.Optional[dt.time]) -> t.Optional[str]:
    return value.strftime("%H:%M:%S") if value is not None else None


def week_bounds(day: dt.date) -> tuple[dt.date, dt.date]:
    """Monday..Sunday week containing day."""
    monday = day - dt.timedelta(days=day.weekday())
    return monday, monday + dt.timedelta(days=6)
