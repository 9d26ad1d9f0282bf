"""
Data models for the weekly timetable.

Patterns and overrides are the stored records; occurrences are derived on
every read and never persisted. All times are local wall-clock values.
"""
from __future__ import annotations

import datetime as dt
import typing as t
from dataclasses import dataclass


Weekday = t.Literal[
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]

WEEKDAYS: tuple[str, ...] = t.get_args(Weekday)


@dataclass(frozen=True)
class Pattern:
    """
    Weekly recurrence rule for one class slot ("program item"), like:
    - "Tuesdays 10:00-11:00, from 2025-09-15 to 2026-06-15"
    """
    id: str
    program_id: str
    class_id: str
    day_of_week: t.Optional[str] = None
    start_time: t.Optional[dt.time] = None
    end_time: t.Optional[dt.time] = None
    start_date: t.Optional[dt.date] = None   # open-ended when None
    end_date: t.Optional[dt.date] = None     # open-ended when None
    position: int = 0


@dataclass(frozen=True)
class Override:
    """
    Exception for one (pattern, date) pair.

    The override date need not fall on the pattern's weekday: a non-deleted
    override on another day is a relocated occurrence.
    """
    id: str
    pattern_id: str
    override_date: dt.date
    start_time: t.Optional[dt.time] = None
    end_time: t.Optional[dt.time] = None
    is_deleted: bool = False
    is_inactive: bool = False
    holiday_active_override: bool = False


@dataclass(frozen=True)
class Holiday:
    """A closed day, e.g. a public holiday."""
    date: dt.date
    name: t.Optional[str] = None


@dataclass(frozen=True)
class ClassInfo:
    """Display metadata for a class referenced by patterns."""
    id: str
    title: str
    subject: t.Optional[str] = None
    tutor_name: t.Optional[str] = None


@dataclass(frozen=True)
class Occurrence:
    """A concrete, dated calendar entry produced by the materializer."""
    pattern_id: str
    class_id: str
    occurrence_date: dt.date
    start: dt.datetime
    end: dt.datetime
    override_id: t.Optional[str] = None
    relocated: bool = False
    title: str = ""
    subject: t.Optional[str] = None
    tutor_name: t.Optional[str] = None
    is_holiday: bool = False
    holiday_name: t.Optional[str] = None
    is_inactive: bool = False
    active_during_holiday: bool = False

    @property
    def key(self) -> tuple[str, str]:
        """(pattern id, date string): correlates a displayed entry back to its slot."""
        return (self.pattern_id, self.occurrence_date.isoformat())

    @property
    def display_id(self) -> str:
        base = f"{self.pattern_id}-{self.occurrence_date.isoformat()}"
        return f"{base}-override" if self.relocated else base
