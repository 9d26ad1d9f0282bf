# -*- coding: utf-8 -*-
"""Creation, editing and removal of weekly slots (patterns)."""
from __future__ import annotations

import datetime as dt
import typing as t
import uuid
from dataclasses import replace

from timetable_server import dates
from timetable_server.errors import InvalidTimeRange, UnknownPattern
from timetable_server.logger import get_logger
from timetable_server.models import WEEKDAYS, Pattern
from timetable_server.store import ScheduleStore

logger = get_logger(__name__)

_EDITABLE_FIELDS = {"class_id", "day_of_week", "start_time", "end_time", "start_date", "end_date"}


def _validate(pattern: Pattern) -> None:
    if pattern.day_of_week is not None and dates.weekday_index(pattern.day_of_week) is None:
        raise InvalidTimeRange(f"Unknown day of week: {pattern.day_of_week!r}")
    if (
        pattern.start_time is not None
        and pattern.end_time is not None
        and pattern.start_time >= pattern.end_time
    ):
        raise InvalidTimeRange(
            f"Start time {pattern.start_time.isoformat()} must be before "
            f"end time {pattern.end_time.isoformat()}"
        )
    if (
        pattern.start_date is not None
        and pattern.end_date is not None
        and pattern.start_date > pattern.end_date
    ):
        raise InvalidTimeRange(
            f"Validity start {pattern.start_date.isoformat()} is after "
            f"end {pattern.end_date.isoformat()}"
        )


def _normalize_day(day_of_week: t.Optional[str]) -> t.Optional[str]:
    idx = dates.weekday_index(day_of_week)
    return WEEKDAYS[idx] if idx is not None else day_of_week


def create_pattern(
    store: ScheduleStore,
    program_id: str,
    class_id: str,
    day_of_week: t.Optional[str],
    start_time: t.Optional[dt.time],
    end_time: t.Optional[dt.time],
    start_date: t.Optional[dt.date] = None,
    end_date: t.Optional[dt.date] = None,
) -> Pattern:
    """Schedule a class into a weekly slot, appended after the day's existing slots.

    :param store: Store holding the program's patterns.
    :param program_id: Program (weekly timetable) the slot belongs to.
    :param class_id: Class taught in the slot.
    :param day_of_week: Weekday name, e.g. "tuesday".
    :param start_time: Local start time.
    :param end_time: Local end time.
    :param start_date: First date the slot is valid (open-ended if omitted).
    :param end_date: Last date the slot is valid (open-ended if omitted).
    :return: The stored Pattern.
    """
    day = _normalize_day(day_of_week)
    same_day = [p for p in store.list_patterns(program_id) if p.day_of_week == day]
    position = max((p.position for p in same_day), default=0) + 1

    pattern = Pattern(
        id=str(uuid.uuid4()),
        program_id=program_id,
        class_id=class_id,
        day_of_week=day,
        start_time=start_time,
        end_time=end_time,
        start_date=start_date,
        end_date=end_date,
        position=position,
    )
    _validate(pattern)
    store.insert_pattern(pattern)
    logger.info(f"Created pattern {pattern.id} ({day} {start_time}-{end_time}) in program {program_id}")
    return pattern


def update_pattern(store: ScheduleStore, pattern_id: str, **changes: t.Any) -> Pattern:
    """Change the day, times, validity window or class of a slot.

    Overrides are left as they are: they stay keyed by their own dates.
    """
    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise TypeError(f"Cannot update pattern fields: {', '.join(sorted(unknown))}")

    current = store.get_pattern(pattern_id)
    if current is None:
        raise UnknownPattern(pattern_id)

    if "day_of_week" in changes:
        changes["day_of_week"] = _normalize_day(changes["day_of_week"])
    updated = replace(current, **changes)
    _validate(updated)
    store.update_pattern(updated)
    logger.info(f"Updated pattern {pattern_id}: {', '.join(sorted(changes))}")
    return updated


def delete_pattern(store: ScheduleStore, pattern_id: str) -> None:
    """Remove a slot and, with it, every override of the slot."""
    if store.get_pattern(pattern_id) is None:
        raise UnknownPattern(pattern_id)
    store.delete_pattern(pattern_id)
    logger.info(f"Deleted pattern {pattern_id}")
