# -*- coding: utf-8 -*-
import typing as t

from fastmcp import FastMCP

from timetable_server import patterns as pattern_ops
from timetable_server.dates import parse_date, parse_time, week_bounds
from timetable_server.display import format_occurrences, load_occurrences
from timetable_server.models import ClassInfo, Holiday, Occurrence, Override, Pattern
from timetable_server.reconciler import Reconciler, RelocationResult
from timetable_server.store import default_store

mcp = FastMCP("TimetableServer")

reconciler = Reconciler(default_store)


def _window(start: str, end: str = "") -> tuple:
    """Resolve a window; with no end, the Monday-Sunday week containing start."""
    window_start = parse_date(start)
    if not end:
        return week_bounds(window_start)
    return window_start, parse_date(end)


@mcp.tool()
def create_pattern(
        program_id: str,
        class_id: str,
        day_of_week: str,
        start_time: str,
        end_time: str,
        start_date: str = "",
        end_date: str = ""
) -> Pattern:
    """Schedules a class into a weekly slot.

    :param program_id: Program (weekly timetable) the slot belongs to.
    :param class_id: Class taught in the slot.
    :param day_of_week: Weekday name, e.g. "tuesday".
    :param start_time: Start time, "HH:MM".
    :param end_time: End time, "HH:MM".
    :param start_date: First valid date, "YYYY-MM-DD" (optional).
    :param end_date: Last valid date, "YYYY-MM-DD" (optional).
    :return: The stored Pattern.
    """
    return pattern_ops.create_pattern(
        default_store,
        program_id,
        class_id,
        day_of_week,
        parse_time(start_time),
        parse_time(end_time),
        parse_date(start_date or None),
        parse_date(end_date or None),
    )


@mcp.tool()
def list_patterns(program_id: str) -> list[Pattern]:
    """Lists a program's weekly slots ordered by weekday and position."""
    return default_store.list_patterns(program_id)


@mcp.tool()
def remove_pattern(pattern_id: str) -> str:
    """Removes a weekly slot and every one-off change made to it."""
    pattern_ops.delete_pattern(default_store, pattern_id)
    return f"Removed pattern {pattern_id}"


@mcp.tool()
def list_occurrences(program_id: str, start: str, end: str = "") -> list[Occurrence]:
    """Lists the concrete classes of a program between two dates.

    :param program_id: Program to expand.
    :param start: First date, "YYYY-MM-DD".
    :param end: Last date, inclusive; defaults to the end of start's week.
    :return: Occurrences sorted by start time.
    """
    window_start, window_end = _window(start, end)
    return load_occurrences(default_store, program_id, window_start, window_end)


@mcp.tool()
def retime_occurrence(
        pattern_id: str,
        date: str,
        start_time: str,
        end_time: str,
        active_during_holiday: t.Optional[bool] = None
) -> Override:
    """Changes the times of one occurrence without touching the weekly slot.

    :param pattern_id: Slot the occurrence belongs to.
    :param date: Date of the occurrence, "YYYY-MM-DD".
    :param start_time: New start time, "HH:MM".
    :param end_time: New end time, "HH:MM".
    :param active_during_holiday: Keep the class on if the date is a holiday.
    :return: The written Override.
    """
    return reconciler.retime_occurrence(
        pattern_id,
        parse_date(date),
        parse_time(start_time),
        parse_time(end_time),
        active_during_holiday=active_during_holiday,
    )


@mcp.tool()
def relocate_occurrence(
        pattern_id: str,
        from_date: str,
        to_date: str,
        start_time: str = "",
        end_time: str = "",
        active_during_holiday: t.Optional[bool] = None
) -> RelocationResult:
    """Moves one occurrence to another date, optionally at other times.

    Omitted times keep the slot's own times on the new date.
    """
    return reconciler.relocate_occurrence(
        pattern_id,
        parse_date(from_date),
        parse_date(to_date),
        parse_time(start_time or None),
        parse_time(end_time or None),
        active_during_holiday=active_during_holiday,
    )


@mcp.tool()
def delete_occurrence(pattern_id: str, date: str) -> Override:
    """Cancels one occurrence; the rest of the series is kept."""
    return reconciler.delete_occurrence(pattern_id, parse_date(date))


@mcp.tool()
def add_holiday(date: str, name: str = "") -> Holiday:
    """Marks a date as a holiday."""
    return default_store.add_holiday(Holiday(date=parse_date(date), name=name or None))


@mcp.tool()
def put_class(class_id: str, title: str, subject: str = "", tutor_name: str = "") -> ClassInfo:
    """Creates or replaces the title, subject and tutor shown for a class."""
    return default_store.put_class(
        ClassInfo(id=class_id, title=title, subject=subject or None, tutor_name=tutor_name or None)
    )


@mcp.tool()
def show_timetable(program_id: str, start: str, end: str = "") -> str:
    """Displays a program's classes between two dates in a nicely formatted view."""
    window_start, window_end = _window(start, end)
    return format_occurrences(load_occurrences(default_store, program_id, window_start, window_end))


if __name__ == "__main__":
    mcp.run()
