"""
MCP wrapper for the timetable service.

This module keeps the tool signatures of timetable_server/server.py but makes
HTTP calls to the distributed timetable service. It handles conversion between
the Pydantic models used on the wire and the dataclasses returned to MCP
clients.
"""
from __future__ import annotations

import os
import typing as t
from datetime import datetime

import httpx
from fastmcp import FastMCP

# Import original dataclass models for MCP interface compatibility
from timetable_server.dates import parse_date, parse_time, week_bounds
from timetable_server.models import ClassInfo, Holiday, Occurrence, Override, Pattern
from timetable_server.reconciler import RelocationResult
# Import Pydantic models for HTTP serialization
from services.shared.models import (
    ClassInfo as PydanticClassInfo,
    CreateHolidayRequest,
    CreatePatternRequest,
    DeleteOccurrenceRequest,
    Holiday as PydanticHoliday,
    Occurrence as PydanticOccurrence,
    Override as PydanticOverride,
    Pattern as PydanticPattern,
    PutClassRequest,
    RelocateOccurrenceRequest,
    RelocationResponse,
    RetimeOccurrenceRequest,
    ShowTimetableResponse,
)


mcp = FastMCP("TimetableMCPWrapper")

# Service URL - configurable via environment variable
TIMETABLE_SERVICE_URL = os.getenv("TIMETABLE_SERVICE_URL", "http://localhost:8004")

# Timeout settings for fast operations (in seconds)
STANDARD_TIMEOUT = 30.0  # 30 seconds for standard CRUD operations


def _call_service(
    method: str,
    path: str,
    action: str,
    json: t.Optional[dict] = None,
    params: t.Optional[dict] = None,
) -> t.Any:
    """
    Make one HTTP call to the timetable service and return the decoded JSON.

    Transport failures and error statuses are raised as RuntimeError with
    the service's detail message.
    """
    try:
        with httpx.Client(timeout=STANDARD_TIMEOUT) as client:
            response = client.request(
                method,
                f"{TIMETABLE_SERVICE_URL}{path}",
                json=json,
                params=params,
            )
            response.raise_for_status()
        return response.json()

    except httpx.TimeoutException:
        raise RuntimeError(f"{action} timed out after {STANDARD_TIMEOUT} seconds")
    except httpx.HTTPStatusError as e:
        raise RuntimeError(f"HTTP error from timetable service: {e.response.status_code} {e.response.text}")
    except httpx.HTTPError as e:
        raise RuntimeError(f"Error calling timetable service: {str(e)}")


def _create_pattern(
    program_id: str,
    class_id: str,
    day_of_week: str,
    start_time: str,
    end_time: str,
    start_date: str = "",
    end_date: str = ""
) -> Pattern:
    """
    Schedule a class into a weekly slot.

    This maintains the exact same signature as the local MCP tool
    but makes an HTTP call to the distributed timetable service.
    """
    request = CreatePatternRequest(
        program_id=program_id,
        class_id=class_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        start_date=start_date or None,
        end_date=end_date or None,
    )
    data = _call_service("POST", "/patterns", "Pattern creation", json=request.model_dump())
    return _pydantic_to_dataclass_pattern(PydanticPattern(**data))


def _list_patterns(program_id: str) -> list[Pattern]:
    """List a program's weekly slots."""
    data = _call_service("GET", f"/programs/{program_id}/patterns", "List patterns")
    return [_pydantic_to_dataclass_pattern(PydanticPattern(**item)) for item in data]


def _remove_pattern(pattern_id: str) -> str:
    """Remove a weekly slot and its overrides."""
    _call_service("DELETE", f"/patterns/{pattern_id}", "Pattern removal")
    return f"Removed pattern {pattern_id}"


def _list_occurrences(program_id: str, start: str, end: str = "") -> list[Occurrence]:
    """
    List the concrete classes of a program between two dates.

    With no end, the window is the Monday-Sunday week containing start.
    """
    params = _window_params(start, end)
    data = _call_service("GET", f"/programs/{program_id}/occurrences", "List occurrences", params=params)
    return [_pydantic_to_dataclass_occurrence(PydanticOccurrence(**item)) for item in data]


def _retime_occurrence(
    pattern_id: str,
    date: str,
    start_time: str,
    end_time: str,
    active_during_holiday: t.Optional[bool] = None
) -> Override:
    """Change the times of one occurrence via the timetable service."""
    request = RetimeOccurrenceRequest(
        pattern_id=pattern_id,
        date=date,
        start_time=start_time,
        end_time=end_time,
        active_during_holiday=active_during_holiday,
    )
    data = _call_service("POST", "/occurrences/retime", "Occurrence retime", json=request.model_dump())
    return _pydantic_to_dataclass_override(PydanticOverride(**data))


def _relocate_occurrence(
    pattern_id: str,
    from_date: str,
    to_date: str,
    start_time: str = "",
    end_time: str = "",
    active_during_holiday: t.Optional[bool] = None
) -> RelocationResult:
    """Move one occurrence to another date via the timetable service."""
    request = RelocateOccurrenceRequest(
        pattern_id=pattern_id,
        from_date=from_date,
        to_date=to_date,
        start_time=start_time or None,
        end_time=end_time or None,
        active_during_holiday=active_during_holiday,
    )
    data = _call_service(
        "POST", "/occurrences/relocate", "Occurrence relocation", json=request.model_dump()
    )
    result = RelocationResponse(**data)
    return RelocationResult(
        suppressed=_pydantic_to_dataclass_override(result.suppressed) if result.suppressed else None,
        materialized=_pydantic_to_dataclass_override(result.materialized),
    )


def _delete_occurrence(pattern_id: str, date: str) -> Override:
    """Cancel one occurrence via the timetable service."""
    request = DeleteOccurrenceRequest(pattern_id=pattern_id, date=date)
    data = _call_service("POST", "/occurrences/delete", "Occurrence deletion", json=request.model_dump())
    return _pydantic_to_dataclass_override(PydanticOverride(**data))


def _add_holiday(date: str, name: str = "") -> Holiday:
    request = CreateHolidayRequest(date=date, name=name or None)
    data = _call_service("POST", "/holidays", "Holiday creation", json=request.model_dump())
    holiday = PydanticHoliday(**data)
    return Holiday(date=parse_date(holiday.date), name=holiday.name)


def _put_class(class_id: str, title: str, subject: str = "", tutor_name: str = "") -> ClassInfo:
    request = PutClassRequest(title=title, subject=subject or None, tutor_name=tutor_name or None)
    data = _call_service("PUT", f"/classes/{class_id}", "Class update", json=request.model_dump())
    info = PydanticClassInfo(**data)
    return ClassInfo(id=info.id, title=info.title, subject=info.subject, tutor_name=info.tutor_name)


def _show_timetable(program_id: str, start: str, end: str = "") -> str:
    """
    Show a program's timetable in a formatted display.

    This maintains the exact same signature as the local MCP tool
    but makes an HTTP call to the distributed timetable service.
    """
    params = _window_params(start, end)
    data = _call_service(
        "GET", f"/programs/{program_id}/occurrences/show", "Show timetable", params=params
    )
    return ShowTimetableResponse(**data).formatted_timetable


def _window_params(start: str, end: str) -> dict[str, str]:
    if end:
        return {"start": start, "end": end}
    monday, sunday = week_bounds(parse_date(start))
    return {"start": monday.isoformat(), "end": sunday.isoformat()}


def _pydantic_to_dataclass_pattern(pydantic_pattern: PydanticPattern) -> Pattern:
    """Convert Pydantic Pattern to dataclass Pattern."""
    return Pattern(
        id=pydantic_pattern.id,
        program_id=pydantic_pattern.program_id,
        class_id=pydantic_pattern.class_id,
        day_of_week=pydantic_pattern.day_of_week,
        start_time=parse_time(pydantic_pattern.start_time),
        end_time=parse_time(pydantic_pattern.end_time),
        start_date=parse_date(pydantic_pattern.start_date),
        end_date=parse_date(pydantic_pattern.end_date),
        position=pydantic_pattern.position,
    )


def _pydantic_to_dataclass_override(pydantic_override: PydanticOverride) -> Override:
    """Convert Pydantic Override to dataclass Override."""
    return Override(
        id=pydantic_override.id,
        pattern_id=pydantic_override.pattern_id,
        override_date=parse_date(pydantic_override.override_date),
        start_time=parse_time(pydantic_override.start_time),
        end_time=parse_time(pydantic_override.end_time),
        is_deleted=pydantic_override.is_deleted,
        is_inactive=pydantic_override.is_inactive,
        holiday_active_override=pydantic_override.holiday_active_override,
    )


def _pydantic_to_dataclass_occurrence(pydantic_occurrence: PydanticOccurrence) -> Occurrence:
    """Convert Pydantic Occurrence to dataclass Occurrence."""
    return Occurrence(
        pattern_id=pydantic_occurrence.pattern_id,
        class_id=pydantic_occurrence.class_id,
        occurrence_date=parse_date(pydantic_occurrence.occurrence_date),
        start=datetime.fromisoformat(pydantic_occurrence.start),
        end=datetime.fromisoformat(pydantic_occurrence.end),
        override_id=pydantic_occurrence.override_id,
        relocated=pydantic_occurrence.relocated,
        title=pydantic_occurrence.title,
        subject=pydantic_occurrence.subject,
        tutor_name=pydantic_occurrence.tutor_name,
        is_holiday=pydantic_occurrence.is_holiday,
        holiday_name=pydantic_occurrence.holiday_name,
        is_inactive=pydantic_occurrence.is_inactive,
        active_during_holiday=pydantic_occurrence.active_during_holiday,
    )


# MCP tool wrappers that call the raw functions
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
    """Schedules a class into a weekly slot."""
    return _create_pattern(program_id, class_id, day_of_week, start_time, end_time, start_date, end_date)


@mcp.tool()
def list_patterns(program_id: str) -> list[Pattern]:
    """Lists a program's weekly slots."""
    return _list_patterns(program_id)


@mcp.tool()
def remove_pattern(pattern_id: str) -> str:
    """Removes a weekly slot and every one-off change made to it."""
    return _remove_pattern(pattern_id)


@mcp.tool()
def list_occurrences(program_id: str, start: str, end: str = "") -> list[Occurrence]:
    """Lists the concrete classes of a program between two dates."""
    return _list_occurrences(program_id, start, end)


@mcp.tool()
def retime_occurrence(
    pattern_id: str,
    date: str,
    start_time: str,
    end_time: str,
    active_during_holiday: t.Optional[bool] = None
) -> Override:
    """Changes the times of one occurrence without touching the weekly slot."""
    return _retime_occurrence(pattern_id, date, start_time, end_time, active_during_holiday)


@mcp.tool()
def relocate_occurrence(
    pattern_id: str,
    from_date: str,
    to_date: str,
    start_time: str = "",
    end_time: str = "",
    active_during_holiday: t.Optional[bool] = None
) -> RelocationResult:
    """Moves one occurrence to another date, optionally at other times."""
    return _relocate_occurrence(pattern_id, from_date, to_date, start_time, end_time, active_during_holiday)


@mcp.tool()
def delete_occurrence(pattern_id: str, date: str) -> Override:
    """Cancels one occurrence; the rest of the series is kept."""
    return _delete_occurrence(pattern_id, date)


@mcp.tool()
def add_holiday(date: str, name: str = "") -> Holiday:
    """Marks a date as a holiday."""
    return _add_holiday(date, name)


@mcp.tool()
def put_class(class_id: str, title: str, subject: str = "", tutor_name: str = "") -> ClassInfo:
    """Creates or replaces the title, subject and tutor shown for a class."""
    return _put_class(class_id, title, subject, tutor_name)


@mcp.tool()
def show_timetable(program_id: str, start: str, end: str = "") -> str:
    """Displays a program's classes between two dates in a nicely formatted view."""
    return _show_timetable(program_id, start, end)
