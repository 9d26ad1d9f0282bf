"""
Shared Pydantic models for REST API serialization.

This module contains Pydantic equivalents of the timetable dataclasses in
timetable_server/models.py, plus the request and response bodies of the
timetable service. Dates travel as "YYYY-MM-DD" strings and times as
"HH:MM" or "HH:MM:SS" strings.
"""
from __future__ import annotations

import typing as t
from pydantic import BaseModel, Field


class Pattern(BaseModel):
    """
    A weekly class slot, like:
    - "tuesday 10:00-11:00, 2025-09-15 .. 2026-06-15"
    """
    id: str
    program_id: str
    class_id: str
    day_of_week: t.Optional[str] = None   # "monday" .. "sunday"
    start_time: t.Optional[str] = None    # "HH:MM:SS"
    end_time: t.Optional[str] = None
    start_date: t.Optional[str] = None    # "YYYY-MM-DD", open-ended when None
    end_date: t.Optional[str] = None
    position: int = 0


class Override(BaseModel):
    """
    An exception for one (pattern, date) pair.
    """
    id: str
    pattern_id: str
    override_date: str
    start_time: t.Optional[str] = None
    end_time: t.Optional[str] = None
    is_deleted: bool = False
    is_inactive: bool = False
    holiday_active_override: bool = False


class Occurrence(BaseModel):
    """
    A dated calendar entry produced from patterns and overrides.
    """
    id: str = ""                  # "<pattern_id>-<date>", "-override" suffix when relocated
    pattern_id: str
    class_id: str
    occurrence_date: str
    start: str                    # ISO datetime, local wall clock
    end: str
    override_id: t.Optional[str] = None
    relocated: bool = False
    title: str = ""
    subject: t.Optional[str] = None
    tutor_name: t.Optional[str] = None
    is_holiday: bool = False
    holiday_name: t.Optional[str] = None
    is_inactive: bool = False
    active_during_holiday: bool = False


class Holiday(BaseModel):
    date: str
    name: t.Optional[str] = None


class ClassInfo(BaseModel):
    id: str
    title: str
    subject: t.Optional[str] = None
    tutor_name: t.Optional[str] = None


# Request/Response models for API endpoints

class CreatePatternRequest(BaseModel):
    """Request model for scheduling a class into a weekly slot."""
    program_id: str
    class_id: str
    day_of_week: str
    start_time: str
    end_time: str
    start_date: t.Optional[str] = None
    end_date: t.Optional[str] = None


class UpdatePatternRequest(BaseModel):
    """Request model for editing a slot; only the fields sent are changed."""
    class_id: t.Optional[str] = None
    day_of_week: t.Optional[str] = None
    start_time: t.Optional[str] = None
    end_time: t.Optional[str] = None
    start_date: t.Optional[str] = None
    end_date: t.Optional[str] = None


class RetimeOccurrenceRequest(BaseModel):
    """Request model for changing the times of one occurrence."""
    pattern_id: str
    date: str
    start_time: t.Optional[str] = None
    end_time: t.Optional[str] = None
    active_during_holiday: t.Optional[bool] = None


class RelocateOccurrenceRequest(BaseModel):
    """Request model for moving one occurrence to another date."""
    pattern_id: str
    from_date: str
    to_date: str
    start_time: t.Optional[str] = None
    end_time: t.Optional[str] = None
    active_during_holiday: t.Optional[bool] = None


class DeleteOccurrenceRequest(BaseModel):
    """Request model for suppressing one occurrence."""
    pattern_id: str
    date: str


class CreateHolidayRequest(BaseModel):
    date: str
    name: t.Optional[str] = None


class PutClassRequest(BaseModel):
    title: str
    subject: t.Optional[str] = None
    tutor_name: t.Optional[str] = None


class RelocationResponse(BaseModel):
    """Response model for a relocation; suppressed is None for same-date moves."""
    suppressed: t.Optional[Override] = None
    materialized: Override


class ShowTimetableResponse(BaseModel):
    """Response model for the formatted timetable display."""
    formatted_timetable: str
    occurrences: list[Occurrence] = Field(default_factory=list)
