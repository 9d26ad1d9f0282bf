"""
FastAPI service for timetable operations.

This service exposes the materializer and the reconciliation engine from
timetable_server/ as REST API endpoints. Occurrences are never stored: every
read recomputes them from the program's patterns and overrides for the
requested window.

Handlers that touch the store are plain functions: FastAPI runs them in its
threadpool, so blocking SQLite calls never stall the event loop.
"""
from __future__ import annotations

import datetime as dt
import typing as t
from contextlib import asynccontextmanager, contextmanager

from fastapi import Depends, FastAPI, HTTPException, Query

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
    UpdatePatternRequest,
)
from timetable_server import patterns as pattern_ops
from timetable_server.config import WRITE_RETRIES, open_store
from timetable_server.dates import format_time, parse_date, parse_time
from timetable_server.display import format_occurrences, load_occurrences
from timetable_server.errors import (
    InvalidTimeRange,
    PartialRelocationFailure,
    StoreReadFailure,
    StoreWriteFailure,
    UnknownPattern,
)
from timetable_server.logger import get_logger
from timetable_server.models import ClassInfo, Holiday, Occurrence, Override, Pattern
from timetable_server.reconciler import Reconciler, RetryConfig
from timetable_server.store import ScheduleStore

logger = get_logger(__name__)

# Opened on startup; tests swap it through dependency_overrides[get_store]
_store: t.Optional[ScheduleStore] = None


def get_store() -> ScheduleStore:
    global _store
    if _store is None:
        _store = open_store()
    return _store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the schedule store on startup."""
    store = get_store()
    logger.info(f"Timetable service started with {store.__class__.__name__}")
    yield


app = FastAPI(
    title="Timetable Service",
    description="REST API for weekly class slots and single-occurrence edits",
    version="1.0.0",
    lifespan=lifespan,
)


@contextmanager
def _service_errors(action: str) -> t.Iterator[None]:
    """Translate domain failures into HTTP errors."""
    try:
        yield
    except HTTPException:
        raise
    except UnknownPattern as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidTimeRange, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Error {action}: {str(e)}")
    except PartialRelocationFailure as e:
        raise HTTPException(
            status_code=409,
            detail=(
                f"Relocation incomplete: {e.from_date.isoformat()} was suppressed "
                f"but {e.to_date.isoformat()} was not written: {e.cause}"
            ),
        )
    except (StoreReadFailure, StoreWriteFailure) as e:
        raise HTTPException(status_code=503, detail=f"Error {action}: {str(e)}")
    except Exception as e:
        logger.exception(f"Unexpected error {action}")
        raise HTTPException(status_code=500, detail=f"Error {action}: {str(e)}")


def _date(value: t.Optional[str], field: str) -> t.Optional[dt.date]:
    try:
        return parse_date(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid {field}: {value!r}")


def _required_date(value: t.Optional[str], field: str) -> dt.date:
    parsed = _date(value, field)
    if parsed is None:
        raise HTTPException(status_code=422, detail=f"Missing {field}")
    return parsed


def _time(value: t.Optional[str], field: str) -> t.Optional[dt.time]:
    try:
        return parse_time(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid {field}: {value!r}")


def _iso(value: t.Optional[dt.date]) -> t.Optional[str]:
    return value.isoformat() if value else None


def _pattern_model(pattern: Pattern) -> PydanticPattern:
    return PydanticPattern(
        id=pattern.id,
        program_id=pattern.program_id,
        class_id=pattern.class_id,
        day_of_week=pattern.day_of_week,
        start_time=format_time(pattern.start_time),
        end_time=format_time(pattern.end_time),
        start_date=_iso(pattern.start_date),
        end_date=_iso(pattern.end_date),
        position=pattern.position,
    )


def _override_model(override: Override) -> PydanticOverride:
    return PydanticOverride(
        id=override.id,
        pattern_id=override.pattern_id,
        override_date=override.override_date.isoformat(),
        start_time=format_time(override.start_time),
        end_time=format_time(override.end_time),
        is_deleted=override.is_deleted,
        is_inactive=override.is_inactive,
        holiday_active_override=override.holiday_active_override,
    )


def _occurrence_model(occ: Occurrence) -> PydanticOccurrence:
    return PydanticOccurrence(
        id=occ.display_id,
        pattern_id=occ.pattern_id,
        class_id=occ.class_id,
        occurrence_date=occ.occurrence_date.isoformat(),
        start=occ.start.isoformat(),
        end=occ.end.isoformat(),
        override_id=occ.override_id,
        relocated=occ.relocated,
        title=occ.title,
        subject=occ.subject,
        tutor_name=occ.tutor_name,
        is_holiday=occ.is_holiday,
        holiday_name=occ.holiday_name,
        is_inactive=occ.is_inactive,
        active_during_holiday=occ.active_during_holiday,
    )


def _reconciler(store: ScheduleStore) -> Reconciler:
    return Reconciler(store, retry=RetryConfig(max_retries=WRITE_RETRIES))


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "service": "timetable-service"}


# ---- patterns ----

@app.post("/patterns", response_model=PydanticPattern)
def create_pattern(
    request: CreatePatternRequest, store: ScheduleStore = Depends(get_store)
) -> PydanticPattern:
    """Schedule a class into a weekly slot of a program."""
    with _service_errors("creating pattern"):
        pattern = pattern_ops.create_pattern(
            store,
            program_id=request.program_id,
            class_id=request.class_id,
            day_of_week=request.day_of_week,
            start_time=_time(request.start_time, "start_time"),
            end_time=_time(request.end_time, "end_time"),
            start_date=_date(request.start_date, "start_date"),
            end_date=_date(request.end_date, "end_date"),
        )
        return _pattern_model(pattern)


@app.get("/programs/{program_id}/patterns", response_model=list[PydanticPattern])
def list_patterns(
    program_id: str, store: ScheduleStore = Depends(get_store)
) -> list[PydanticPattern]:
    """List a program's slots ordered by weekday and position."""
    with _service_errors("listing patterns"):
        return [_pattern_model(p) for p in store.list_patterns(program_id)]


@app.patch("/patterns/{pattern_id}", response_model=PydanticPattern)
def update_pattern(
    pattern_id: str,
    request: UpdatePatternRequest,
    store: ScheduleStore = Depends(get_store),
) -> PydanticPattern:
    """
    Edit a slot's class, day, times or validity window.

    Only the fields present in the body are changed; an explicit null clears
    an optional field.
    """
    changes: dict[str, t.Any] = {}
    for field, value in request.model_dump(exclude_unset=True).items():
        if field in ("start_time", "end_time"):
            changes[field] = _time(value, field)
        elif field in ("start_date", "end_date"):
            changes[field] = _date(value, field)
        else:
            changes[field] = value
    with _service_errors("updating pattern"):
        pattern = pattern_ops.update_pattern(store, pattern_id, **changes)
        return _pattern_model(pattern)


@app.delete("/patterns/{pattern_id}")
def delete_pattern(pattern_id: str, store: ScheduleStore = Depends(get_store)):
    """Remove a slot together with all of its overrides."""
    with _service_errors("deleting pattern"):
        pattern_ops.delete_pattern(store, pattern_id)
    return {"deleted": pattern_id}


# ---- occurrences ----

@app.get("/programs/{program_id}/occurrences", response_model=list[PydanticOccurrence])
def list_occurrences(
    program_id: str,
    start: str = Query(..., description="First date of the window (YYYY-MM-DD)"),
    end: str = Query(..., description="Last date of the window, inclusive"),
    store: ScheduleStore = Depends(get_store),
) -> list[PydanticOccurrence]:
    """
    Materialize a program's occurrences in [start, end].

    Returns the raw list of occurrences as JSON objects, sorted by start.
    """
    window_start = _required_date(start, "start")
    window_end = _required_date(end, "end")
    with _service_errors("listing occurrences"):
        occurrences = load_occurrences(store, program_id, window_start, window_end)
        return [_occurrence_model(o) for o in occurrences]


@app.get("/programs/{program_id}/occurrences/show", response_model=ShowTimetableResponse)
def show_occurrences(
    program_id: str,
    start: str = Query(...),
    end: str = Query(...),
    store: ScheduleStore = Depends(get_store),
) -> ShowTimetableResponse:
    """
    Show a program's occurrences in a formatted display.

    Returns a table view of the window plus the occurrences it was built from.
    """
    window_start = _required_date(start, "start")
    window_end = _required_date(end, "end")
    with _service_errors("formatting timetable"):
        occurrences = load_occurrences(store, program_id, window_start, window_end)
        return ShowTimetableResponse(
            formatted_timetable=format_occurrences(occurrences),
            occurrences=[_occurrence_model(o) for o in occurrences],
        )


@app.post("/occurrences/retime", response_model=PydanticOverride)
def retime_occurrence(
    request: RetimeOccurrenceRequest, store: ScheduleStore = Depends(get_store)
) -> PydanticOverride:
    """Change the times of a single occurrence; the series is left alone."""
    on_date = _required_date(request.date, "date")
    start_time = _time(request.start_time, "start_time")
    end_time = _time(request.end_time, "end_time")
    with _service_errors("retiming occurrence"):
        override = _reconciler(store).retime_occurrence(
            request.pattern_id,
            on_date,
            start_time,
            end_time,
            active_during_holiday=request.active_during_holiday,
        )
        return _override_model(override)


@app.post("/occurrences/relocate", response_model=RelocationResponse)
def relocate_occurrence(
    request: RelocateOccurrenceRequest, store: ScheduleStore = Depends(get_store)
) -> RelocationResponse:
    """Move a single occurrence to another date and, optionally, other times."""
    from_date = _required_date(request.from_date, "from_date")
    to_date = _required_date(request.to_date, "to_date")
    start_time = _time(request.start_time, "start_time")
    end_time = _time(request.end_time, "end_time")
    with _service_errors("relocating occurrence"):
        result = _reconciler(store).relocate_occurrence(
            request.pattern_id,
            from_date,
            to_date,
            start_time,
            end_time,
            active_during_holiday=request.active_during_holiday,
        )
        return RelocationResponse(
            suppressed=_override_model(result.suppressed) if result.suppressed else None,
            materialized=_override_model(result.materialized),
        )


@app.post("/occurrences/delete", response_model=PydanticOverride)
def delete_occurrence(
    request: DeleteOccurrenceRequest, store: ScheduleStore = Depends(get_store)
) -> PydanticOverride:
    """Suppress a single occurrence; every other date of the series is kept."""
    on_date = _required_date(request.date, "date")
    with _service_errors("deleting occurrence"):
        override = _reconciler(store).delete_occurrence(request.pattern_id, on_date)
        return _override_model(override)


# ---- holidays / classes ----

@app.post("/holidays", response_model=PydanticHoliday)
def add_holiday(
    request: CreateHolidayRequest, store: ScheduleStore = Depends(get_store)
) -> PydanticHoliday:
    """Mark a date as a holiday; classes on it become inactive unless kept active."""
    holiday = Holiday(date=_required_date(request.date, "date"), name=request.name)
    with _service_errors("adding holiday"):
        store.add_holiday(holiday)
    return PydanticHoliday(date=holiday.date.isoformat(), name=holiday.name)


@app.get("/holidays", response_model=list[PydanticHoliday])
def list_holidays(
    start: t.Optional[str] = None,
    end: t.Optional[str] = None,
    store: ScheduleStore = Depends(get_store),
) -> list[PydanticHoliday]:
    """List holidays, optionally limited to [start, end]."""
    window_start = _date(start, "start")
    window_end = _date(end, "end")
    with _service_errors("listing holidays"):
        holidays = store.list_holidays(window_start, window_end)
    return [PydanticHoliday(date=h.date.isoformat(), name=h.name) for h in holidays]


@app.put("/classes/{class_id}", response_model=PydanticClassInfo)
def put_class(
    class_id: str, request: PutClassRequest, store: ScheduleStore = Depends(get_store)
) -> PydanticClassInfo:
    """Create or replace the display metadata of a class."""
    info = ClassInfo(
        id=class_id,
        title=request.title,
        subject=request.subject,
        tutor_name=request.tutor_name,
    )
    with _service_errors("saving class"):
        store.put_class(info)
    return PydanticClassInfo(**request.model_dump(), id=class_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8004)
