# -*- coding: utf-8 -*-
"""Loading a program's timetable from a store and formatting it for display."""
from __future__ import annotations

import datetime as dt

from timetable_server.materializer import materialize_cached
from timetable_server.models import Occurrence
from timetable_server.store import ScheduleStore


def load_occurrences(
    store: ScheduleStore,
    program_id: str,
    window_start: dt.date,
    window_end: dt.date,
) -> list[Occurrence]:
    """Fetch a program's patterns and overrides and materialize the window.

    Repeated reads of an unchanged window are served from the materializer cache.

    Class metadata is only enforced when the store knows at least one class;
    otherwise occurrences carry no title.
    """
    patterns = store.list_patterns(program_id)
    overrides = store.list_overrides([p.id for p in patterns])
    holidays = store.list_holidays(window_start, window_end)
    classes = store.list_classes()
    return materialize_cached(
        patterns,
        overrides,
        window_start,
        window_end,
        holidays=holidays,
        classes=classes or None,
    )


def _format_datetime(value: dt.datetime) -> str:
    """Format like 'Tue 1/14 10:00 AM'."""
    return value.strftime("%a %-m/%-d %-I:%M %p")


def format_occurrences(occurrences: list[Occurrence]) -> str:
    """Format occurrences as a clean table."""
    if not occurrences:
        return "📅 No classes scheduled."

    lines = []
    lines.append("📅 TIMETABLE")
    lines.append("=" * 100)
    lines.append(f"{'#':<4} {'Class':<30} {'Start':<18} {'End':<10} {'Tutor':<20} {'Notes':<14}")
    lines.append("-" * 100)

    for idx, occ in enumerate(occurrences, 1):
        title = occ.title or occ.class_id
        title = title[:29] if len(title) > 29 else title
        tutor = occ.tutor_name[:19] if occ.tutor_name and len(occ.tutor_name) > 19 else (occ.tutor_name or "—")
        notes = []
        if occ.relocated:
            notes.append("moved")
        elif occ.override_id:
            notes.append("edited")
        if occ.is_inactive:
            notes.append("inactive")
        elif occ.active_during_holiday:
            notes.append("holiday")
        lines.append(
            f"{idx:<4} {title:<30} {_format_datetime(occ.start):<18} "
            f"{occ.end.strftime('%-I:%M %p'):<10} {tutor:<20} {', '.join(notes) or '—':<14}"
        )

    lines.append("=" * 100)
    lines.append(f"Total: {len(occurrences)} class(es)")
    return "\n".join(lines)
