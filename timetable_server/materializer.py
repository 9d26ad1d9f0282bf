"""
Occurrence materializer.

Expands weekly patterns plus their single-date overrides into the concrete
occurrences of a visible date window. Pure and synchronous: it only reads its
arguments, so it is safe to call concurrently and to cache.
"""
from __future__ import annotations

import datetime as dt
import functools
import typing as t
from dataclasses import dataclass

from timetable_server import dates
from timetable_server.errors import ConfigurationIncomplete
from timetable_server.logger import get_logger
from timetable_server.models import ClassInfo, Holiday, Occurrence, Override, Pattern

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Slot:
    """A fully configured pattern: weekday index and default times."""
    pattern: Pattern
    weekday: int
    start_time: dt.time
    end_time: dt.time


def resolve_slot(pattern: Pattern) -> _Slot:
    """Return the configured slot of a pattern or raise ConfigurationIncomplete."""
    missing = []
    weekday = dates.weekday_index(pattern.day_of_week)
    if weekday is None:
        missing.append("day_of_week")
    if pattern.start_time is None:
        missing.append("start_time")
    if pattern.end_time is None:
        missing.append("end_time")
    if missing:
        raise ConfigurationIncomplete(pattern.id, missing)
    return _Slot(pattern, weekday, pattern.start_time, pattern.end_time)


def materialize(
    patterns: t.Iterable[Pattern],
    overrides: t.Iterable[Override],
    window_start: dt.date,
    window_end: dt.date,
    *,
    holidays: t.Optional[t.Iterable[Holiday]] = None,
    classes: t.Optional[t.Mapping[str, ClassInfo]] = None,
) -> list[Occurrence]:
    """Expand patterns and overrides into the occurrences of [window_start, window_end].

    Both bounds are inclusive calendar dates.

    :param patterns: Recurrence rules to expand.
    :param overrides: Overrides of those patterns (others are ignored).
    :param window_start: First visible date.
    :param window_end: Last visible date.
    :param holidays: Closed days; occurrences on them are flagged inactive
        unless their override keeps them active.
    :param classes: Class metadata by id. When given, patterns whose class is
        unknown are skipped.
    :return: Occurrences sorted by start time, then pattern id.
    """
    holiday_names: dict[dt.date, t.Optional[str]] = {
        h.date: h.name for h in (holidays or ())
    }

    override_map: dict[tuple[str, dt.date], Override] = {}
    for ov in overrides:
        override_map[(ov.pattern_id, ov.override_date)] = ov

    slots: dict[str, _Slot] = {}
    for pattern in patterns:
        if classes is not None and pattern.class_id not in classes:
            logger.debug(f"Skipping pattern {pattern.id}: unknown class {pattern.class_id}")
            continue
        try:
            slots[pattern.id] = resolve_slot(pattern)
        except ConfigurationIncomplete as e:
            logger.debug(f"Skipping pattern: {e}")

    out: list[Occurrence] = []
    consumed: set[str] = set()

    # 1) pattern-based occurrences
    for slot in slots.values():
        pattern = slot.pattern
        effective = dates.intersect(pattern.start_date, pattern.end_date, window_start, window_end)
        if effective is None:
            continue

        for day in dates.weekly_dates(effective[0], effective[1], slot.weekday):
            override = override_map.get((pattern.id, day))
            if override is not None:
                consumed.add(override.id)
                if override.is_deleted:
                    continue
            out.append(
                _build_occurrence(slot, day, override, holiday_names, classes, relocated=False)
            )

    # 2) overrides placing a single occurrence outside the weekly cycle
    for override in override_map.values():
        if override.id in consumed or override.is_deleted:
            continue
        if not window_start <= override.override_date <= window_end:
            continue
        slot = slots.get(override.pattern_id)
        if slot is None:
            continue
        out.append(
            _build_occurrence(
                slot, override.override_date, override, holiday_names, classes, relocated=True
            )
        )

    out.sort(key=lambda o: (o.start, o.pattern_id))
    return out


def _build_occurrence(
    slot: _Slot,
    day: dt.date,
    override: t.Optional[Override],
    holiday_names: dict[dt.date, t.Optional[str]],
    classes: t.Optional[t.Mapping[str, ClassInfo]],
    relocated: bool,
) -> Occurrence:
    start_time = slot.start_time
    end_time = slot.end_time
    manual_inactive = False
    holiday_active = False
    if override is not None:
        if override.start_time is not None:
            start_time = override.start_time
        if override.end_time is not None:
            end_time = override.end_time
        manual_inactive = override.is_inactive
        holiday_active = override.holiday_active_override

    is_holiday = day in holiday_names
    cls = classes.get(slot.pattern.class_id) if classes is not None else None

    return Occurrence(
        pattern_id=slot.pattern.id,
        class_id=slot.pattern.class_id,
        occurrence_date=day,
        start=dates.combine(day, start_time),
        end=dates.combine(day, end_time),
        override_id=override.id if override is not None else None,
        relocated=relocated,
        title=cls.title if cls else "",
        subject=cls.subject if cls else None,
        tutor_name=cls.tutor_name if cls else None,
        is_holiday=is_holiday,
        holiday_name=holiday_names.get(day),
        is_inactive=manual_inactive or (is_holiday and not holiday_active),
        active_during_holiday=is_holiday and holiday_active and not manual_inactive,
    )


@functools.lru_cache(maxsize=128)
def _materialize_frozen(
    patterns: tuple[Pattern, ...],
    overrides: tuple[Override, ...],
    window_start: dt.date,
    window_end: dt.date,
    holidays: tuple[Holiday, ...],
    classes: t.Optional[tuple[tuple[str, ClassInfo], ...]],
) -> tuple[Occurrence, ...]:
    return tuple(
        materialize(
            patterns,
            overrides,
            window_start,
            window_end,
            holidays=holidays,
            classes=dict(classes) if classes is not None else None,
        )
    )


def materialize_cached(
    patterns: t.Iterable[Pattern],
    overrides: t.Iterable[Override],
    window_start: dt.date,
    window_end: dt.date,
    *,
    holidays: t.Optional[t.Iterable[Holiday]] = None,
    classes: t.Optional[t.Mapping[str, ClassInfo]] = None,
) -> list[Occurrence]:
    """Same as materialize(), memoized on the window and the (frozen) inputs."""
    return list(
        _materialize_frozen(
            tuple(patterns),
            tuple(overrides),
            window_start,
            window_end,
            tuple(holidays or ()),
            tuple(sorted(classes.items())) if classes is not None else None,
        )
    )
