"""
Reconciliation engine.

Turns single-occurrence edits into override writes. Every write is one
upsert on the natural key (pattern id, override date), made atomic by the
store; concurrent writes to the same key leave a single row holding the last
write. Patterns are never touched.

Per (pattern, date) slot the override moves between three states:

    absent  -> active    retime / relocate (destination)
    absent  -> deleted   delete / relocate (origin)
    active  -> active    retime
    active  -> deleted   delete / relocate (origin)
    deleted -> active    retime / relocate (destination)

No transition removes a row; only deleting the pattern does.
"""
from __future__ import annotations

import datetime as dt
import random
import time
import typing as t
import uuid
from dataclasses import dataclass, replace

from timetable_server.errors import (
    InvalidTimeRange,
    PartialRelocationFailure,
    StoreReadFailure,
    StoreWriteFailure,
    UnknownPattern,
)
from timetable_server.logger import get_logger
from timetable_server.models import Override, Pattern
from timetable_server.store import ScheduleStore

logger = get_logger(__name__)

T = t.TypeVar("T")

_SUPPRESS = {
    "is_deleted": True,
    "start_time": None,
    "end_time": None,
    "is_inactive": False,
    "holiday_active_override": False,
}


@dataclass
class RetryConfig:
    """Retry policy for transient store write failures."""

    max_retries: int = 2
    base_delay: float = 0.05  # seconds
    max_delay: float = 1.0  # seconds
    exponential_base: float = 2.0


def retry_with_backoff(func: t.Callable[[], T], config: RetryConfig) -> T:
    """Run func, retrying transient StoreWriteFailure with exponential backoff and jitter."""
    for attempt in range(config.max_retries + 1):
        try:
            return func()
        except StoreWriteFailure as e:
            if not e.transient or attempt >= config.max_retries:
                raise
            delay = min(config.base_delay * (config.exponential_base**attempt), config.max_delay)
            delay += random.uniform(0, delay * 0.1)
            logger.warning(f"Attempt {attempt + 1} failed: {e}. Retrying in {delay:.2f}s")
            time.sleep(delay)
    raise RuntimeError("All retries exhausted with no captured exception")


@dataclass(frozen=True)
class RelocationResult:
    """Overrides written by a relocation. ``suppressed`` is None for same-date moves."""
    suppressed: t.Optional[Override]
    materialized: Override


class Reconciler:
    """Applies retime / relocate / delete of single occurrences to a store."""

    def __init__(
        self,
        store: ScheduleStore,
        retry: t.Optional[RetryConfig] = None,
        id_factory: t.Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.store = store
        self.retry = retry or RetryConfig()
        self.id_factory = id_factory

    # ---- public operations ----
    def retime_occurrence(
        self,
        pattern_id: str,
        on_date: dt.date,
        start_time: t.Optional[dt.time],
        end_time: t.Optional[dt.time],
        *,
        active_during_holiday: t.Optional[bool] = None,
    ) -> Override:
        """Give one occurrence new times, leaving the series alone.

        Absent times fall back to the pattern's own times when materialized.
        Repeating the call with the same arguments leaves the same state.
        """
        pattern = self._require_pattern(pattern_id)
        _check_times(pattern, start_time, end_time)
        fields = self._active_fields(on_date, start_time, end_time, active_during_holiday)
        override = self._upsert(pattern_id, on_date, fields)
        logger.info(f"Retimed pattern {pattern_id} on {on_date.isoformat()} (override {override.id})")
        return override

    def relocate_occurrence(
        self,
        pattern_id: str,
        from_date: dt.date,
        to_date: dt.date,
        start_time: t.Optional[dt.time],
        end_time: t.Optional[dt.time],
        *,
        active_during_holiday: t.Optional[bool] = None,
    ) -> RelocationResult:
        """Move one occurrence to another date (and time).

        Suppresses ``from_date`` and materializes ``to_date``. On a
        transactional store both writes commit or roll back together; on
        other stores a failure of the second write raises
        PartialRelocationFailure.
        """
        if from_date == to_date:
            materialized = self.retime_occurrence(
                pattern_id,
                to_date,
                start_time,
                end_time,
                active_during_holiday=active_during_holiday,
            )
            return RelocationResult(suppressed=None, materialized=materialized)

        pattern = self._require_pattern(pattern_id)
        _check_times(pattern, start_time, end_time)

        if self.store.transactional:
            with self.store.transaction():
                fields = self._active_fields(to_date, start_time, end_time, active_during_holiday)
                suppressed = self._upsert(pattern_id, from_date, _SUPPRESS)
                materialized = self._upsert(pattern_id, to_date, fields)
        else:
            fields = self._active_fields(to_date, start_time, end_time, active_during_holiday)
            suppressed = self._upsert(pattern_id, from_date, _SUPPRESS)
            try:
                materialized = self._upsert(pattern_id, to_date, fields)
            except (StoreReadFailure, StoreWriteFailure) as e:
                logger.error(
                    f"Relocation of pattern {pattern_id} stopped after suppressing "
                    f"{from_date.isoformat()}: {e}"
                )
                raise PartialRelocationFailure(pattern_id, from_date, to_date, suppressed, e) from e

        logger.info(
            f"Relocated pattern {pattern_id} from {from_date.isoformat()} to {to_date.isoformat()}"
        )
        return RelocationResult(suppressed=suppressed, materialized=materialized)

    def delete_occurrence(self, pattern_id: str, on_date: dt.date) -> Override:
        """Suppress one occurrence; every other date of the series is kept."""
        self._require_pattern(pattern_id)
        override = self._upsert(pattern_id, on_date, _SUPPRESS)
        logger.info(f"Deleted occurrence of pattern {pattern_id} on {on_date.isoformat()}")
        return override

    # ---- helpers ----
    def _require_pattern(self, pattern_id: str) -> Pattern:
        pattern = self.store.get_pattern(pattern_id)
        if pattern is None:
            raise UnknownPattern(pattern_id)
        return pattern

    def _active_fields(
        self,
        on_date: dt.date,
        start_time: t.Optional[dt.time],
        end_time: t.Optional[dt.time],
        active_during_holiday: t.Optional[bool],
    ) -> dict[str, t.Any]:
        is_holiday = bool(self.store.list_holidays(on_date, on_date))
        if active_during_holiday is None:
            # moving a class onto a holiday means it is held anyway
            holiday_active = is_holiday
        else:
            holiday_active = is_holiday and active_during_holiday
        return {
            "is_deleted": False,
            "start_time": start_time,
            "end_time": end_time,
            "is_inactive": False,
            "holiday_active_override": holiday_active,
        }

    def _upsert(self, pattern_id: str, on_date: dt.date, fields: dict[str, t.Any]) -> Override:
        existing = self.store.find_override(pattern_id, on_date)
        if existing is not None and replace(existing, **fields) == existing:
            return existing

        override = Override(
            id=existing.id if existing is not None else self.id_factory(),
            pattern_id=pattern_id,
            override_date=on_date,
            **fields,
        )
        return retry_with_backoff(lambda: self.store.upsert_override(override), self.retry)


def _check_times(
    pattern: Pattern, start_time: t.Optional[dt.time], end_time: t.Optional[dt.time]
) -> None:
    """Check the times the occurrence will show, filling absent sides from the pattern."""
    start = start_time if start_time is not None else pattern.start_time
    end = end_time if end_time is not None else pattern.end_time
    if start is not None and end is not None and start >= end:
        raise InvalidTimeRange(
            f"Start time {start.isoformat()} must be before end time {end.isoformat()}"
        )
