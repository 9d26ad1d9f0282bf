# -*- coding: utf-8 -*-
"""
Store interface for patterns, overrides, holidays and class metadata.

There is at most one override per (pattern id, override date). The
reconciler writes overrides through upsert_override(), which implementations
must make atomic on that natural key: concurrent upserts of the same key
leave one row holding the last write.
"""
from __future__ import annotations

import datetime as dt
import threading
import typing as t
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace

from timetable_server.dates import weekday_index
from timetable_server.errors import StoreWriteFailure
from timetable_server.models import ClassInfo, Holiday, Override, Pattern


def pattern_sort_key(pattern: Pattern) -> tuple[int, int, str]:
    idx = weekday_index(pattern.day_of_week)
    return (7 if idx is None else idx, pattern.position, pattern.id)


class ScheduleStore(ABC):
    """Abstract Pattern Store + Override Store."""

    # Subclasses set this when transaction() makes grouped writes atomic
    transactional: bool = False

    # ---- patterns ----
    @abstractmethod
    def list_patterns(self, program_id: str) -> list[Pattern]:
        ...

    @abstractmethod
    def get_pattern(self, pattern_id: str) -> t.Optional[Pattern]:
        ...

    @abstractmethod
    def insert_pattern(self, pattern: Pattern) -> Pattern:
        ...

    @abstractmethod
    def update_pattern(self, pattern: Pattern) -> Pattern:
        ...

    @abstractmethod
    def delete_pattern(self, pattern_id: str) -> None:
        """Remove a pattern together with all of its overrides."""
        ...

    # ---- overrides ----
    @abstractmethod
    def list_overrides(self, pattern_ids: t.Iterable[str]) -> list[Override]:
        ...

    @abstractmethod
    def find_override(self, pattern_id: str, override_date: dt.date) -> t.Optional[Override]:
        ...

    @abstractmethod
    def insert_override(self, override: Override) -> Override:
        ...

    @abstractmethod
    def update_override(self, override: Override) -> Override:
        ...

    @abstractmethod
    def upsert_override(self, override: Override) -> Override:
        """Write an override keyed by (pattern id, override date).

        An existing row for the key keeps its id and takes the new values.
        Returns the stored override.
        """
        ...

    # ---- holidays / classes ----
    @abstractmethod
    def list_holidays(
        self, start: t.Optional[dt.date] = None, end: t.Optional[dt.date] = None
    ) -> list[Holiday]:
        ...

    @abstractmethod
    def add_holiday(self, holiday: Holiday) -> Holiday:
        ...

    @abstractmethod
    def list_classes(self) -> dict[str, ClassInfo]:
        ...

    @abstractmethod
    def put_class(self, info: ClassInfo) -> ClassInfo:
        ...

    # ---- lifecycle ----
    @contextmanager
    def transaction(self) -> t.Iterator[None]:
        """Group writes. The base implementation gives no atomicity."""
        yield


class InMemoryStore(ScheduleStore):
    """Process-local store.

    Safe to share between threads: every call, and every transaction()
    block as a whole, holds one re-entrant lock. In a real deployment this is
    replaced by SQLiteStore or another persistent implementation.
    """

    transactional = True

    def __init__(self) -> None:
        self.patterns: dict[str, Pattern] = {}
        self.overrides: dict[str, Override] = {}
        self.holidays: dict[dt.date, Holiday] = {}
        self.classes: dict[str, ClassInfo] = {}
        self._lock = threading.RLock()
        self._depth = 0

    def list_patterns(self, program_id: str) -> list[Pattern]:
        with self._lock:
            return sorted(
                (p for p in self.patterns.values() if p.program_id == program_id),
                key=pattern_sort_key,
            )

    def get_pattern(self, pattern_id: str) -> t.Optional[Pattern]:
        with self._lock:
            return self.patterns.get(pattern_id)

    def insert_pattern(self, pattern: Pattern) -> Pattern:
        with self._lock:
            self.patterns[pattern.id] = pattern
        return pattern

    def update_pattern(self, pattern: Pattern) -> Pattern:
        with self._lock:
            if pattern.id not in self.patterns:
                raise StoreWriteFailure(f"Pattern {pattern.id} does not exist")
            self.patterns[pattern.id] = pattern
        return pattern

    def delete_pattern(self, pattern_id: str) -> None:
        with self._lock:
            self.patterns.pop(pattern_id, None)
            for override_id in [o.id for o in self.overrides.values() if o.pattern_id == pattern_id]:
                del self.overrides[override_id]

    def list_overrides(self, pattern_ids: t.Iterable[str]) -> list[Override]:
        wanted = set(pattern_ids)
        with self._lock:
            return [o for o in self.overrides.values() if o.pattern_id in wanted]

    def find_override(self, pattern_id: str, override_date: dt.date) -> t.Optional[Override]:
        with self._lock:
            for override in self.overrides.values():
                if override.pattern_id == pattern_id and override.override_date == override_date:
                    return override
        return None

    def insert_override(self, override: Override) -> Override:
        with self._lock:
            self.overrides[override.id] = override
        return override

    def update_override(self, override: Override) -> Override:
        with self._lock:
            if override.id not in self.overrides:
                raise StoreWriteFailure(f"Override {override.id} does not exist")
            self.overrides[override.id] = override
        return override

    def upsert_override(self, override: Override) -> Override:
        with self._lock:
            existing = self.find_override(override.pattern_id, override.override_date)
            if existing is None:
                return self.insert_override(override)
            return self.update_override(replace(override, id=existing.id))

    def list_holidays(
        self, start: t.Optional[dt.date] = None, end: t.Optional[dt.date] = None
    ) -> list[Holiday]:
        with self._lock:
            return sorted(
                (
                    h for h in self.holidays.values()
                    if (start is None or h.date >= start) and (end is None or h.date <= end)
                ),
                key=lambda h: h.date,
            )

    def add_holiday(self, holiday: Holiday) -> Holiday:
        with self._lock:
            self.holidays[holiday.date] = holiday
        return holiday

    def list_classes(self) -> dict[str, ClassInfo]:
        with self._lock:
            return dict(self.classes)

    def put_class(self, info: ClassInfo) -> ClassInfo:
        with self._lock:
            self.classes[info.id] = info
        return info

    @contextmanager
    def transaction(self) -> t.Iterator[None]:
        """Snapshot the tables and restore them if the block raises.

        Other threads wait for the whole block, so a rollback never
        overwrites their writes.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = (dict(self.patterns), dict(self.overrides), dict(self.holidays), dict(self.classes))
            self._depth = 1
            try:
                yield
            except BaseException:
                self.patterns, self.overrides, self.holidays, self.classes = snapshot
                raise
            finally:
                self._depth = 0


# Default store used by the local MCP server
default_store = InMemoryStore()
