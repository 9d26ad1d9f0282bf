"""
Exceptions raised by the timetable engine.

Absence of an override is never an error: the reconciler treats it as the
"create" branch of an upsert.
"""
from __future__ import annotations

import datetime as dt
import typing as t

if t.TYPE_CHECKING:
    from timetable_server.models import Override


class ScheduleError(RuntimeError):
    """Base class for every timetable engine failure."""


class ConfigurationIncomplete(ScheduleError):
    """A pattern is missing its weekday or one of its times."""

    def __init__(self, pattern_id: str, missing: list[str]) -> None:
        self.pattern_id = pattern_id
        self.missing = missing
        super().__init__(
            f"Pattern {pattern_id} is not fully configured (missing: {', '.join(missing)})"
        )


class UnknownPattern(ScheduleError, LookupError):
    """The referenced pattern does not exist in the store."""

    def __init__(self, pattern_id: str) -> None:
        self.pattern_id = pattern_id
        super().__init__(f"Pattern {pattern_id} not found")


class InvalidTimeRange(ScheduleError, ValueError):
    """A start/end pair is inverted or empty."""


class StoreReadFailure(ScheduleError):
    """The backing store could not be read."""


class StoreWriteFailure(ScheduleError):
    """The backing store rejected or could not apply a write."""

    def __init__(self, message: str, transient: bool = False) -> None:
        self.transient = transient
        super().__init__(message)


class PartialRelocationFailure(ScheduleError):
    """The old date was suppressed but the new date could not be written.

    Retrying the same relocation is safe: both halves are upserts on their
    natural key.
    """

    def __init__(
        self,
        pattern_id: str,
        from_date: dt.date,
        to_date: dt.date,
        suppressed: "Override",
        cause: BaseException,
    ) -> None:
        self.pattern_id = pattern_id
        self.from_date = from_date
        self.to_date = to_date
        self.suppressed = suppressed
        self.cause = cause
        super().__init__(
            f"Relocation of pattern {pattern_id} from {from_date.isoformat()} "
            f"to {to_date.isoformat()} is incomplete: the old date is suppressed "
            f"but the new date was not written ({cause})"
        )
