# -*- coding: utf-8 -*-
"""Environment-driven settings shared by the servers and the CLI."""
from __future__ import annotations

import os
import typing as t

from timetable_server.sqlite_store import SQLiteStore
from timetable_server.store import InMemoryStore, ScheduleStore

# SQLite file backing the timetable; empty means a process-local in-memory store
DB_PATH = os.getenv("TIMETABLE_DB_PATH", "")

# Attempts for transient store write failures (first try + retries)
WRITE_RETRIES = int(os.getenv("TIMETABLE_WRITE_RETRIES", "2"))


def open_store(db_path: t.Optional[str] = None) -> ScheduleStore:
    """Open the configured store: SQLite when a path is known, else in-memory."""
    path = db_path if db_path is not None else DB_PATH
    if path:
        return SQLiteStore(path)
    return InMemoryStore()
