"""
SQLite-backed schedule store.

Provides the same interface as InMemoryStore on top of sqlite3. Every call
opens its own connection unless a transaction() block is active on the
current thread, in which case the block's connection is reused and committed
(or rolled back) once at the end. transaction() starts with BEGIN IMMEDIATE,
so reads inside the block already hold the write lock.
"""
from __future__ import annotations

import datetime as dt
import sqlite3
import threading
import typing as t
from contextlib import contextmanager
from pathlib import Path

from timetable_server.dates import format_time, parse_date, parse_time
from timetable_server.errors import StoreReadFailure, StoreWriteFailure
from timetable_server.logger import get_logger
from timetable_server.models import ClassInfo, Holiday, Override, Pattern
from timetable_server.store import ScheduleStore, pattern_sort_key

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS program_items (
    id TEXT PRIMARY KEY,
    program_id TEXT NOT NULL,
    class_id TEXT NOT NULL,
    day_of_week TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    start_time TEXT,
    end_time TEXT,
    start_date TEXT,
    end_date TEXT
);
CREATE INDEX IF NOT EXISTS idx_program_items_program ON program_items (program_id);

CREATE TABLE IF NOT EXISTS program_item_overrides (
    id TEXT PRIMARY KEY,
    program_item_id TEXT NOT NULL,
    override_date TEXT NOT NULL,
    start_time TEXT,
    end_time TEXT,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    is_inactive INTEGER NOT NULL DEFAULT 0,
    holiday_active_override INTEGER NOT NULL DEFAULT 0
);
DROP INDEX IF EXISTS idx_overrides_item_date;
CREATE UNIQUE INDEX IF NOT EXISTS uq_overrides_item_date
    ON program_item_overrides (program_item_id, override_date);

CREATE TABLE IF NOT EXISTS holidays (
    date TEXT PRIMARY KEY,
    name TEXT
);

CREATE TABLE IF NOT EXISTS classes (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    subject TEXT,
    tutor_name TEXT
);
"""


class SQLiteStore(ScheduleStore):
    """
    Schedule store persisted in a SQLite file.

    Args:
        db_path: Path to the SQLite database file; created if missing.
    """

    transactional = True

    def __init__(self, db_path: t.Union[str, Path]) -> None:
        self.db_path = Path(db_path)
        self._local = threading.local()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_conn() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"Initialized {self.__class__.__name__} with db_path: {self.db_path}")

    # ---- connection handling ----
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _get_conn(self) -> t.Iterator[sqlite3.Connection]:
        """Yield the active transaction connection, or a fresh one."""
        tx_conn = getattr(self._local, "conn", None)
        if tx_conn is not None:
            yield tx_conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> t.Iterator[None]:
        if getattr(self._local, "conn", None) is not None:
            yield
            return

        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            conn.close()
            raise self._write_failure("BEGIN IMMEDIATE", (), e) from e

        self._local.conn = conn
        try:
            yield
        except BaseException:
            conn.rollback()
            raise
        else:
            try:
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise self._write_failure("COMMIT", (), e) from e
        finally:
            self._local.conn = None
            conn.close()

    def _in_transaction(self) -> bool:
        return getattr(self._local, "conn", None) is not None

    def _read(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            with self._get_conn() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Database error in {self.__class__.__name__}: {e}")
            logger.error(f"Query: {query}")
            logger.error(f"Params: {params}")
            raise StoreReadFailure(f"Could not read from {self.db_path}: {e}") from e

    def _write(self, query: str, params: tuple = ()) -> int:
        try:
            with self._get_conn() as conn:
                cursor = conn.execute(query, params)
                if not self._in_transaction():
                    conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            raise self._write_failure(query, params, e) from e

    def _write_failure(self, query: str, params: tuple, error: sqlite3.Error) -> StoreWriteFailure:
        logger.error(f"Database error in {self.__class__.__name__}: {error}")
        logger.error(f"Query: {query}")
        logger.error(f"Params: {params}")
        transient = isinstance(error, sqlite3.OperationalError) and "locked" in str(error).lower()
        return StoreWriteFailure(f"Could not write to {self.db_path}: {error}", transient=transient)

    # ---- row conversion ----
    @staticmethod
    def _row_to_pattern(row: sqlite3.Row) -> Pattern:
        return Pattern(
            id=row["id"],
            program_id=row["program_id"],
            class_id=row["class_id"],
            day_of_week=row["day_of_week"],
            start_time=parse_time(row["start_time"]),
            end_time=parse_time(row["end_time"]),
            start_date=parse_date(row["start_date"]),
            end_date=parse_date(row["end_date"]),
            position=row["position"] or 0,
        )

    @staticmethod
    def _row_to_override(row: sqlite3.Row) -> Override:
        return Override(
            id=row["id"],
            pattern_id=row["program_item_id"],
            override_date=parse_date(row["override_date"]),
            start_time=parse_time(row["start_time"]),
            end_time=parse_time(row["end_time"]),
            is_deleted=bool(row["is_deleted"]),
            is_inactive=bool(row["is_inactive"]),
            holiday_active_override=bool(row["holiday_active_override"]),
        )

    @staticmethod
    def _pattern_params(pattern: Pattern) -> tuple:
        return (
            pattern.program_id,
            pattern.class_id,
            pattern.day_of_week,
            pattern.position,
            format_time(pattern.start_time),
            format_time(pattern.end_time),
            pattern.start_date.isoformat() if pattern.start_date else None,
            pattern.end_date.isoformat() if pattern.end_date else None,
        )

    @staticmethod
    def _override_params(override: Override) -> tuple:
        return (
            override.pattern_id,
            override.override_date.isoformat(),
            format_time(override.start_time),
            format_time(override.end_time),
            int(override.is_deleted),
            int(override.is_inactive),
            int(override.holiday_active_override),
        )

    # ---- patterns ----
    def list_patterns(self, program_id: str) -> list[Pattern]:
        rows = self._read(
            "SELECT * FROM program_items WHERE program_id = ? ORDER BY position, id",
            (program_id,),
        )
        patterns = [self._row_to_pattern(row) for row in rows]
        return sorted(patterns, key=pattern_sort_key)

    def get_pattern(self, pattern_id: str) -> t.Optional[Pattern]:
        rows = self._read("SELECT * FROM program_items WHERE id = ?", (pattern_id,))
        return self._row_to_pattern(rows[0]) if rows else None

    def insert_pattern(self, pattern: Pattern) -> Pattern:
        self._write(
            """
            INSERT INTO program_items
                (program_id, class_id, day_of_week, position,
                 start_time, end_time, start_date, end_date, id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._pattern_params(pattern) + (pattern.id,),
        )
        return pattern

    def update_pattern(self, pattern: Pattern) -> Pattern:
        changed = self._write(
            """
            UPDATE program_items
            SET program_id = ?, class_id = ?, day_of_week = ?, position = ?,
                start_time = ?, end_time = ?, start_date = ?, end_date = ?
            WHERE id = ?
            """,
            self._pattern_params(pattern) + (pattern.id,),
        )
        if changed == 0:
            raise StoreWriteFailure(f"Pattern {pattern.id} does not exist")
        return pattern

    def delete_pattern(self, pattern_id: str) -> None:
        with self.transaction():
            self._write(
                "DELETE FROM program_item_overrides WHERE program_item_id = ?", (pattern_id,)
            )
            self._write("DELETE FROM program_items WHERE id = ?", (pattern_id,))

    # ---- overrides ----
    def list_overrides(self, pattern_ids: t.Iterable[str]) -> list[Override]:
        ids = list(pattern_ids)
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self._read(
            f"SELECT * FROM program_item_overrides WHERE program_item_id IN ({placeholders})",
            tuple(ids),
        )
        return [self._row_to_override(row) for row in rows]

    def find_override(self, pattern_id: str, override_date: dt.date) -> t.Optional[Override]:
        rows = self._read(
            """
            SELECT * FROM program_item_overrides
            WHERE program_item_id = ? AND override_date = ?
            ORDER BY rowid
            LIMIT 1
            """,
            (pattern_id, override_date.isoformat()),
        )
        return self._row_to_override(rows[0]) if rows else None

    def insert_override(self, override: Override) -> Override:
        self._write(
            """
            INSERT INTO program_item_overrides
                (program_item_id, override_date, start_time, end_time,
                 is_deleted, is_inactive, holiday_active_override, id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._override_params(override) + (override.id,),
        )
        return override

    def update_override(self, override: Override) -> Override:
        changed = self._write(
            """
            UPDATE program_item_overrides
            SET program_item_id = ?, override_date = ?, start_time = ?, end_time = ?,
                is_deleted = ?, is_inactive = ?, holiday_active_override = ?
            WHERE id = ?
            """,
            self._override_params(override) + (override.id,),
        )
        if changed == 0:
            raise StoreWriteFailure(f"Override {override.id} does not exist")
        return override

    def upsert_override(self, override: Override) -> Override:
        # The IMMEDIATE transaction holds the write lock across both statements
        with self.transaction():
            changed = self._write(
                """
                UPDATE program_item_overrides
                SET start_time = ?, end_time = ?,
                    is_deleted = ?, is_inactive = ?, holiday_active_override = ?
                WHERE program_item_id = ? AND override_date = ?
                """,
                self._override_params(override)[2:]
                + (override.pattern_id, override.override_date.isoformat()),
            )
            if changed == 0:
                self.insert_override(override)
            stored = self.find_override(override.pattern_id, override.override_date)
        return stored

    # ---- holidays / classes ----
    def list_holidays(
        self, start: t.Optional[dt.date] = None, end: t.Optional[dt.date] = None
    ) -> list[Holiday]:
        query = "SELECT * FROM holidays WHERE 1 = 1"
        params: list[str] = []
        if start is not None:
            query += " AND date >= ?"
            params.append(start.isoformat())
        if end is not None:
            query += " AND date <= ?"
            params.append(end.isoformat())
        rows = self._read(query + " ORDER BY date", tuple(params))
        return [Holiday(date=parse_date(row["date"]), name=row["name"]) for row in rows]

    def add_holiday(self, holiday: Holiday) -> Holiday:
        self._write(
            "INSERT OR REPLACE INTO holidays (date, name) VALUES (?, ?)",
            (holiday.date.isoformat(), holiday.name),
        )
        return holiday

    def list_classes(self) -> dict[str, ClassInfo]:
        rows = self._read("SELECT * FROM classes")
        return {
            row["id"]: ClassInfo(
                id=row["id"],
                title=row["title"],
                subject=row["subject"],
                tutor_name=row["tutor_name"],
            )
            for row in rows
        }

    def put_class(self, info: ClassInfo) -> ClassInfo:
        self._write(
            "INSERT OR REPLACE INTO classes (id, title, subject, tutor_name) VALUES (?, ?, ?, ?)",
            (info.id, info.title, info.subject, info.tutor_name),
        )
        return info
