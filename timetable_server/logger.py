"""
Logging setup for the timetable packages.

Console output always; a rotating file handler is added when
TIMETABLE_LOG_DIR is set.
"""
from __future__ import annotations

import logging
import logging.handlers
import os
import typing as t
from pathlib import Path

LOG_LEVEL = os.getenv("TIMETABLE_LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("TIMETABLE_LOG_DIR", "")
MAX_FILE_SIZE = os.getenv("TIMETABLE_LOG_MAX_SIZE", "10MB")
BACKUP_COUNT = int(os.getenv("TIMETABLE_LOG_BACKUPS", "5"))

_ROOT_NAME = "timetable"


def _parse_size(size_str: str) -> int:
    """Parse a file size string like '10MB' into bytes."""
    size_str = size_str.strip().upper()
    if size_str.endswith("KB"):
        return int(size_str[:-2]) * 1024
    elif size_str.endswith("MB"):
        return int(size_str[:-2]) * 1024 * 1024
    elif size_str.endswith("GB"):
        return int(size_str[:-2]) * 1024 * 1024 * 1024
    else:
        return int(size_str)


class LoggerManager:
    """Owns the handlers of the ``timetable`` logger hierarchy."""

    def __init__(self, level: str = LOG_LEVEL, logs_dir: str = LOG_DIR) -> None:
        self.level = level
        self.logs_dir = logs_dir
        self._loggers: dict[str, logging.Logger] = {}
        self._setup_root_logger()

    def _setup_root_logger(self) -> None:
        root_logger = logging.getLogger(_ROOT_NAME)
        root_logger.setLevel(getattr(logging, self.level.upper(), logging.INFO))
        for handler in root_logger.handlers:
            handler.close()
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(console_handler)

        if self.logs_dir:
            Path(self.logs_dir).mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                Path(self.logs_dir) / "timetable.log",
                maxBytes=_parse_size(MAX_FILE_SIZE),
                backupCount=BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s"
                )
            )
            root_logger.addHandler(file_handler)

    def get_logger(self, name: str) -> logging.Logger:
        if name not in self._loggers:
            self._loggers[name] = logging.getLogger(f"{_ROOT_NAME}.{name}")
        return self._loggers[name]


_logger_manager: t.Optional[LoggerManager] = None


def get_logger(name: str) -> logging.Logger:
    """Convenience function to get a logger under the ``timetable`` namespace."""
    global _logger_manager

    if _logger_manager is None:
        _logger_manager = LoggerManager()

    return _logger_manager.get_logger(name)


def setup_logging(level: t.Optional[str] = None, logs_dir: t.Optional[str] = None) -> None:
    """(Re)configure the handlers, e.g. from a CLI ``--verbose`` flag."""
    global _logger_manager

    _logger_manager = LoggerManager(
        level=level or LOG_LEVEL,
        logs_dir=LOG_DIR if logs_dir is None else logs_dir,
    )
