"""Append-only event log with phase/step bracketing and progress tracking."""

import json
import os
import platform
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from cutover.observer.models import LogEntry, LogLevel
from cutover.utils.logging import get_logger

T = TypeVar('T')

SESSION_RULE = "=" * 65


class EventLogClosedError(RuntimeError):
    """Raised when writing to an event log that has already been closed."""

    pass


class ProgressTracker:
    """Counts completed units of a long-running operation and reports percentages."""

    def __init__(self, log: "EventLog", category: str, total: int, operation_name: str):
        self.log = log
        self.category = category
        self.total = total
        self.operation_name = operation_name
        self.completed = 0

    @property
    def percentage(self) -> int:
        """Completed share of the total, rounded to a whole percent."""
        if self.total <= 0:
            return 100
        return round(self.completed / self.total * 100)

    def increment(self, count: int = 1) -> None:
        """Record progress and log the new percentage."""
        self.completed += count
        self.log.info(
            self.category,
            f"{self.operation_name} progress: {self.completed}/{self.total} ({self.percentage}%)",
            {"completed": self.completed, "total": self.total, "percentage": self.percentage},
        )

    def complete(self) -> None:
        self.log.info(self.category, f"{self.operation_name} completed: {self.completed}/{self.total}")

    def fail(self, error: Exception) -> None:
        self.log.error(
            self.category,
            f"{self.operation_name} failed at {self.completed}/{self.total}",
            error=error,
        )


class EventLog:
    """Leveled, append-only event sink for one deployment or rollback run.

    The log is opened at construction and must be closed explicitly with
    :meth:`close` (or by using it as a context manager). When ``log_path`` is
    given, a session header, one JSON line per entry and a session footer are
    written to that file. Every entry is also forwarded to the standard
    ``logging`` logger so console and JSON file handlers see it.
    """

    def __init__(
        self,
        log_path: Optional[str] = None,
        min_level: LogLevel = LogLevel.INFO,
        clock: Callable[[], float] = time.monotonic,
        logger_name: str = "cutover.events",
    ):
        """Open the event log.

        Args:
            log_path: Optional file receiving the structured log
            min_level: Entries below this level are dropped
            clock: Monotonic clock in seconds, used for elapsed times
            logger_name: Name of the standard logger entries are mirrored to
        """
        self.log_path = Path(log_path) if log_path else None
        self.min_level = min_level
        self._clock = clock
        self._start = clock()
        self._entries: List[LogEntry] = []
        self._closed = False
        self.logger = get_logger(logger_name)

        if self.log_path:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self.log_path.write_text(self._session_header(), encoding="utf-8")

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        """All entries appended so far, oldest first."""
        return tuple(self._entries)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def elapsed_ms(self) -> float:
        return (self._clock() - self._start) * 1000

    def entries_for(self, category: str) -> List[LogEntry]:
        """Return the entries written under one category."""
        return [entry for entry in self._entries if entry.category == category]

    def debug(self, category: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._write(LogLevel.DEBUG, category, message, data)

    def info(self, category: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._write(LogLevel.INFO, category, message, data)

    def warning(self, category: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._write(LogLevel.WARNING, category, message, data)

    def error(
        self,
        category: str,
        message: str,
        error: Optional[BaseException] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._write(LogLevel.ERROR, category, message, data, error)

    def critical(
        self,
        category: str,
        message: str,
        error: Optional[BaseException] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._write(LogLevel.CRITICAL, category, message, data, error)

    def start_phase(self, phase_name: str, description: Optional[str] = None) -> None:
        self.info("PHASE", f"📋 Starting Phase: {phase_name}", {"description": description})

    def complete_phase(self, phase_name: str) -> None:
        self.info("PHASE", f"🎉 Completed Phase: {phase_name}")

    def start_step(self, step_name: str, description: Optional[str] = None) -> None:
        self.info("STEP", f"🚀 Starting: {step_name}", {"description": description})

    def complete_step(self, step_name: str, duration_ms: Optional[float] = None) -> None:
        data = {"duration_ms": round(duration_ms, 3)} if duration_ms is not None else None
        self.info("STEP", f"✅ Completed: {step_name}", data)

    def fail_step(self, step_name: str, error: BaseException) -> None:
        self.error("STEP", f"❌ Failed: {step_name}", error=error)

    def time_execution(self, category: str, operation_name: str, operation: Callable[[], T]) -> T:
        """Run an operation, logging its start, duration and outcome.

        Exceptions are logged and re-raised unchanged.
        """
        started = self._clock()
        self.info(category, f"Starting {operation_name}")
        try:
            result = operation()
        except Exception as e:
            duration_ms = (self._clock() - started) * 1000
            self.error(category, f"Failed {operation_name}", error=e, data={"duration_ms": duration_ms})
            raise
        duration_ms = (self._clock() - started) * 1000
        self.info(category, f"Completed {operation_name}", {"duration_ms": duration_ms})
        return result

    def progress_tracker(self, category: str, total: int, operation_name: str) -> ProgressTracker:
        return ProgressTracker(self, category, total, operation_name)

    def close(self) -> None:
        """Close the log session. Further writes raise EventLogClosedError."""
        if self._closed:
            return
        if self.log_path:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(self._session_footer())
        self._closed = True

    def __enter__(self) -> "EventLog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _write(
        self,
        level: LogLevel,
        category: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if self._closed:
            raise EventLogClosedError(f"Event log is closed; cannot record: {message}")
        if level.severity < self.min_level.severity:
            return

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc),
            level=level,
            category=category,
            message=message,
            data=data,
            elapsed_ms=self.elapsed_ms,
            error=str(error) if error is not None else None,
        )
        self._entries.append(entry)

        self.logger.log(
            level.severity,
            message if error is None else f"{message}: {error}",
            extra={"category": category, "elapsed_ms": round(entry.elapsed_ms, 3), "data": data},
        )

        if self.log_path:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), default=str) + "\n")

    def _session_header(self) -> str:
        return (
            f"{SESSION_RULE}\n"
            "EVENT LOG SESSION STARTED\n"
            f"{SESSION_RULE}\n"
            f"Time: {datetime.now(timezone.utc).isoformat()}\n"
            f"Process ID: {os.getpid()}\n"
            f"Python Version: {sys.version.split()[0]}\n"
            f"Platform: {platform.platform()}\n"
            f"Working Directory: {os.getcwd()}\n"
            f"{SESSION_RULE}\n\n"
        )

    def _session_footer(self) -> str:
        return (
            f"\n{SESSION_RULE}\n"
            "EVENT LOG SESSION ENDED\n"
            f"{SESSION_RULE}\n"
            f"Total Duration: {round(self.elapsed_ms)}ms\n"
            f"Time: {datetime.now(timezone.utc).isoformat()}\n"
            f"{SESSION_RULE}\n\n"
        )
