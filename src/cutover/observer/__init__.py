"""Structured event log and progress observation for deployment runs."""

from .event_log import EventLog, EventLogClosedError, ProgressTracker
from .models import LogEntry, LogLevel

__all__ = [
    "EventLog",
    "EventLogClosedError",
    "ProgressTracker",
    "LogEntry",
    "LogLevel",
]
