"""Data models for the deployment event log."""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(Enum):
    """Log entry level, ordered by severity."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def severity(self) -> int:
        """Numeric severity matching the standard library levels."""
        return getattr(logging, self.value)


class LogEntry(BaseModel):
    """Structured log entry. Entries are never modified once appended."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Log timestamp")
    level: LogLevel = Field(..., description="Log level")
    category: str = Field(..., description="Subsystem or step that produced the entry")
    message: str = Field(..., description="Log message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional structured data")
    elapsed_ms: float = Field(..., description="Milliseconds since the log was opened")
    error: Optional[str] = Field(None, description="Error message if the entry records a failure")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "category": self.category,
            "message": self.message,
            "data": self.data,
            "elapsedMs": round(self.elapsed_ms, 3),
            "error": self.error,
        }
