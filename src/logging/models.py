"""Logging data models: LogLevel, LogComponent, LogEntry."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """Log levels with numeric values for severity comparison.

    Values match the standard ``logging`` levels so entries can be
    mirrored into the stdlib logger without translation.
    """

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @property
    def name_str(self) -> str:
        """Get lowercase name for display/serialization."""
        return self.name.lower()


class LogComponent(Enum):
    """All system components that can produce events."""

    RECONCILER = "reconciler"
    CONTENT = "content"
    STARTUP = "startup"


@dataclass
class LogEntry:
    """Structured event entry.

    Represents a single event with optional content context, error
    details and performance timing.
    """

    # Required fields
    timestamp: datetime
    level: LogLevel
    component: LogComponent
    message: str

    # Context
    content_id: Optional[str] = None

    # Additional data
    data: Dict[str, Any] = field(default_factory=dict)

    # Error details
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    # Performance
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "level_name": self.level.name_str,
            "component": self.component.value,
            "message": self.message,
            "content_id": self.content_id,
            "data": self.data,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        """Serialize to a single JSON line for file logging."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        """Human-readable single line for console output."""
        msg = f"[{self.component.value.upper()}] {self.message}"
        if self.content_id:
            msg += f" (content={self.content_id})"
        if self.data:
            details = ", ".join(f"{k}={v}" for k, v in self.data.items())
            msg += f" {{{details}}}"
        if self.duration_ms is not None:
            msg += f" ({self.duration_ms}ms)"
        if self.error_type:
            msg += f" [{self.error_type}: {self.error_message}]"
        return msg
