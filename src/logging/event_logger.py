"""Structured event log with a JSON-lines file output.

Provides the ``EventLogger`` class that writes ``LogEntry`` records to a
local JSON-lines file (via ``aiofiles``) and mirrors each of them into the
standard ``logging`` tree.  A lightweight in-memory ring buffer allows
``get_recent()`` queries; the health endpoint reports recent sweep
failures from it.

One instance is created by the application lifespan and handed to the
components that emit events; there is no module-level singleton.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from src.logging.models import LogComponent, LogEntry, LogLevel
from src.utils import utc_now

logger = logging.getLogger("events")


class EventLogger:
    """Structured event sink for sweeps and content mutations.

    Parameters:
        log_dir: Directory for the event file (created if missing).  When
            ``None``, events are only mirrored and kept in memory.
        max_recent: Size of the in-memory ring buffer.
    """

    FILE_NAME = "events.log"

    def __init__(
        self,
        log_dir: Optional[str] = "logs",
        max_recent: int = 500,
    ) -> None:
        self.log_file: Optional[Path] = None
        if log_dir is not None:
            directory = Path(log_dir)
            directory.mkdir(parents=True, exist_ok=True)
            self.log_file = directory / self.FILE_NAME

        self._recent: List[LogEntry] = []
        self._max_recent = max_recent

        # Serializes appends so JSON lines never interleave
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Core log method
    # ------------------------------------------------------------------

    async def log(
        self,
        level: LogLevel,
        component: LogComponent,
        message: str,
        content_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        duration_ms: Optional[int] = None,
    ) -> LogEntry:
        """Record a structured event.

        The entry is mirrored to the stdlib logger first, so a failing
        file write never hides the event from the console.
        """
        entry = LogEntry(
            timestamp=utc_now(),
            level=level,
            component=component,
            message=message,
            content_id=content_id,
            data=data or {},
            duration_ms=duration_ms,
        )
        if error is not None:
            entry.error_type = type(error).__name__
            entry.error_message = str(error)

        logger.log(level.value, entry.to_readable())

        self._recent.append(entry)
        if len(self._recent) > self._max_recent:
            self._recent.pop(0)

        if self.log_file is not None:
            try:
                await self._write_to_file(entry)
            except OSError as exc:
                logger.error("[EVENTS] Failed to write event file %s: %s", self.log_file, exc)

        return entry

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    async def info(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.INFO, component, message, **kwargs)

    async def warning(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.WARNING, component, message, **kwargs)

    async def error(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.ERROR, component, message, **kwargs)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_recent(
        self,
        limit: int = 50,
        component: Optional[LogComponent] = None,
        min_level: LogLevel = LogLevel.DEBUG,
    ) -> List[LogEntry]:
        """Return the newest entries, newest last."""
        entries = [
            e for e in self._recent
            if e.level.value >= min_level.value
            and (component is None or e.component == component)
        ]
        return entries[-limit:]

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    async def _write_to_file(self, entry: LogEntry) -> None:
        async with self._write_lock:
            async with aiofiles.open(self.log_file, "a", encoding="utf-8") as fh:
                await fh.write(entry.to_json() + "\n")
