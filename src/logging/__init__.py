"""Logging system for the Mini-App content API."""
import logging

from src.logging.models import LogLevel, LogComponent, LogEntry
from src.logging.event_logger import EventLogger

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s | %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Install the console handler used by the entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )


__all__ = [
    "LogLevel", "LogComponent", "LogEntry",
    "EventLogger",
    "configure_logging",
]
