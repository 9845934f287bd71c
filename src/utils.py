"""
Shared utility functions used throughout the Mini-App content API.

Provides:
    - utc_now(): Timezone-aware UTC datetime (for Supabase TIMESTAMPTZ columns)
    - ensure_utc(dt): Convert any datetime to timezone-aware UTC
    - parse_timestamp(value): Parse a store timestamp into an aware instant
    - to_iso(dt): Serialize an optional datetime for JSON / PostgREST
    - @with_timeout: Decorator bounding how long an async call may hang
"""

from datetime import datetime, timezone
import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from src.exceptions import StoreTimeoutError

# ---------------------------------------------------------------------------
# Type variable for generic return types in the timeout decorator
# ---------------------------------------------------------------------------
T = TypeVar("T")

logger = logging.getLogger(__name__)


# ===========================================================================
# TIMEZONE UTILITIES
# All timestamps stored in Supabase must be timezone-aware (TIMESTAMPTZ)
# ===========================================================================


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    ALWAYS use this instead of ``datetime.now()`` or ``datetime.utcnow()``
    so that comparisons against ``scheduled_at`` are instant comparisons.

    Returns:
        Timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime is timezone-aware in UTC.

    Args:
        dt: Datetime to convert (naive or aware).

    Returns:
        Timezone-aware datetime in UTC.
    """
    if dt.tzinfo is None:
        # Assume naive datetime is UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a timestamp coming from the store or from a request body.

    PostgREST renders TIMESTAMPTZ as ISO 8601 with an offset; clients send
    ``Z``-suffixed strings. Naive values are taken as UTC.

    Args:
        value: ISO 8601 string, datetime, or ``None``.

    Returns:
        Timezone-aware UTC datetime, or ``None`` when *value* is empty.

    Raises:
        ValueError: If *value* is not a parseable timestamp.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Unsupported timestamp type: {type(value).__name__}")

    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize an optional datetime as an ISO 8601 UTC string."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


# ===========================================================================
# TIMEOUT DECORATOR
# Store calls have no built-in deadline; a hung request would otherwise
# hang the sweep or the HTTP handler that awaits it indefinitely.
# ===========================================================================


def with_timeout(
    seconds: Optional[float] = None,
    operation_name: Optional[str] = None,
    attr: str = "timeout_seconds",
) -> Callable:
    """
    Decorator that bounds the duration of an async call.

    The deadline is either fixed (``seconds``) or read at call time from
    the ``attr`` attribute of the bound instance, so that one store client
    can be configured once and every method honours it.

    Args:
        seconds: Fixed timeout. When ``None``, ``getattr(self, attr)`` of
            the first positional argument is used.
        operation_name: Human-readable name used in log messages and in
            the raised error. Defaults to the function's ``__name__``.
        attr: Instance attribute holding the timeout when ``seconds`` is
            ``None``.

    Raises:
        StoreTimeoutError: When the call does not finish in time.

    Usage::

        class SupabaseDB:
            timeout_seconds = 10.0

            @with_timeout()
            async def get_content(self, content_id: str) -> dict:
                ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        op_name = operation_name or func.__name__

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            timeout = seconds
            if timeout is None and args:
                timeout = getattr(args[0], attr, None)
            if timeout is None:
                return await func(*args, **kwargs)
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout)
            except asyncio.TimeoutError as exc:
                logger.error(
                    "[TIMEOUT] %s did not complete within %.1fs",
                    op_name,
                    timeout,
                )
                raise StoreTimeoutError(op_name, timeout) from exc

        return wrapper

    return decorator
