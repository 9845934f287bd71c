"""
Read-side visibility filter.

Decides which content items an end user sees *now*, independently of
whether the reconciler has already flipped their ``status``.  A scheduled
item becomes visible the instant ``scheduled_at`` passes, so end users
never wait for the next sweep.

The store query applies a coarse version of the same predicate (see
:meth:`src.database.SupabaseDB.get_visible_content`); the functions here
are the authoritative second pass and compare parsed instants.

All functions are pure: they never touch the store.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from src.content.models import ContentItem, ContentStatus
from src.utils import ensure_utc

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def is_visible(item: ContentItem, now: datetime) -> bool:
    """Return ``True`` if *item* should be shown at *now*.

    Visible iff the item is not time-gated, or its ``scheduled_at`` is
    known and not after *now*.  Monotonic in *now*: once visible, an item
    stays visible.
    """
    if not item.is_scheduled:
        return True
    if item.scheduled_at is None:
        return False
    return item.scheduled_at <= ensure_utc(now)


def effective_status(item: ContentItem, now: datetime) -> ContentStatus:
    """Status an end user should perceive at *now*.

    Legacy rows without a status count as published, and a scheduled
    item whose time has passed counts as published even if no sweep has
    run yet.
    """
    if item.is_scheduled and is_visible(item, now):
        return ContentStatus.PUBLISHED
    if item.status is None:
        return ContentStatus.PUBLISHED
    return item.status


def visible(
    items: Iterable[ContentItem],
    now: datetime,
    status: Optional[ContentStatus] = None,
) -> List[ContentItem]:
    """Filter *items* down to what is visible at *now*, newest first.

    Args:
        items: Candidate items (already restricted to one role).
        now: Reference instant.
        status: Optional requested status, compared against
            :func:`effective_status`.

    Returns:
        A new list ordered by ``created_at`` descending.
    """
    result = [
        item for item in items
        if is_visible(item, now)
        and (status is None or effective_status(item, now) is status)
    ]
    result.sort(
        key=lambda item: item.created_at or _OLDEST,
        reverse=True,
    )
    return result
