"""
Unauthenticated diagnostics for scheduled content.

Only mounted when ``enable_debug_routes`` is set.  The scheduled-posts
dump puts the reconciler's overdue decision next to the store's own
``scheduled_at <= now`` filter so that drift between the two shows up.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends

from src.api.dependencies import AppServices, get_services
from src.scheduling import SweepSource
from src.utils import parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/test", tags=["debug"])

DISPLAY_FORMAT = "%d.%m.%Y, %H:%M:%S"


@router.post("/auto-publish")
async def test_auto_publish(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    published = await services.trigger.run_sweep(SweepSource.DEBUG)
    return {
        "message": "Test auto-publish completed",
        "published": published,
        "timestamp": to_iso(utc_now()),
    }


@router.get("/scheduled-posts")
async def scheduled_posts(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    now = utc_now()
    display_tz = ZoneInfo(services.settings.display_timezone)

    all_rows = await services.db.get_scheduled_content()
    store_overdue = await services.db.get_scheduled_content(overdue_at=now)

    scheduled = [_describe(row, now, display_tz) for row in all_rows]
    app_overdue_ids = sorted(
        item.id for item in services.reconciler.select_overdue(all_rows, now)
    )
    store_overdue_ids = sorted(str(row.get("id")) for row in store_overdue)

    if app_overdue_ids != store_overdue_ids:
        logger.warning(
            "[API] Overdue filters disagree: app=%s store=%s",
            app_overdue_ids,
            store_overdue_ids,
        )

    return {
        "current_time": to_iso(now),
        "display_time": now.astimezone(display_tz).strftime(DISPLAY_FORMAT),
        "display_timezone": services.settings.display_timezone,
        "total_scheduled": len(all_rows),
        "overdue_count": len(app_overdue_ids),
        "store_overdue_count": len(store_overdue_ids),
        "filters_agree": app_overdue_ids == store_overdue_ids,
        "scheduled_posts": scheduled,
        "overdue_posts": [
            {
                "id": row.get("id"),
                "title": row.get("title"),
                "role_name": row.get("role_name"),
                "scheduled_at": row.get("scheduled_at"),
                "seconds_overdue": _seconds_overdue(_instant(row), now),
            }
            for row in store_overdue
        ],
    }


def _instant(row: Dict[str, Any]) -> Optional[datetime]:
    try:
        return parse_timestamp(row.get("scheduled_at"))
    except ValueError:
        return None


def _seconds_overdue(scheduled_at: Optional[datetime], now: datetime) -> Optional[int]:
    if scheduled_at is None or scheduled_at > now:
        return None
    return int((now - scheduled_at).total_seconds())


def _describe(row: Dict[str, Any], now: datetime, display_tz: ZoneInfo) -> Dict[str, Any]:
    scheduled_at = _instant(row)
    entry: Dict[str, Any] = {
        "id": row.get("id"),
        "title": row.get("title"),
        "role_name": row.get("role_name"),
        "status": row.get("status"),
        "scheduled_at": row.get("scheduled_at"),
        "scheduled_display": None,
        "is_overdue": False,
        "seconds_overdue": None,
    }
    if scheduled_at is None:
        entry["error"] = "unparseable scheduled_at"
        return entry
    entry["scheduled_display"] = scheduled_at.astimezone(display_tz).strftime(DISPLAY_FORMAT)
    entry["is_overdue"] = scheduled_at <= now
    entry["seconds_overdue"] = _seconds_overdue(scheduled_at, now)
    return entry


__all__ = ["router"]
