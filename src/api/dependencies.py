"""
FastAPI dependencies: the service container and the admin gate.

Admin requests identify themselves by Telegram id, sent either in the
``x-telegram-id`` header or the ``telegram_id`` query parameter.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Query, Request

from src.config import Settings
from src.content.service import ContentService
from src.database import SupabaseDB
from src.exceptions import AccessDeniedError, AuthenticationRequiredError, DatabaseError
from src.logging import EventLogger
from src.scheduling import ScheduleReconciler, SweepTrigger

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Everything the request handlers need, built once per process."""

    settings: Settings
    db: SupabaseDB
    events: EventLogger
    reconciler: ScheduleReconciler
    content: ContentService
    trigger: SweepTrigger


def get_services(request: Request) -> AppServices:
    return request.app.state.services


async def require_admin(
    services: AppServices = Depends(get_services),
    x_telegram_id: Optional[str] = Header(default=None),
    telegram_id: Optional[str] = Query(default=None),
) -> int:
    """Resolve the caller's Telegram id and check it holds the admin role.

    Returns:
        The admin's Telegram id.

    Raises:
        AuthenticationRequiredError: No Telegram id was sent (401).
        AccessDeniedError: The id is not an admin, or the role lookup
            failed (403).
    """
    raw = (x_telegram_id or telegram_id or "").strip()
    if not raw:
        raise AuthenticationRequiredError("Telegram ID required for admin access")

    try:
        caller = int(raw)
    except ValueError:
        raise AccessDeniedError("Access denied. Admin privileges required.")

    try:
        allowed = await services.db.is_admin(caller)
    except DatabaseError as exc:
        logger.error("[API] Admin check failed for %s: %s", caller, exc)
        allowed = False

    if not allowed:
        logger.warning("[API] Admin access denied for telegram_id=%s", caller)
        raise AccessDeniedError("Access denied. Admin privileges required.")
    return caller


__all__ = [
    "AppServices",
    "get_services",
    "require_admin",
]
