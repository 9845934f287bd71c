"""
Liveness and scheduler health.

Reports the reconciler's sweep counters together with the latest sweep
failures from the event log, so a store outage that keeps sweeps from
publishing is visible without reading the server logs.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from src.api.dependencies import AppServices, get_services
from src.logging import LogComponent, LogLevel
from src.utils import to_iso, utc_now

router = APIRouter(prefix="/api", tags=["health"])

RECENT_ERROR_LIMIT = 5


@router.get("/health")
async def health(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    scheduler = services.reconciler.stats.to_dict()
    scheduler["running"] = services.trigger.running
    scheduler["recent_errors"] = [
        {
            "timestamp": to_iso(entry.timestamp),
            "message": entry.message,
            "error": f"{entry.error_type}: {entry.error_message}" if entry.error_type else None,
        }
        for entry in services.events.get_recent(
            limit=RECENT_ERROR_LIMIT,
            component=LogComponent.RECONCILER,
            min_level=LogLevel.ERROR,
        )
    ]
    return {
        "status": "OK",
        "timestamp": to_iso(utc_now()),
        "environment": services.settings.environment,
        "scheduler": scheduler,
    }
