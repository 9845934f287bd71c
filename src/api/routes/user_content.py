"""End-user content listing."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from src.api.dependencies import AppServices, get_services

router = APIRouter(prefix="/api/user", tags=["user-content"])


@router.get("/content/{telegram_id}")
async def user_content(
    telegram_id: int,
    status: Optional[str] = None,
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """Content visible to this user's role right now, newest first."""
    items, role_name = await services.content.list_for_user(telegram_id, status)
    return {"content": [item.to_dict() for item in items], "userRole": role_name}
