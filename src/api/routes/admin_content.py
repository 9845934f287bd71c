"""Admin content routes: list, create, update, delete, manual auto-publish."""

import logging
from datetime import timedelta
from typing import Any, Dict

from fastapi import APIRouter, Depends

from src.api.dependencies import AppServices, get_services, require_admin
from src.api.schemas import ContentCreateRequest, ContentUpdateRequest
from src.utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/content",
    tags=["admin-content"],
    dependencies=[Depends(require_admin)],
)


@router.post("/auto-publish")
async def auto_publish(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    """Run a sweep now and report what it published.

    Store failures propagate as a 500 so the admin can retry.
    """
    now = utc_now()
    result = await services.reconciler.publish_overdue(now)
    if result.published == 0:
        return {"message": "No overdue posts found", "published": 0, "posts": []}

    window = services.settings.sweep.recent_publish_window_seconds
    posts = await services.content.recently_published(now - timedelta(seconds=window))
    logger.info("[API] Manual auto-publish published %d items", result.published)
    return {
        "message": "Posts published successfully",
        "published": result.published,
        "posts": [post.to_dict() for post in posts],
    }


@router.get("/{role_name}")
async def list_content(
    role_name: str, services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    items = await services.content.list_for_admin(role_name)
    return {"content": [item.to_dict() for item in items]}


@router.post("")
async def create_content(
    payload: ContentCreateRequest, services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    item = await services.content.create(payload.model_dump())
    return {"content": item.to_dict()}


@router.patch("/{content_id}")
async def update_content(
    content_id: str,
    payload: ContentUpdateRequest,
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    item = await services.content.update(content_id, payload.model_dump(exclude_unset=True))
    return {"content": item.to_dict()}


@router.delete("/{content_id}")
async def delete_content(
    content_id: str, services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    await services.content.delete(content_id)
    return {"success": True}
