"""Request bodies for the admin content routes."""

from typing import List, Optional

from pydantic import BaseModel


class LinkPayload(BaseModel):
    link_type: Optional[str] = None
    link_title: Optional[str] = None
    link_url: Optional[str] = None


class ContentCreateRequest(BaseModel):
    role_name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    links: Optional[List[LinkPayload]] = None
    is_scheduled: bool = False
    scheduled_at: Optional[str] = None  # ISO 8601, "Z" accepted
    status: Optional[str] = None


class ContentUpdateRequest(BaseModel):
    """Partial update; only fields sent by the client are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    links: Optional[List[LinkPayload]] = None
    is_scheduled: Optional[bool] = None
    scheduled_at: Optional[str] = None
    status: Optional[str] = None


__all__ = [
    "LinkPayload",
    "ContentCreateRequest",
    "ContentUpdateRequest",
]
