"""Content domain: typed rows, visibility filter, admin/user operations."""

from src.content.models import ContentItem, ContentLink, ContentStatus, LinkType
from src.content.service import ContentService
from src.content.visibility import effective_status, is_visible, visible

__all__ = [
    "ContentItem",
    "ContentLink",
    "ContentStatus",
    "LinkType",
    "ContentService",
    "effective_status",
    "is_visible",
    "visible",
]
