"""
Content data models: ContentStatus, LinkType, ContentLink, ContentItem.

Defines the typed shape of rows in the ``content`` and ``content_links``
tables.  Rows are parsed at the store boundary with
:meth:`ContentItem.from_row` so that the reconciler and the visibility
filter only ever compare real instants.

Invariants kept by every writer:
    - ``status == scheduled``  ->  ``is_scheduled`` and ``scheduled_at`` set
    - ``status == published``  ->  not ``is_scheduled``, ``scheduled_at`` is
      ``None``, ``published_at`` set
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from src.exceptions import MalformedRowError
from src.utils import parse_timestamp, to_iso

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================


class ContentStatus(Enum):
    """Lifecycle status of a content item.

    Transitions:
        DRAFT -> PUBLISHED
        SCHEDULED -> PUBLISHED   (reconciler, once scheduled_at elapses)
        PUBLISHED -> SCHEDULED   (admin reschedules)
    """

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


class LinkType(Enum):
    """Kind of material a content link points to."""

    ARTICLE = "article"
    STREAM = "stream"


# =============================================================================
# CONTENT LINK
# =============================================================================


@dataclass
class ContentLink:
    """A link owned by a content item (deleted together with it).

    Attributes:
        link_type: ``article`` or ``stream``.
        link_title: Display title of the link.
        link_url: Target URL.
        id: Row identifier (``None`` before insertion).
        content_id: Owning content item.
        created_at: Insertion time; links are listed in this order.
    """

    link_type: LinkType
    link_title: str
    link_url: str
    id: Optional[str] = None
    content_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ContentLink":
        try:
            link_type = LinkType(row.get("link_type"))
        except ValueError as exc:
            raise MalformedRowError(row.get("id"), "link_type", row.get("link_type")) from exc
        return cls(
            link_type=link_type,
            link_title=row.get("link_title") or "",
            link_url=row.get("link_url") or "",
            id=row.get("id"),
            content_id=row.get("content_id"),
            created_at=_lenient_timestamp(row, "created_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content_id": self.content_id,
            "link_type": self.link_type.value,
            "link_title": self.link_title,
            "link_url": self.link_url,
            "created_at": to_iso(self.created_at),
        }

    def to_row(self, content_id: str) -> Dict[str, Any]:
        """Serialize for insertion into ``content_links``."""
        return {
            "content_id": content_id,
            "link_type": self.link_type.value,
            "link_title": self.link_title,
            "link_url": self.link_url,
        }


# =============================================================================
# CONTENT ITEM
# =============================================================================


@dataclass
class ContentItem:
    """A unit of publishable material shown to one audience role.

    Attributes:
        id: Opaque unique identifier assigned by the store.
        role_name: Audience segment allowed to see the item.
        title: Display title.
        description: Optional display text.
        links: Ordered links owned by the item.
        is_scheduled: Whether visibility is gated by ``scheduled_at``.
        scheduled_at: Instant at which a scheduled item becomes visible.
        published_at: Instant the item actually became visible.
        status: Informational status; ``None`` for legacy rows.
        created_at: Creation time (listings are newest first).
        updated_at: Time of the last mutation.
    """

    id: str
    role_name: str
    title: str
    description: Optional[str] = None
    links: List[ContentLink] = field(default_factory=list)
    is_scheduled: bool = False
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    status: Optional[ContentStatus] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ContentItem":
        """Parse a ``content`` row.

        ``scheduled_at`` and ``status`` decide visibility and publication,
        so they are parsed strictly.  Bookkeeping timestamps fall back to
        ``None`` with a warning.

        Raises:
            MalformedRowError: If ``id`` is missing or ``scheduled_at`` /
                ``status`` cannot be parsed.
        """
        row_id = row.get("id")
        if not row_id:
            raise MalformedRowError(None, "id", row_id)

        raw_scheduled = row.get("scheduled_at")
        try:
            scheduled_at = parse_timestamp(raw_scheduled)
        except ValueError as exc:
            raise MalformedRowError(row_id, "scheduled_at", raw_scheduled) from exc

        raw_status = row.get("status")
        try:
            status = ContentStatus(raw_status) if raw_status else None
        except ValueError as exc:
            raise MalformedRowError(row_id, "status", raw_status) from exc

        links = [ContentLink.from_row(link) for link in row.get("links") or []]

        return cls(
            id=str(row_id),
            role_name=row.get("role_name") or "",
            title=row.get("title") or "",
            description=row.get("description"),
            links=links,
            is_scheduled=bool(row.get("is_scheduled")),
            scheduled_at=scheduled_at,
            published_at=_lenient_timestamp(row, "published_at"),
            status=status,
            created_at=_lenient_timestamp(row, "created_at"),
            updated_at=_lenient_timestamp(row, "updated_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""
        return {
            "id": self.id,
            "role_name": self.role_name,
            "title": self.title,
            "description": self.description,
            "is_scheduled": self.is_scheduled,
            "scheduled_at": to_iso(self.scheduled_at),
            "published_at": to_iso(self.published_at),
            "status": self.status.value if self.status else None,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "links": [link.to_dict() for link in self.links],
        }

    def status_is_consistent(self) -> bool:
        """Check the status invariants against the scheduling fields."""
        if self.status is ContentStatus.SCHEDULED:
            return self.is_scheduled and self.scheduled_at is not None
        if self.status is ContentStatus.PUBLISHED:
            return (
                not self.is_scheduled
                and self.scheduled_at is None
                and self.published_at is not None
            )
        return True


def _lenient_timestamp(row: Dict[str, Any], key: str) -> Optional[datetime]:
    raw = row.get(key)
    try:
        return parse_timestamp(raw)
    except ValueError:
        logger.warning(
            "[CONTENT] Row %s has unparseable %s=%r, treating as empty",
            row.get("id"),
            key,
            raw,
        )
        return None


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ContentStatus",
    "LinkType",
    "ContentLink",
    "ContentItem",
]
