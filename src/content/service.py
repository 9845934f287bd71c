"""
Content service: admin CRUD and end-user listings.

``ContentService`` turns request payloads into Content Store operations
while keeping the status invariants of :mod:`src.content.models`:

- publish-now items are ``published`` with ``published_at`` set (or
  ``draft`` with no ``published_at`` when requested);
- scheduled items are ``scheduled`` with a future ``scheduled_at`` and no
  ``published_at``;
- every mutation stamps ``updated_at``.

End-user listings go through the visibility filter so that scheduled
items appear the moment their time passes, whether or not a sweep ran.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.content.models import ContentItem, ContentLink, ContentStatus, LinkType
from src.content.visibility import visible
from src.exceptions import ContentNotFoundError, DatabaseError, MalformedRowError, ValidationError
from src.logging import EventLogger, LogComponent
from src.utils import parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)


class ContentService:
    """Admin and end-user operations on content items.

    Args:
        db: Database client (:class:`~src.database.SupabaseDB`).
        events: Optional structured event sink for mutations.
    """

    def __init__(
        self,
        db: "SupabaseDB",  # noqa: F821
        events: Optional[EventLogger] = None,
    ) -> None:
        self.db = db
        self.events = events

    # ================================================================
    # READS
    # ================================================================

    async def list_for_admin(self, role_name: str) -> List[ContentItem]:
        """Every item of a role, scheduled ones included, newest first."""
        role_name = _required_text(role_name, "Role name is required")
        items = self._parse_rows(await self.db.get_content_by_role(role_name))
        await self._attach_links(items)
        logger.info("[CONTENT] Found %d content items for role %s", len(items), role_name)
        return items

    async def list_for_user(
        self,
        telegram_id: int,
        status: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[List[ContentItem], str]:
        """Items visible to a Telegram user right now.

        Args:
            telegram_id: The user's Telegram id.
            status: Optional status filter (``"published"`` also admits
                legacy rows and scheduled items whose time has passed).
            now: Reference instant.  Defaults to the current UTC time.

        Returns:
            ``(items, role_name)``; ``([], "")`` when the user is unknown or
            has no role.
        """
        requested = _parse_status(status)
        now = now or utc_now()

        role_name = (await self.db.get_user_role(telegram_id) or "").strip()
        if not role_name:
            return [], ""

        rows = await self.db.get_visible_content(
            role_name, now, requested.value if requested else None
        )
        items = visible(self._parse_rows(rows), now, requested)
        await self._attach_links(items)

        logger.info(
            "[CONTENT] %d visible items for role %s (status filter: %s)",
            len(items),
            role_name,
            requested.value if requested else "all",
        )
        return items, role_name

    async def recently_published(self, since: datetime) -> List[ContentItem]:
        """Items published at or after *since*, newest publication first."""
        items = self._parse_rows(await self.db.get_recently_published(since))
        await self._attach_links(items)
        return items

    # ================================================================
    # MUTATIONS
    # ================================================================

    async def create(self, payload: Dict[str, Any]) -> ContentItem:
        """Create an item with its links.

        Links are written after the item; if that fails the item is
        deleted again so no link-less content remains.

        Raises:
            ValidationError: On invalid fields.
            DatabaseError: On store failures.
        """
        role_name = _required_text(payload.get("role_name"), "Role name is required")
        title = _required_text(payload.get("title"), "Title is required")
        links = _parse_links(payload.get("links"))
        requested = _parse_status(payload.get("status"))
        now = utc_now()

        row: Dict[str, Any] = {
            "role_name": role_name,
            "title": title,
            "description": _optional_text(payload.get("description")),
            "created_at": to_iso(now),
            "updated_at": to_iso(now),
        }
        if payload.get("is_scheduled") is True:
            row.update(_scheduled_fields(payload.get("scheduled_at"), requested, now))
        else:
            row.update(_unscheduled_fields(requested, now))

        created = await self.db.insert_content(row)
        content_id = str(created["id"])

        try:
            link_rows = await self.db.insert_links([link.to_row(content_id) for link in links])
        except DatabaseError:
            logger.error("[CONTENT] Link creation failed, removing content %s", content_id)
            try:
                await self.db.delete_content(content_id)
            except DatabaseError as cleanup_exc:
                logger.error(
                    "[CONTENT] Could not remove content %s after link failure: %s",
                    content_id,
                    cleanup_exc,
                )
            raise

        item = ContentItem.from_row({**created, "links": link_rows})
        logger.info(
            "[CONTENT] Created content %s (%s) for role %s",
            item.id,
            item.status.value if item.status else "no status",
            item.role_name,
        )
        await self._event("Content created", item)
        return item

    async def update(self, content_id: str, changes: Dict[str, Any]) -> ContentItem:
        """Apply a partial update.

        Only keys present in *changes* are touched.  ``links``, when given,
        replace the existing links wholesale.

        Raises:
            ValidationError: On invalid fields.
            ContentNotFoundError: If no item has this id.
        """
        content_id = _required_text(content_id, "Content ID is required")
        now = utc_now()
        fields: Dict[str, Any] = {}

        if "title" in changes:
            fields["title"] = _required_text(changes["title"], "Title is required")
        if "description" in changes:
            fields["description"] = _optional_text(changes["description"])

        links: Optional[List[ContentLink]] = None
        if changes.get("links") is not None:
            links = _parse_links(changes["links"])

        requested = _parse_status(changes.get("status"))
        is_scheduled = changes.get("is_scheduled")

        if is_scheduled is True:
            fields.update(_scheduled_fields(changes.get("scheduled_at"), requested, now))
        elif is_scheduled is False:
            fields.update(_unscheduled_fields(requested, now))
        elif changes.get("scheduled_at") is not None:
            raise ValidationError("is_scheduled must be sent together with scheduled_at")
        elif requested is not None:
            fields.update(_unscheduled_fields(requested, now))

        fields["updated_at"] = to_iso(now)
        if fields.get("published_at") is not None:
            await self._keep_publication_time(content_id, fields)

        updated = await self.db.update_content(content_id, fields)
        if updated is None:
            raise ContentNotFoundError(content_id)

        if links is not None:
            link_rows = await self._replace_links(content_id, links)
        else:
            link_rows = await self.db.get_links([content_id])

        item = ContentItem.from_row({**updated, "links": link_rows})
        logger.info("[CONTENT] Updated content %s (%s)", content_id, ", ".join(sorted(fields)))
        await self._event("Content updated", item)
        return item

    async def delete(self, content_id: str) -> None:
        """Delete an item; its links are removed with it.

        Raises:
            ContentNotFoundError: If no item has this id.
        """
        content_id = _required_text(content_id, "Content ID is required")
        if await self.db.get_content(content_id) is None:
            raise ContentNotFoundError(content_id)

        await self.db.delete_content(content_id)
        logger.info("[CONTENT] Deleted content %s", content_id)
        if self.events is not None:
            await self.events.info(LogComponent.CONTENT, "Content deleted", content_id=content_id)

    # ================================================================
    # INTERNAL HELPERS
    # ================================================================

    @staticmethod
    def _parse_rows(rows: Sequence[Dict[str, Any]]) -> List[ContentItem]:
        items: List[ContentItem] = []
        for row in rows:
            try:
                item = ContentItem.from_row(row)
            except MalformedRowError as exc:
                logger.warning("[CONTENT] Skipping malformed row: %s", exc)
                continue
            if not item.status_is_consistent():
                logger.warning(
                    "[CONTENT] Content %s has status %s inconsistent with its schedule fields",
                    item.id,
                    item.status.value if item.status else None,
                )
            items.append(item)
        return items

    async def _keep_publication_time(self, content_id: str, fields: Dict[str, Any]) -> None:
        # An item that is already published keeps its original published_at
        current = await self.db.get_content(content_id)
        if current is None:
            raise ContentNotFoundError(content_id)
        if current.get("status") == ContentStatus.PUBLISHED.value and current.get("published_at"):
            del fields["published_at"]

    async def _replace_links(
        self, content_id: str, links: List[ContentLink]
    ) -> List[Dict[str, Any]]:
        """Swap an item's links, putting the previous rows back if the insert fails."""
        previous = await self.db.get_links([content_id])
        await self.db.delete_links(content_id)
        try:
            return await self.db.insert_links([link.to_row(content_id) for link in links])
        except DatabaseError:
            logger.error(
                "[CONTENT] Link replacement failed, restoring %d links of %s",
                len(previous),
                content_id,
            )
            try:
                if previous:
                    await self.db.insert_links(previous)
            except DatabaseError as restore_exc:
                logger.error(
                    "[CONTENT] Could not restore links of %s: %s", content_id, restore_exc
                )
            raise

    async def _attach_links(self, items: List[ContentItem]) -> None:
        if not items:
            return
        by_content: Dict[str, List[ContentLink]] = {}
        for row in await self.db.get_links([item.id for item in items]):
            try:
                link = ContentLink.from_row(row)
            except MalformedRowError as exc:
                logger.warning("[CONTENT] Skipping malformed link: %s", exc)
                continue
            by_content.setdefault(str(link.content_id), []).append(link)
        for item in items:
            item.links = by_content.get(item.id, [])

    async def _event(self, message: str, item: ContentItem) -> None:
        if self.events is None:
            return
        await self.events.info(
            LogComponent.CONTENT,
            message,
            content_id=item.id,
            data={
                "status": item.status.value if item.status else None,
                "scheduled_at": to_iso(item.scheduled_at),
                "links": len(item.links),
            },
        )


# =============================================================================
# PAYLOAD VALIDATION
# =============================================================================


def _required_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value.strip()


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Description must be a string")
    return value.strip() or None


def _parse_status(value: Any) -> Optional[ContentStatus]:
    if value is None or value == "":
        return None
    try:
        return ContentStatus(value)
    except ValueError as exc:
        allowed = ", ".join(s.value for s in ContentStatus)
        raise ValidationError(f"Invalid status {value!r}. Must be one of: {allowed}") from exc


def _parse_links(raw: Any) -> List[ContentLink]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("At least one link is required")

    links: List[ContentLink] = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Each link must be an object")
        try:
            link_type = LinkType(entry.get("link_type"))
        except ValueError as exc:
            raise ValidationError('Invalid link type. Must be "article" or "stream"') from exc
        links.append(ContentLink(
            link_type=link_type,
            link_title=_required_text(entry.get("link_title"), "Link title is required"),
            link_url=_required_text(entry.get("link_url"), "Link URL is required"),
        ))
    return links


def _scheduled_fields(
    raw_scheduled_at: Any, requested: Optional[ContentStatus], now: datetime
) -> Dict[str, Any]:
    if requested not in (None, ContentStatus.SCHEDULED):
        raise ValidationError("Scheduled content must have status 'scheduled'")
    if raw_scheduled_at in (None, ""):
        raise ValidationError("Scheduled time is required for scheduled content")
    try:
        scheduled_at = parse_timestamp(raw_scheduled_at)
    except ValueError as exc:
        raise ValidationError("Invalid scheduled date format") from exc
    if scheduled_at <= now:
        raise ValidationError("Scheduled time must be in the future")
    return {
        "is_scheduled": True,
        "scheduled_at": to_iso(scheduled_at),
        "status": ContentStatus.SCHEDULED.value,
        "published_at": None,
    }


def _unscheduled_fields(requested: Optional[ContentStatus], now: datetime) -> Dict[str, Any]:
    if requested is ContentStatus.SCHEDULED:
        raise ValidationError("Status 'scheduled' requires is_scheduled and scheduled_at")
    status = requested or ContentStatus.PUBLISHED
    return {
        "is_scheduled": False,
        "scheduled_at": None,
        "status": status.value,
        "published_at": to_iso(now) if status is ContentStatus.PUBLISHED else None,
    }


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ContentService",
]
