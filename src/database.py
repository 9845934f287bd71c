"""
Unified async Content Store client.

ALL database operations go through the SupabaseDB class defined here.
No direct Supabase calls should appear anywhere else in the codebase.

The client is created once by the application lifespan and injected into
the reconciler, the content service and the request handlers::

    from src.database import SupabaseDB

    db = await SupabaseDB.create(timeout_seconds=settings.store_timeout_seconds)
    rows = await db.get_scheduled_candidates()

Every public method is bounded by ``timeout_seconds`` and raises
:class:`~src.exceptions.DatabaseError` (or its subclass
:class:`~src.exceptions.StoreTimeoutError`) on failure.  Methods return raw
row dicts; parsing into typed models happens in the callers so that a
malformed row can be skipped without failing the whole query.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from postgrest.exceptions import APIError
from supabase import AsyncClient, create_async_client

from src.exceptions import DatabaseError, ValidationError
from src.utils import to_iso, with_timeout

logger = logging.getLogger(__name__)

CONTENT_TABLE = "content"
LINKS_TABLE = "content_links"
USERS_TABLE = "users"

ADMIN_ROLE = "admin"


# =============================================================================
# VALIDATION HELPERS
# =============================================================================


def validate_not_empty(value: Any, name: str) -> None:
    """Validate that *value* is not ``None`` or an empty string.

    Raises:
        ValidationError: If *value* is ``None`` or a blank string.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} cannot be empty string")


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Supabase configuration loaded from environment variables.

    Attributes:
        url: The Supabase project URL (``SUPABASE_URL``).
        key: The API key, ``SUPABASE_SERVICE_KEY`` when set, otherwise
            ``SUPABASE_ANON_KEY``.
    """

    url: str
    key: str

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Create a config instance from environment variables.

        Raises:
            ValueError: If the URL or both keys are missing or empty.
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY") or os.environ.get("SUPABASE_ANON_KEY")

        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY (or SUPABASE_ANON_KEY) must be set"
            )

        return cls(url=url, key=key)


# =============================================================================
# SUPABASE DATABASE CLIENT
# =============================================================================


class SupabaseDB:
    """Unified **async** Content Store client.

    **Important:** Use the :meth:`create` factory method instead of
    ``__init__`` when talking to a real project -- the underlying async
    client requires an ``await`` during initialisation.

    Args:
        client: A Supabase ``AsyncClient``.
        timeout_seconds: Deadline applied to every store call.
    """

    def __init__(self, client: AsyncClient, timeout_seconds: float = 10.0) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds

    @classmethod
    async def create(
        cls,
        config: Optional[SupabaseConfig] = None,
        timeout_seconds: float = 10.0,
    ) -> "SupabaseDB":
        """Factory method to create an async :class:`SupabaseDB` instance.

        Args:
            config: Optional configuration.  When ``None``,
                :meth:`SupabaseConfig.from_env` is used.
            timeout_seconds: Deadline applied to every store call.
        """
        config = config or SupabaseConfig.from_env()
        client = await create_async_client(config.url, config.key)
        logger.info("[DATABASE] Supabase client created for %s", config.url)
        return cls(client, timeout_seconds=timeout_seconds)

    async def _execute(self, query: Any, operation: str) -> Any:
        """Run a PostgREST query, translating API errors."""
        try:
            return await query.execute()
        except APIError as exc:
            message = getattr(exc, "message", None) or str(exc)
            logger.error("[DATABASE] %s failed: %s", operation, message)
            raise DatabaseError(f"{operation} failed: {message}", operation=operation) from exc

    # -----------------------------------------------------------------
    # SCHEDULED CONTENT (Reconciler)
    # -----------------------------------------------------------------

    @with_timeout(operation_name="get_scheduled_candidates")
    async def get_scheduled_candidates(self) -> List[Dict[str, Any]]:
        """Get every item still waiting for publication.

        No time filter is applied here: the reconciler compares instants
        itself, so a store-side offset cannot hide a due item.

        Returns:
            Rows with ``status='scheduled'``, ``is_scheduled=true`` and a
            non-null ``scheduled_at``, oldest schedule first.
        """
        result = await self._execute(
            self.client.table(CONTENT_TABLE)
            .select("*")
            .eq("status", "scheduled")
            .eq("is_scheduled", True)
            .not_.is_("scheduled_at", "null")
            .order("scheduled_at", desc=False),
            "get_scheduled_candidates",
        )
        return result.data or []

    @with_timeout(operation_name="publish_content_batch")
    async def publish_content_batch(
        self, content_ids: Sequence[str], published_at: datetime
    ) -> List[Dict[str, Any]]:
        """Transition scheduled items to published in one batched write.

        The update is conditional on the row still being scheduled, so a
        row already claimed by a concurrent sweep is left untouched and
        missing from the result.

        Args:
            content_ids: Ids of the overdue items.
            published_at: Publication instant (also used as ``updated_at``).

        Returns:
            The rows actually updated.
        """
        if not content_ids:
            raise ValidationError("content_ids cannot be empty")

        stamp = to_iso(published_at)
        result = await self._execute(
            self.client.table(CONTENT_TABLE)
            .update({
                "status": "published",
                "is_scheduled": False,
                "scheduled_at": None,
                "published_at": stamp,
                "updated_at": stamp,
            })
            .in_("id", list(content_ids))
            .eq("status", "scheduled")
            .eq("is_scheduled", True),
            "publish_content_batch",
        )
        return result.data or []

    @with_timeout(operation_name="get_recently_published")
    async def get_recently_published(self, since: datetime) -> List[Dict[str, Any]]:
        """Get items published at or after *since*, newest first."""
        result = await self._execute(
            self.client.table(CONTENT_TABLE)
            .select("*")
            .eq("status", "published")
            .not_.is_("published_at", "null")
            .gte("published_at", to_iso(since))
            .order("published_at", desc=True),
            "get_recently_published",
        )
        return result.data or []

    @with_timeout(operation_name="get_scheduled_content")
    async def get_scheduled_content(
        self, overdue_at: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Get time-gated items for diagnostics.

        Args:
            overdue_at: When given, restrict to ``status='scheduled'`` rows
                whose ``scheduled_at`` the *store* considers elapsed at this
                instant.  Used to compare against the in-process filter.
        """
        query = (
            self.client.table(CONTENT_TABLE)
            .select("*")
            .eq("is_scheduled", True)
            .not_.is_("scheduled_at", "null")
        )
        if overdue_at is not None:
            query = query.eq("status", "scheduled").lte("scheduled_at", to_iso(overdue_at))
        result = await self._execute(
            query.order("scheduled_at", desc=False), "get_scheduled_content"
        )
        return result.data or []

    @with_timeout(operation_name="count_content")
    async def count_content(self, status: Optional[str] = None) -> int:
        """Count content rows, optionally with a given status."""
        query = self.client.table(CONTENT_TABLE).select("id", count="exact")
        if status is not None:
            query = query.eq("status", status)
        result = await self._execute(query, "count_content")
        return result.count or 0

    # -----------------------------------------------------------------
    # CONTENT (Read paths)
    # -----------------------------------------------------------------

    @with_timeout(operation_name="get_content")
    async def get_content(self, content_id: str) -> Optional[Dict[str, Any]]:
        """Get a content row by id, or ``None`` if not found."""
        validate_not_empty(content_id, "content_id")

        result = await self._execute(
            self.client.table(CONTENT_TABLE)
            .select("*")
            .eq("id", content_id)
            .limit(1),
            "get_content",
        )
        return result.data[0] if result.data else None

    @with_timeout(operation_name="get_content_by_role")
    async def get_content_by_role(self, role_name: str) -> List[Dict[str, Any]]:
        """Get every content row for a role, newest first (admin view)."""
        validate_not_empty(role_name, "role_name")

        result = await self._execute(
            self.client.table(CONTENT_TABLE)
            .select("*")
            .eq("role_name", role_name)
            .order("created_at", desc=True),
            "get_content_by_role",
        )
        return result.data or []

    @with_timeout(operation_name="get_visible_content")
    async def get_visible_content(
        self,
        role_name: str,
        now: datetime,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Coarse store-side visibility query for end users.

        Admits rows that are not time-gated or whose ``scheduled_at`` the
        store considers elapsed.  The result must still go through
        :func:`src.content.visibility.visible`, which is authoritative.

        Args:
            role_name: Audience role.
            now: Reference instant.
            status: Optional requested status.  ``"published"`` also admits
                legacy rows without a status and scheduled rows whose time
                has passed.
        """
        validate_not_empty(role_name, "role_name")
        now_iso = to_iso(now)

        query = (
            self.client.table(CONTENT_TABLE)
            .select("*")
            .eq("role_name", role_name)
        )
        if status == "published":
            query = query.or_(
                "status.eq.published,status.is.null,"
                f"and(status.eq.scheduled,scheduled_at.lte.{now_iso})"
            )
        elif status is not None:
            query = query.eq("status", status)

        query = query.or_(
            "is_scheduled.eq.false,is_scheduled.is.null,"
            f"scheduled_at.is.null,scheduled_at.lte.{now_iso}"
        )
        result = await self._execute(
            query.order("created_at", desc=True), "get_visible_content"
        )
        return result.data or []

    @with_timeout(operation_name="get_links")
    async def get_links(self, content_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Get links for several items in one query, oldest first."""
        if not content_ids:
            return []

        result = await self._execute(
            self.client.table(LINKS_TABLE)
            .select("*")
            .in_("content_id", list(content_ids))
            .order("created_at", desc=False),
            "get_links",
        )
        return result.data or []

    # -----------------------------------------------------------------
    # CONTENT (Admin mutations)
    # -----------------------------------------------------------------

    @with_timeout(operation_name="insert_content")
    async def insert_content(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a content row.

        Returns:
            The inserted row as stored.

        Raises:
            ValidationError: If *row* is empty.
            DatabaseError: When the insert returns no data.
        """
        if not row:
            raise ValidationError("content row cannot be None or empty")

        result = await self._execute(
            self.client.table(CONTENT_TABLE).insert(row), "insert_content"
        )
        if not result.data:
            raise DatabaseError("Insert succeeded but returned no data", operation="insert_content")
        return result.data[0]

    @with_timeout(operation_name="insert_links")
    async def insert_links(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert link rows in one batch and return them as stored."""
        if not rows:
            raise ValidationError("links cannot be empty")

        result = await self._execute(
            self.client.table(LINKS_TABLE).insert(rows), "insert_links"
        )
        return result.data or []

    @with_timeout(operation_name="update_content")
    async def update_content(
        self, content_id: str, fields: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Update a content row.

        Returns:
            The updated row, or ``None`` if no row has this id.
        """
        validate_not_empty(content_id, "content_id")
        if not fields:
            raise ValidationError("update fields cannot be empty")

        result = await self._execute(
            self.client.table(CONTENT_TABLE)
            .update(fields)
            .eq("id", content_id),
            "update_content",
        )
        return result.data[0] if result.data else None

    @with_timeout(operation_name="delete_content")
    async def delete_content(self, content_id: str) -> None:
        """Delete a content row; its links cascade in the store."""
        validate_not_empty(content_id, "content_id")

        await self._execute(
            self.client.table(CONTENT_TABLE).delete().eq("id", content_id),
            "delete_content",
        )

    @with_timeout(operation_name="delete_links")
    async def delete_links(self, content_id: str) -> None:
        """Delete every link owned by a content item."""
        validate_not_empty(content_id, "content_id")

        await self._execute(
            self.client.table(LINKS_TABLE).delete().eq("content_id", content_id),
            "delete_links",
        )

    # -----------------------------------------------------------------
    # USERS & ROLES
    # -----------------------------------------------------------------

    @with_timeout(operation_name="get_user_role")
    async def get_user_role(self, telegram_id: int) -> Optional[str]:
        """Get the role name of a Telegram user.

        Returns:
            The joined ``roles.name``, or ``None`` when the user is unknown
            or has no role.
        """
        result = await self._execute(
            self.client.table(USERS_TABLE)
            .select("role_id, roles(name)")
            .eq("telegram_id", telegram_id)
            .limit(1),
            "get_user_role",
        )
        if not result.data:
            return None
        role = result.data[0].get("roles") or {}
        name = role.get("name") if isinstance(role, dict) else None
        return name or None

    async def is_admin(self, telegram_id: int) -> bool:
        """Check whether a Telegram user holds the admin role."""
        return await self.get_user_role(telegram_id) == ADMIN_ROLE
