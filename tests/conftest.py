"""Shared fixtures for the Mini-App content API test suite."""

import asyncio
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from unittest.mock import MagicMock

import pytest

from src.config import Settings, SweepConfig
from src.exceptions import DatabaseError
from src.utils import parse_timestamp, to_iso


# ---------------------------------------------------------------------------
# Ensure we don't hit real services during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear credentials and overrides so tests never hit real services."""
    keys = [
        "SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
        "SUPABASE_ANON_KEY",
        "APP_ENV",
        "PORT",
        "ENABLE_DEBUG_ROUTES",
        "DISPLAY_TIMEZONE",
        "LOG_LEVEL",
        "LOG_DIR",
        "STORE_TIMEOUT_SECONDS",
        "SWEEP_INTERVAL_SECONDS",
        "SWEEP_STARTUP_DELAY_SECONDS",
        "RECENT_PUBLISH_WINDOW_SECONDS",
        "SWEEP_FAILURE_ALERT_THRESHOLD",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests."""
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Mock Supabase client
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_supabase_client():
    """A mock Supabase async client with a chainable query builder.

    ``table_mock.result`` is what ``execute()`` returns; tests replace it.
    """
    client = MagicMock()
    table_mock = MagicMock()
    for name in (
        "select", "insert", "update", "delete", "eq", "gte", "lte",
        "in_", "is_", "or_", "order", "limit", "range", "single",
    ):
        getattr(table_mock, name).return_value = table_mock
    table_mock.not_ = table_mock
    table_mock.result = MagicMock(data=[], count=0)

    async def mock_execute():
        return table_mock.result

    table_mock.execute = mock_execute
    client.table.return_value = table_mock
    return client


# ---------------------------------------------------------------------------
# Content rows
# ---------------------------------------------------------------------------
def make_content_row(**overrides: Any) -> Dict[str, Any]:
    """A ``content`` row as PostgREST returns it; published by default."""
    row: Dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "role_name": "student",
        "title": "Lesson",
        "description": None,
        "is_scheduled": False,
        "scheduled_at": None,
        "published_at": "2025-06-01T09:00:00+00:00",
        "status": "published",
        "created_at": "2025-06-01T09:00:00+00:00",
        "updated_at": "2025-06-01T09:00:00+00:00",
    }
    row.update(overrides)
    return row


def make_scheduled_row(scheduled_at: datetime, **overrides: Any) -> Dict[str, Any]:
    fields = {
        "is_scheduled": True,
        "scheduled_at": to_iso(scheduled_at),
        "published_at": None,
        "status": "scheduled",
    }
    fields.update(overrides)
    return make_content_row(**fields)


@pytest.fixture
def content_row():
    return make_content_row


@pytest.fixture
def scheduled_row():
    return make_scheduled_row


# ---------------------------------------------------------------------------
# In-memory Content Store
# ---------------------------------------------------------------------------
class FakeContentStore:
    """In-memory stand-in for ``SupabaseDB`` used by scenario tests.

    Every awaited method yields to the event loop once, so concurrent
    sweeps interleave the way they would against a real store.  Set
    ``fail[operation]`` to an exception to make that operation raise.
    """

    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.links: List[Dict[str, Any]] = []
        self.user_roles: Dict[int, Optional[str]] = {}
        self.calls: Counter = Counter()
        self.fail: Dict[str, Exception] = {}

    def add(self, row: Dict[str, Any]) -> Dict[str, Any]:
        self.rows[str(row["id"])] = dict(row)
        return row

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        await asyncio.sleep(0)
        if operation in self.fail:
            raise self.fail[operation]

    # -- scheduled content ---------------------------------------------------

    async def get_scheduled_candidates(self) -> List[Dict[str, Any]]:
        await self._enter("get_scheduled_candidates")
        return [
            dict(r) for r in self.rows.values()
            if r.get("status") == "scheduled" and r.get("is_scheduled") is True
            and r.get("scheduled_at") is not None
        ]

    async def publish_content_batch(
        self, content_ids: Sequence[str], published_at: datetime
    ) -> List[Dict[str, Any]]:
        await self._enter("publish_content_batch")
        updated = []
        for content_id in content_ids:
            row = self.rows.get(content_id)
            if row is None or row.get("status") != "scheduled" or row.get("is_scheduled") is not True:
                continue
            row.update({
                "status": "published",
                "is_scheduled": False,
                "scheduled_at": None,
                "published_at": to_iso(published_at),
                "updated_at": to_iso(published_at),
            })
            updated.append(dict(row))
        return updated

    async def get_recently_published(self, since: datetime) -> List[Dict[str, Any]]:
        await self._enter("get_recently_published")
        return [
            dict(r) for r in self.rows.values()
            if r.get("status") == "published" and r.get("published_at")
            and parse_timestamp(r["published_at"]) >= since
        ]

    async def get_scheduled_content(self, overdue_at: Optional[datetime] = None) -> List[Dict[str, Any]]:
        await self._enter("get_scheduled_content")
        rows = [
            r for r in self.rows.values()
            if r.get("is_scheduled") is True and r.get("scheduled_at") is not None
        ]
        if overdue_at is not None:
            rows = [
                r for r in rows
                if r.get("status") == "scheduled" and r["scheduled_at"] <= to_iso(overdue_at)
            ]
        return [dict(r) for r in rows]

    # -- content -----------------------------------------------------------

    async def get_content(self, content_id: str) -> Optional[Dict[str, Any]]:
        await self._enter("get_content")
        row = self.rows.get(content_id)
        return dict(row) if row else None

    async def get_content_by_role(self, role_name: str) -> List[Dict[str, Any]]:
        await self._enter("get_content_by_role")
        rows = [dict(r) for r in self.rows.values() if r.get("role_name") == role_name]
        return sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)

    async def get_visible_content(
        self, role_name: str, now: datetime, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        await self._enter("get_visible_content")
        now_iso = to_iso(now)
        rows = []
        for r in self.rows.values():
            if r.get("role_name") != role_name:
                continue
            elapsed = r.get("scheduled_at") is not None and r["scheduled_at"] <= now_iso
            if status == "published":
                if r.get("status") not in ("published", None) and not (
                    r.get("status") == "scheduled" and elapsed
                ):
                    continue
            elif status is not None and r.get("status") != status:
                continue
            if r.get("is_scheduled") is True and r.get("scheduled_at") is not None and not elapsed:
                continue
            rows.append(dict(r))
        return rows

    async def get_links(self, content_ids: Sequence[str]) -> List[Dict[str, Any]]:
        await self._enter("get_links")
        wanted = set(content_ids)
        return [dict(link) for link in self.links if link["content_id"] in wanted]

    async def insert_content(self, row: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter("insert_content")
        stored = {"id": str(uuid.uuid4()), **row}
        self.rows[stored["id"]] = stored
        return dict(stored)

    async def insert_links(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        await self._enter("insert_links")
        stored = [{"id": str(uuid.uuid4()), **row} for row in rows]
        self.links.extend(stored)
        return [dict(link) for link in stored]

    async def update_content(self, content_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        await self._enter("update_content")
        row = self.rows.get(content_id)
        if row is None:
            return None
        row.update(fields)
        return dict(row)

    async def delete_content(self, content_id: str) -> None:
        await self._enter("delete_content")
        self.rows.pop(content_id, None)
        self.links = [link for link in self.links if link["content_id"] != content_id]

    async def delete_links(self, content_id: str) -> None:
        await self._enter("delete_links")
        self.links = [link for link in self.links if link["content_id"] != content_id]

    # -- users -------------------------------------------------------------

    async def get_user_role(self, telegram_id: int) -> Optional[str]:
        await self._enter("get_user_role")
        return self.user_roles.get(telegram_id)

    async def is_admin(self, telegram_id: int) -> bool:
        return await self.get_user_role(telegram_id) == "admin"


@pytest.fixture
def fake_store():
    return FakeContentStore()


@pytest.fixture
def store_failure():
    return DatabaseError("connection refused", operation="test")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@pytest.fixture
def test_settings(tmp_path):
    """Settings with quiet sweeps and event logs under ``tmp_path``."""
    return Settings(
        environment="test",
        log_dir=str(tmp_path / "logs"),
        sweep=SweepConfig(interval_seconds=3600.0, startup_delay_seconds=3600.0),
    )

