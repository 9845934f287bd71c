"""
Tests for src.scheduling.reconciler.ScheduleReconciler.

Scenario tests run against the in-memory ``fake_store`` fixture, which
yields to the event loop on every call so overlapping sweeps interleave.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from src.content.models import ContentItem, ContentStatus
from src.exceptions import DatabaseError, StoreTimeoutError
from src.logging import EventLogger, LogComponent, LogLevel
from src.scheduling import ScheduleReconciler
from src.utils import parse_timestamp


T = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def reconciler(fake_store):
    return ScheduleReconciler(fake_store, failure_alert_threshold=2)


def _stored(fake_store, content_id):
    return ContentItem.from_row(fake_store.rows[content_id])


# ===========================================================================
# Due / not due
# ===========================================================================


class TestPublishing:

    @pytest.mark.asyncio
    async def test_not_due_one_second_before(self, fake_store, reconciler, scheduled_row):
        fake_store.add(scheduled_row(T, id="c-1"))

        count = await reconciler.reconcile(T - timedelta(seconds=1))

        assert count == 0
        assert fake_store.rows["c-1"]["status"] == "scheduled"

    @pytest.mark.asyncio
    async def test_due_one_second_after(self, fake_store, reconciler, scheduled_row):
        fake_store.add(scheduled_row(T, id="c-1"))
        now = T + timedelta(seconds=1)

        count = await reconciler.reconcile(now)

        assert count == 1
        item = _stored(fake_store, "c-1")
        assert item.status is ContentStatus.PUBLISHED
        assert item.published_at == now

    @pytest.mark.asyncio
    async def test_due_exactly_at_scheduled_time(self, fake_store, reconciler, scheduled_row):
        fake_store.add(scheduled_row(T, id="c-1"))
        assert await reconciler.reconcile(T) == 1

    @pytest.mark.asyncio
    async def test_transitioned_items_satisfy_status_invariant(
        self, fake_store, reconciler, scheduled_row
    ):
        for i in range(3):
            fake_store.add(scheduled_row(T - timedelta(minutes=i), id=f"c-{i}"))

        assert await reconciler.reconcile(T) == 3

        for i in range(3):
            item = _stored(fake_store, f"c-{i}")
            assert item.status is ContentStatus.PUBLISHED
            assert item.is_scheduled is False
            assert item.scheduled_at is None
            assert item.published_at is not None
            assert item.status_is_consistent()

    @pytest.mark.asyncio
    async def test_only_overdue_subset_is_written(self, fake_store, reconciler, scheduled_row):
        fake_store.add(scheduled_row(T - timedelta(hours=1), id="due"))
        fake_store.add(scheduled_row(T + timedelta(hours=1), id="future"))

        result = await reconciler.publish_overdue(T)

        assert result.candidates == 2
        assert result.overdue == 1
        assert result.published_ids == ["due"]
        assert fake_store.rows["future"]["status"] == "scheduled"
        assert fake_store.calls["publish_content_batch"] == 1

    @pytest.mark.asyncio
    async def test_offset_timestamps_compared_as_instants(
        self, fake_store, reconciler, content_row
    ):
        # 14:59 at +03:00 is 11:59Z, already due at 12:00Z
        fake_store.add(content_row(
            id="msk", status="scheduled", is_scheduled=True, published_at=None,
            scheduled_at="2025-06-15T14:59:00+03:00",
        ))
        assert await reconciler.reconcile(T) == 1


# ===========================================================================
# Idempotence and races
# ===========================================================================


class TestIdempotence:

    @pytest.mark.asyncio
    async def test_second_sweep_publishes_nothing(self, fake_store, reconciler, scheduled_row):
        fake_store.add(scheduled_row(T - timedelta(minutes=5), id="c-1"))

        first = await reconciler.reconcile(T)
        published_at = fake_store.rows["c-1"]["published_at"]
        second = await reconciler.reconcile(T + timedelta(seconds=30))

        assert (first, second) == (1, 0)
        assert fake_store.rows["c-1"]["published_at"] == published_at

    @pytest.mark.asyncio
    async def test_overlapping_sweeps_publish_once(self, fake_store, scheduled_row):
        fake_store.add(scheduled_row(T - timedelta(seconds=10), id="c-1"))
        first = ScheduleReconciler(fake_store)
        second = ScheduleReconciler(fake_store)

        counts = await asyncio.gather(first.reconcile(T), second.reconcile(T))

        # both read the row before either wrote it
        assert fake_store.calls["publish_content_batch"] == 2
        assert sum(counts) == 1

    @pytest.mark.asyncio
    async def test_lost_race_is_logged_not_raised(self, fake_store, reconciler, scheduled_row, caplog):
        fake_store.add(scheduled_row(T - timedelta(seconds=10), id="c-1"))
        caplog.set_level(logging.INFO)

        await asyncio.gather(reconciler.reconcile(T), reconciler.reconcile(T))

        assert "already published by another sweep" in caplog.text
        assert reconciler.stats.failures == 0


# ===========================================================================
# No write when nothing is due
# ===========================================================================


class TestNoOverdue:

    @pytest.mark.asyncio
    async def test_empty_store_issues_no_write(self, fake_store, reconciler):
        assert await reconciler.reconcile(T) == 0
        assert fake_store.calls["get_scheduled_candidates"] == 1
        assert fake_store.calls["publish_content_batch"] == 0

    @pytest.mark.asyncio
    async def test_only_future_items_issues_no_write(self, fake_store, reconciler, scheduled_row):
        fake_store.add(scheduled_row(T + timedelta(minutes=1)))
        assert await reconciler.reconcile(T) == 0
        assert fake_store.calls["publish_content_batch"] == 0

    @pytest.mark.asyncio
    async def test_no_overdue_counts_as_successful_sweep(self, fake_store, reconciler):
        await reconciler.reconcile(T)
        assert reconciler.stats.sweeps == 1
        assert reconciler.stats.last_success_at == T


# ===========================================================================
# Malformed rows
# ===========================================================================


class TestMalformedRows:

    @pytest.mark.asyncio
    async def test_bad_row_is_skipped_and_rest_published(
        self, fake_store, reconciler, scheduled_row, content_row, caplog
    ):
        fake_store.add(content_row(
            id="bad", status="scheduled", is_scheduled=True, scheduled_at="soon",
        ))
        fake_store.add(scheduled_row(T - timedelta(minutes=1), id="good"))

        result = await reconciler.publish_overdue(T)

        assert result.skipped_malformed == 1
        assert result.published_ids == ["good"]
        assert fake_store.rows["bad"]["status"] == "scheduled"
        assert "Skipping candidate" in caplog.text

    def test_select_overdue_ignores_inconsistent_rows(self, reconciler, scheduled_row):
        rows = [
            scheduled_row(T - timedelta(minutes=1), id="ok"),
            scheduled_row(T - timedelta(minutes=1), id="flag-off", is_scheduled=False),
            scheduled_row(T - timedelta(minutes=1), id="published", status="published"),
        ]
        assert [item.id for item in reconciler.select_overdue(rows, T)] == ["ok"]


# ===========================================================================
# Failures
# ===========================================================================


class TestFailures:

    @pytest.mark.asyncio
    async def test_reconcile_contains_store_failure(self, fake_store, reconciler, store_failure):
        fake_store.fail["get_scheduled_candidates"] = store_failure

        assert await reconciler.reconcile(T) == 0
        assert reconciler.stats.failures == 1
        assert "connection refused" in reconciler.stats.last_error

    @pytest.mark.asyncio
    async def test_publish_overdue_propagates(self, fake_store, reconciler, scheduled_row):
        fake_store.add(scheduled_row(T - timedelta(minutes=1), id="c-1"))
        fake_store.fail["publish_content_batch"] = StoreTimeoutError("publish_content_batch", 10)

        with pytest.raises(DatabaseError):
            await reconciler.publish_overdue(T)
        assert fake_store.rows["c-1"]["status"] == "scheduled"

    @pytest.mark.asyncio
    async def test_failed_sweep_is_retried_by_next(
        self, fake_store, reconciler, scheduled_row, store_failure
    ):
        fake_store.add(scheduled_row(T - timedelta(minutes=1), id="c-1"))
        fake_store.fail["publish_content_batch"] = store_failure
        assert await reconciler.reconcile(T) == 0

        del fake_store.fail["publish_content_batch"]
        assert await reconciler.reconcile(T + timedelta(hours=1)) == 1

    @pytest.mark.asyncio
    async def test_alert_after_consecutive_failures(
        self, fake_store, reconciler, store_failure, caplog
    ):
        fake_store.fail["get_scheduled_candidates"] = store_failure

        await reconciler.reconcile(T)
        assert "ALERT" not in caplog.text
        await reconciler.reconcile(T)
        assert "ALERT: 2 consecutive sweep failures" in caplog.text
        assert reconciler.stats.consecutive_failures == 2

    @pytest.mark.asyncio
    async def test_success_resets_streak(self, fake_store, reconciler, store_failure, caplog):
        caplog.set_level(logging.INFO)
        fake_store.fail["get_scheduled_candidates"] = store_failure
        await reconciler.reconcile(T)
        await reconciler.reconcile(T)

        del fake_store.fail["get_scheduled_candidates"]
        await reconciler.reconcile(T)

        assert reconciler.stats.consecutive_failures == 0
        assert reconciler.stats.failures == 2
        assert "recovered after 2 consecutive failures" in caplog.text


# ===========================================================================
# Events
# ===========================================================================


@pytest.mark.asyncio
async def test_sweep_emits_structured_events(fake_store, scheduled_row):
    events = EventLogger(log_dir=None)
    reconciler = ScheduleReconciler(fake_store, events=events)
    fake_store.add(scheduled_row(T - timedelta(seconds=90), id="c-1"))

    await reconciler.reconcile(T)

    entries = events.get_recent(component=LogComponent.RECONCILER)
    assert [e.message for e in entries] == ["Publishing overdue content", "Sweep completed"]
    assert entries[0].content_id == "c-1"
    assert entries[0].data["seconds_overdue"] == 90
    assert entries[1].data["published"] == 1
    assert parse_timestamp(entries[1].data["reference_time"]) == T
    assert entries[1].duration_ms is not None
    assert entries[1].duration_ms >= 0


@pytest.mark.asyncio
async def test_malformed_candidates_emit_warning_event(fake_store, content_row):
    events = EventLogger(log_dir=None)
    reconciler = ScheduleReconciler(fake_store, events=events)
    fake_store.add(content_row(
        id="bad", status="scheduled", is_scheduled=True, scheduled_at="soon",
    ))

    assert await reconciler.reconcile(T) == 0

    [entry] = events.get_recent(component=LogComponent.RECONCILER, min_level=LogLevel.WARNING)
    assert entry.message == "Skipped malformed scheduled rows"
    assert entry.data == {"skipped": 1, "candidates": 1}
