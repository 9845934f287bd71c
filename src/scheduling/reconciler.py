"""
Scheduling reconciler: publishes content whose scheduled time has passed.

``ScheduleReconciler`` brings the persisted ``status`` / ``published_at`` /
``is_scheduled`` / ``scheduled_at`` fields into agreement with wall-clock
time for every overdue item.  It is idempotent and needs no lock:

1. Read every item still marked scheduled.
2. Keep the ones whose ``scheduled_at <= now`` by comparing parsed
   instants in-process (never trusting a store-side string compare).
3. Return early without a write when nothing is overdue.
4. Transition all overdue ids in a single batched write that only
   matches rows still marked scheduled.

Because a transitioned row no longer matches step 1, a repeated or
concurrent sweep cannot publish it twice; a lost race only lowers the
count the store reports.

All database interactions go through the ``db`` parameter (a
:class:`~src.database.SupabaseDB` instance).
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from src.content.models import ContentItem, ContentStatus
from src.exceptions import MalformedRowError
from src.logging import EventLogger, LogComponent
from src.scheduling.models import ReconcileResult, SweepStats
from src.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class ScheduleReconciler:
    """Publishes overdue scheduled content.

    Args:
        db: Database client (:class:`~src.database.SupabaseDB`).
        events: Optional structured event sink.
        failure_alert_threshold: Consecutive failed sweeps after which
            every further failure is reported at ERROR as an alert.
    """

    def __init__(
        self,
        db: "SupabaseDB",  # noqa: F821
        events: Optional[EventLogger] = None,
        failure_alert_threshold: int = 3,
    ) -> None:
        self.db = db
        self.events = events
        self.failure_alert_threshold = failure_alert_threshold
        self.stats = SweepStats()

    # ================================================================
    # ENTRY POINTS
    # ================================================================

    async def reconcile(self, now: Optional[datetime] = None) -> int:
        """Run one sweep, containing every failure.

        Args:
            now: Reference instant.  Defaults to the current UTC time.

        Returns:
            Number of items the store reports as transitioned; ``0`` when
            nothing was due or the sweep failed.
        """
        try:
            result = await self.publish_overdue(now)
        except Exception as exc:
            logger.error("[RECONCILER] Sweep aborted, nothing published this round: %s", exc)
            return 0
        return result.published

    async def publish_overdue(self, now: Optional[datetime] = None) -> ReconcileResult:
        """Run one sweep and propagate store failures.

        Used by the admin trigger, whose caller can see the error and
        retry.  Failures are still counted in :attr:`stats`.

        Raises:
            DatabaseError: If candidate selection or the batched write fails.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        try:
            result = await self._reconcile(now)
        except Exception as exc:
            await self._record_failure(now, exc)
            raise
        await self._record_success(now, result)
        return result

    # ================================================================
    # CORE PASS
    # ================================================================

    async def _reconcile(self, now: datetime) -> ReconcileResult:
        started = time.monotonic()
        rows = await self.db.get_scheduled_candidates()
        result = ReconcileResult(reference_time=now, candidates=len(rows))

        overdue, result.skipped_malformed = self._partition(rows, now)
        result.overdue = len(overdue)

        if result.skipped_malformed and self.events is not None:
            await self.events.warning(
                LogComponent.RECONCILER,
                "Skipped malformed scheduled rows",
                data={"skipped": result.skipped_malformed, "candidates": result.candidates},
            )

        if not overdue:
            logger.info(
                "[RECONCILER] No overdue content at %s (%d scheduled)",
                now.isoformat(),
                len(rows),
            )
            return result

        logger.info("[RECONCILER] Found %d overdue items, publishing", len(overdue))
        for item in overdue:
            await self._log_overdue(item, now)

        updated = await self.db.publish_content_batch([item.id for item in overdue], now)
        result.published_ids = [str(row["id"]) for row in updated if row.get("id")]

        if result.published < result.overdue:
            logger.info(
                "[RECONCILER] %d of %d overdue items were already published by another sweep",
                result.overdue - result.published,
                result.overdue,
            )
        logger.info(
            "[RECONCILER] Auto-published %d items at %s",
            result.published,
            now.isoformat(),
        )
        if self.events is not None:
            await self.events.info(
                LogComponent.RECONCILER,
                "Sweep completed",
                data={
                    "candidates": result.candidates,
                    "overdue": result.overdue,
                    "published": result.published,
                    "reference_time": now.isoformat(),
                },
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        return result

    def select_overdue(
        self, rows: List[Dict[str, Any]], now: datetime
    ) -> List[ContentItem]:
        """Keep the candidate rows whose scheduled instant has elapsed.

        This is the authoritative time filter.  Rows that fail to parse
        are skipped with a warning instead of failing the sweep.
        """
        return self._partition(rows, now)[0]

    @staticmethod
    def _partition(
        rows: List[Dict[str, Any]], now: datetime
    ) -> Tuple[List[ContentItem], int]:
        now = ensure_utc(now)
        overdue: List[ContentItem] = []
        skipped = 0

        for row in rows:
            try:
                item = ContentItem.from_row(row)
            except MalformedRowError as exc:
                skipped += 1
                logger.warning("[RECONCILER] Skipping candidate: %s", exc)
                continue

            if item.status is not ContentStatus.SCHEDULED or not item.is_scheduled:
                continue
            if item.scheduled_at is None or item.scheduled_at > now:
                continue
            overdue.append(item)

        return overdue, skipped

    # ================================================================
    # OBSERVABILITY
    # ================================================================

    async def _log_overdue(self, item: ContentItem, now: datetime) -> None:
        seconds_overdue = int((now - item.scheduled_at).total_seconds())
        logger.info(
            "[RECONCILER]   - %s %r (scheduled for %s, %ds overdue)",
            item.id,
            item.title,
            item.scheduled_at.isoformat(),
            seconds_overdue,
        )
        if self.events is not None:
            await self.events.info(
                LogComponent.RECONCILER,
                "Publishing overdue content",
                content_id=item.id,
                data={
                    "title": item.title,
                    "scheduled_at": item.scheduled_at.isoformat(),
                    "seconds_overdue": seconds_overdue,
                },
            )

    async def _record_success(self, now: datetime, result: ReconcileResult) -> None:
        streak = self.stats.consecutive_failures
        self.stats.record_success(now, result.published)
        if streak:
            logger.info("[RECONCILER] Sweeps recovered after %d consecutive failures", streak)

    async def _record_failure(self, now: datetime, error: Exception) -> None:
        self.stats.record_failure(now, error)
        streak = self.stats.consecutive_failures
        if streak >= self.failure_alert_threshold:
            logger.error(
                "[RECONCILER] ALERT: %d consecutive sweep failures, scheduled "
                "content is not being published (last error: %s)",
                streak,
                self.stats.last_error,
            )
        else:
            logger.warning(
                "[RECONCILER] Sweep failed (%d in a row): %s",
                streak,
                error,
            )
        if self.events is not None:
            await self.events.error(
                LogComponent.RECONCILER,
                "Sweep failed",
                error=error,
                data={"consecutive_failures": streak},
            )


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ScheduleReconciler",
]
