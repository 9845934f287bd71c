"""
Background sweep trigger that decides *when* the reconciler runs.

``SweepTrigger`` owns one asyncio background task for the lifetime of the
application:

- one sweep ``startup_delay_seconds`` after :meth:`start`, to catch items
  that became due while the process was down;
- then one sweep every ``interval_seconds`` on a fixed-rate clock.

Each sweep is spawned as its own task, so a slow sweep never delays the
next tick; overlapping sweeps are safe because the reconciler is
idempotent.  On-demand sweeps (admin and debug routes) go through
:meth:`run_sweep` as well.
"""

import asyncio
import logging
from typing import Optional, Set

from src.scheduling.models import SweepSource
from src.scheduling.reconciler import ScheduleReconciler

logger = logging.getLogger(__name__)


class SweepTrigger:
    """Background task that sweeps scheduled content at a fixed rate.

    Args:
        reconciler: The reconciler to invoke.
        interval_seconds: Fixed period between sweep starts
            (default: one hour).
        startup_delay_seconds: Delay before the first sweep
            (default: 10 seconds).
    """

    def __init__(
        self,
        reconciler: ScheduleReconciler,
        interval_seconds: float = 3600.0,
        startup_delay_seconds: float = 10.0,
    ) -> None:
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self._running: bool = False
        self._ticker: Optional["asyncio.Task[None]"] = None
        self._sweeps: Set["asyncio.Task[int]"] = set()

    # ================================================================
    # LIFECYCLE
    # ================================================================

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the ticker in the background and return immediately."""
        if self._running:
            logger.warning("[SWEEP] Sweep trigger already running")
            return
        self._running = True
        self._ticker = asyncio.create_task(self._tick_loop(), name="sweep-ticker")
        logger.info(
            "[SWEEP] Sweep trigger started (first sweep in %.0fs, then every %.0fs)",
            self.startup_delay_seconds,
            self.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the ticker and cancel sweeps still in flight.

        A cancelled sweep leaves the store consistent: its batched write
        either happened or it did not, and the next process start sweeps
        again.
        """
        self._running = False
        tasks = list(self._sweeps)
        if self._ticker is not None:
            tasks.append(self._ticker)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker = None
        self._sweeps.clear()
        logger.info("[SWEEP] Sweep trigger stopped")

    # ================================================================
    # SWEEPS
    # ================================================================

    async def run_sweep(self, source: SweepSource) -> int:
        """Run one contained sweep.

        Never raises: a failing sweep is logged and counts as zero
        published, and the next sweep retries.

        Returns:
            Number of items published by this sweep.
        """
        logger.info("[SWEEP] Starting %s sweep", source.value)
        try:
            published = await self.reconciler.reconcile()
        except asyncio.CancelledError:
            logger.info("[SWEEP] %s sweep cancelled", source.value)
            raise
        except Exception:
            logger.exception("[SWEEP] Unexpected error in %s sweep", source.value)
            return 0
        logger.info("[SWEEP] %s sweep finished: %d published", source.value, published)
        return published

    def _spawn(self, source: SweepSource) -> "asyncio.Task[int]":
        task = asyncio.create_task(self.run_sweep(source), name=f"sweep-{source.value}")
        self._sweeps.add(task)
        task.add_done_callback(self._sweeps.discard)
        return task

    async def _tick_loop(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await asyncio.sleep(self.startup_delay_seconds)
            if not self._running:
                return
            self._spawn(SweepSource.STARTUP)

            next_tick = loop.time() + self.interval_seconds
            while self._running:
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                if not self._running:
                    break
                self._spawn(SweepSource.PERIODIC)
                next_tick += self.interval_seconds
        except asyncio.CancelledError:
            logger.debug("[SWEEP] Ticker cancelled")
            raise


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "SweepTrigger",
]
