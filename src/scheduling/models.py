"""
Scheduling data models: ReconcileResult, SweepSource, SweepStats.

Defines the core data structures used by the scheduling subsystem:
- ``ReconcileResult``: Outcome of one reconciliation pass.
- ``SweepSource``: What triggered a sweep.
- ``SweepStats``: Running health counters, exposed via ``/api/health``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from src.utils import to_iso


# =============================================================================
# RECONCILE RESULT
# =============================================================================


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass.

    Attributes:
        reference_time: The ``now`` the pass compared against.
        candidates: Rows returned by candidate selection.
        overdue: Candidates whose ``scheduled_at`` had elapsed.
        published_ids: Ids the store reports as transitioned.  May be
            shorter than ``overdue`` when a concurrent sweep won the race.
        skipped_malformed: Candidates dropped because a row failed to parse.
    """

    reference_time: datetime
    candidates: int = 0
    overdue: int = 0
    published_ids: List[str] = field(default_factory=list)
    skipped_malformed: int = 0

    @property
    def published(self) -> int:
        return len(self.published_ids)


# =============================================================================
# SWEEP SOURCE
# =============================================================================


class SweepSource(Enum):
    """What triggered a sweep."""

    STARTUP = "startup"
    PERIODIC = "periodic"
    DEBUG = "debug"


# =============================================================================
# SWEEP STATS
# =============================================================================


@dataclass
class SweepStats:
    """Running health counters of the reconciler.

    A failed sweep publishes nothing and is retried by the next one, so
    the only signal of a persistent store problem is a growing
    ``consecutive_failures``.
    """

    sweeps: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    total_published: int = 0
    last_sweep_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def record_success(self, at: datetime, published: int) -> None:
        self.sweeps += 1
        self.total_published += published
        self.consecutive_failures = 0
        self.last_sweep_at = at
        self.last_success_at = at

    def record_failure(self, at: datetime, error: BaseException) -> None:
        self.sweeps += 1
        self.failures += 1
        self.consecutive_failures += 1
        self.last_sweep_at = at
        self.last_error = f"{type(error).__name__}: {error}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sweeps": self.sweeps,
            "failures": self.failures,
            "consecutive_failures": self.consecutive_failures,
            "total_published": self.total_published,
            "last_sweep_at": to_iso(self.last_sweep_at),
            "last_success_at": to_iso(self.last_success_at),
            "last_error": self.last_error,
        }


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ReconcileResult",
    "SweepSource",
    "SweepStats",
]
