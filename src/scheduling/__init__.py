"""Scheduling subsystem: reconciliation of scheduled content and sweep timing."""

from src.scheduling.models import ReconcileResult, SweepSource, SweepStats
from src.scheduling.reconciler import ScheduleReconciler
from src.scheduling.sweep_trigger import SweepTrigger

__all__ = [
    "ReconcileResult",
    "SweepSource",
    "SweepStats",
    "ScheduleReconciler",
    "SweepTrigger",
]
