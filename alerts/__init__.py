"""Quota alert state machine: tiers, decisions, persistence and reports."""

from .thresholds import TIERS, classify
from .engine import AlertDecision, AlertState, PendingAlert, decide, state_key
from .state_store import AlertStateStore, FileAlertStateStore, MemoryAlertStateStore
from .report import ReportCursor, is_report_due

__all__ = [
    "TIERS",
    "classify",
    "AlertDecision",
    "AlertState",
    "PendingAlert",
    "decide",
    "state_key",
    "AlertStateStore",
    "FileAlertStateStore",
    "MemoryAlertStateStore",
    "ReportCursor",
    "is_report_due",
]
