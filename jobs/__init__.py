"""Long-running jobs."""

from .quota_monitor import QuotaMonitor

__all__ = ["QuotaMonitor"]
