"""Provider-agnostic quota snapshot models."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class QuotaWindow:
    """One monitored quota period (e.g. the 5-hour or 7-day allowance).

    ``utilization`` and ``reset_at`` always come from the same observation,
    recorded as ``observed_at``. A window the upstream did not report is
    simply absent from its snapshot.
    """

    period: str
    utilization: float
    reset_at: datetime
    observed_at: datetime
    window_seconds: Optional[int] = None

    @property
    def remaining(self) -> float:
        return max(0.0, 100.0 - self.utilization)

    @property
    def time_until_reset(self) -> timedelta:
        return max(timedelta(0), self.reset_at - self.observed_at)

    def time_until_reset_at(self, now: datetime) -> timedelta:
        """Time to reset measured from ``now`` rather than the observation."""
        return max(timedelta(0), self.reset_at - now)


@dataclass(frozen=True)
class ProviderSnapshot:
    """All windows reported by one provider in a single fetch."""

    provider: str
    windows: tuple[QuotaWindow, ...]
    captured_at: datetime
    plan_type: Optional[str] = None

    def get(self, period: str) -> Optional[QuotaWindow]:
        for window in self.windows:
            if window.period == period:
                return window
        return None

    def longer_sibling(self, window: QuotaWindow) -> Optional[QuotaWindow]:
        """Longest other window that outlasts ``window``, if any."""
        if window.window_seconds is None:
            return None
        longer = [
            w for w in self.windows
            if w is not window
            and w.window_seconds is not None
            and w.window_seconds > window.window_seconds
        ]
        if not longer:
            return None
        return max(longer, key=lambda w: w.window_seconds)


@dataclass(frozen=True)
class QuotaSnapshot:
    """One poll result, possibly spanning several providers."""

    providers: tuple[ProviderSnapshot, ...]
    captured_at: datetime
    errors: tuple[str, ...] = field(default=())

    def get(self, provider: str) -> Optional[ProviderSnapshot]:
        for snapshot in self.providers:
            if snapshot.provider == provider:
                return snapshot
        return None

    def iter_windows(self):
        """Yield (provider_snapshot, window) pairs in display order."""
        for snapshot in self.providers:
            for window in snapshot.windows:
                yield snapshot, window


def format_duration(delta: timedelta) -> str:
    """Format a time-to-reset as ``"3h 12m"`` or ``"45m"``."""
    total_minutes = int(delta.total_seconds() // 60)
    if total_minutes < 0:
        total_minutes = 0
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_reset_time(moment: datetime, tz: ZoneInfo) -> str:
    """Format a reset instant as a 24h clock in the display timezone."""
    local = moment.astimezone(tz)
    now_local = datetime.now(tz)
    if local.date() == now_local.date():
        return local.strftime("%H:%M")
    return local.strftime("%m/%d %H:%M")


def format_window_period(seconds: int, fallback: str) -> str:
    """Name a window after its length: ``"30-min"``, ``"5-hour"``, ``"7-day"``."""
    if not seconds or seconds <= 0:
        return fallback
    if seconds < 3600:
        return f"{round(seconds / 60)}-min"
    if seconds % 86400 == 0:
        return f"{seconds // 86400}-day"
    hours = seconds / 3600
    if hours.is_integer():
        return f"{int(hours)}-hour"
    return f"{hours:.1f}-hour"
