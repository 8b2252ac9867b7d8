"""Alert and daily report payloads.

These carry the complete field set a notification needs; the webhook
layer decides how they look on the wire.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from providers.models import QuotaSnapshot, QuotaWindow
from .engine import PendingAlert


@dataclass(frozen=True)
class WindowStatus:
    """Point-in-time status of one window."""
    period: str
    utilization: float
    time_until_reset: timedelta
    reset_at: datetime

    @classmethod
    def from_window(cls, window: QuotaWindow) -> "WindowStatus":
        return cls(
            period=window.period,
            utilization=window.utilization,
            time_until_reset=window.time_until_reset,
            reset_at=window.reset_at,
        )

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "utilization": self.utilization,
            "time_until_reset_seconds": int(self.time_until_reset.total_seconds()),
            "reset_at": self.reset_at.isoformat(),
        }


@dataclass(frozen=True)
class AlertPayload:
    """A tier crossing for one window."""
    provider: str
    window: WindowStatus
    tier: int
    created_at: datetime
    sibling: Optional[WindowStatus] = None

    @property
    def period(self) -> str:
        return self.window.period

    @property
    def utilization(self) -> float:
        return self.window.utilization

    def to_dict(self) -> dict:
        return {
            "type": "alert",
            "provider": self.provider,
            "period": self.window.period,
            "utilization": self.window.utilization,
            "tier": self.tier,
            "time_until_reset_seconds": int(self.window.time_until_reset.total_seconds()),
            "reset_at": self.window.reset_at.isoformat(),
            "sibling": self.sibling.to_dict() if self.sibling else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ProviderReport:
    provider: str
    windows: tuple[WindowStatus, ...]
    plan_type: Optional[str] = None


@dataclass(frozen=True)
class ReportPayload:
    """Daily summary of every enabled provider."""
    captured_at: datetime
    providers: tuple[ProviderReport, ...]
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "type": "report",
            "captured_at": self.captured_at.isoformat(),
            "providers": [
                {
                    "provider": p.provider,
                    "plan_type": p.plan_type,
                    "windows": [w.to_dict() for w in p.windows],
                }
                for p in self.providers
            ],
            "errors": list(self.errors),
        }


def build_alert_payload(alert: PendingAlert, created_at: datetime) -> AlertPayload:
    return AlertPayload(
        provider=alert.provider,
        window=WindowStatus.from_window(alert.window),
        tier=alert.tier,
        created_at=created_at,
        sibling=WindowStatus.from_window(alert.sibling) if alert.sibling else None,
    )


def build_report_payload(snapshot: QuotaSnapshot) -> ReportPayload:
    return ReportPayload(
        captured_at=snapshot.captured_at,
        providers=tuple(
            ProviderReport(
                provider=p.provider,
                windows=tuple(WindowStatus.from_window(w) for w in p.windows),
                plan_type=p.plan_type,
            )
            for p in snapshot.providers
        ),
        errors=snapshot.errors,
    )
