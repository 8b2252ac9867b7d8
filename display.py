"""Terminal and JSON rendering of quota snapshots."""

import json
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from rich.console import Console
from rich.table import Table
from rich.text import Text

from providers.models import QuotaSnapshot, QuotaWindow, format_duration, format_reset_time

BAR_WIDTH = 20
PROVIDER_TITLES = {"claude": "☁️  Claude Quota Status", "openai": "🤖 OpenAI Codex Quota Status"}


def usage_style(utilization: float) -> str:
    if utilization >= 80:
        return "red"
    if utilization >= 60:
        return "yellow"
    return "green"


def usage_bar(utilization: float, width: int = BAR_WIDTH) -> Text:
    """Progress bar; out-of-range upstream values are clamped for drawing only."""
    shown = min(100.0, max(0.0, utilization))
    filled = round(shown / 100 * width)
    style = usage_style(utilization)
    bar = Text("█" * filled + "░" * (width - filled), style=style)
    bar.append(f" {utilization:.1f}%", style=style)
    return bar


def build_table(title: str, windows: tuple[QuotaWindow, ...], tz: ZoneInfo,
                now: Optional[datetime] = None) -> Table:
    table = Table(title=title, title_style="bold cyan", border_style="grey50")
    table.add_column("Window")
    table.add_column("Usage")
    table.add_column("Reset In")
    table.add_column("Reset At")

    for window in windows:
        until = window.time_until_reset_at(now) if now else window.time_until_reset
        table.add_row(
            window.period,
            usage_bar(window.utilization),
            format_duration(until),
            format_reset_time(window.reset_at, tz),
        )
    return table


def render_snapshot(snapshot: QuotaSnapshot, tz: ZoneInfo, console: Console = None) -> None:
    """Print one table per provider plus the update time."""
    console = console or Console()
    now = datetime.now(tz)
    for provider in snapshot.providers:
        title = PROVIDER_TITLES.get(provider.provider, f"{provider.provider} Quota Status")
        if provider.plan_type:
            title = f"{title} ({provider.plan_type})"
        if provider.windows:
            console.print(build_table(title, provider.windows, tz, now))
        else:
            console.print(f"[bold cyan]{title}[/]\n  [grey50]No quota data reported[/]")
    for error in snapshot.errors:
        console.print(f"[red]  {error}[/]")
    updated = snapshot.captured_at.astimezone(tz).strftime("%H:%M:%S")
    console.print(f"[grey50]\n  Updated: {updated}[/]\n")


def snapshot_to_dict(snapshot: QuotaSnapshot) -> dict:
    return {
        "timestamp": snapshot.captured_at.isoformat(),
        "providers": [
            {
                "provider": p.provider,
                "planType": p.plan_type,
                "windows": [
                    {
                        "period": w.period,
                        "utilization": w.utilization,
                        "remaining": w.remaining,
                        "resetTime": w.reset_at.isoformat(),
                        "timeUntilReset": int(w.time_until_reset.total_seconds() * 1000),
                        "timeUntilResetFormatted": format_duration(w.time_until_reset),
                    }
                    for w in p.windows
                ],
            }
            for p in snapshot.providers
        ],
        "errors": list(snapshot.errors),
    }


def snapshot_to_json(snapshot: QuotaSnapshot) -> str:
    return json.dumps(snapshot_to_dict(snapshot), indent=2)
