"""Discord webhook fan-out.

Posts the same payload to every configured webhook at once. Delivery
counts as successful when at least one webhook accepts it.
"""

import asyncio
from datetime import datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

import httpx

from alerts.payloads import AlertPayload, ReportPayload, WindowStatus
from alerts.thresholds import tier_style
from config import WEBHOOK_TIMEOUT
from errors import ConfigurationError, DeliveryError, DeliveryFailure
from logger import logger
from providers.models import format_duration, format_reset_time
from utils.log_sanitizer import sanitize_log

Payload = Union[AlertPayload, ReportPayload]

USERNAME = "AI Quota Monitor"
REPORT_COLOR = 0x5865F2
PROVIDER_LABELS = {"claude": "Claude", "openai": "OpenAI Codex"}


def _provider_label(provider: str) -> str:
    return PROVIDER_LABELS.get(provider, provider.capitalize())


def _window_line(status: WindowStatus, tz: ZoneInfo) -> str:
    return (
        f"{status.utilization:.1f}% used · resets in "
        f"{format_duration(status.time_until_reset)} ({format_reset_time(status.reset_at, tz)})"
    )


def build_alert_embed(payload: AlertPayload, tz: ZoneInfo) -> dict:
    """Discord embed for a tier crossing."""
    color, emoji = tier_style(payload.tier)
    fields = [
        {"name": "Utilization", "value": f"{payload.utilization:.1f}%", "inline": True},
        {"name": "Reset In", "value": format_duration(payload.window.time_until_reset), "inline": True},
        {"name": "Reset At", "value": format_reset_time(payload.window.reset_at, tz), "inline": True},
    ]
    if payload.sibling is not None:
        fields.append({
            "name": f"{payload.sibling.period} window",
            "value": _window_line(payload.sibling, tz),
            "inline": False,
        })

    return {
        "title": f"{emoji} {_provider_label(payload.provider)} Quota Alert: {payload.period}",
        "description": f"Usage exceeded **{payload.tier}%**",
        "color": color,
        "fields": fields,
        "timestamp": payload.created_at.isoformat(),
    }


def build_report_embed(payload: ReportPayload, tz: ZoneInfo) -> dict:
    """Discord embed for the daily summary."""
    fields = []
    for report in payload.providers:
        label = _provider_label(report.provider)
        if report.plan_type:
            label = f"{label} ({report.plan_type})"
        if not report.windows:
            fields.append({"name": label, "value": "No quota data", "inline": False})
            continue
        for status in report.windows:
            fields.append({
                "name": f"{label} · {status.period}",
                "value": _window_line(status, tz),
                "inline": False,
            })

    if payload.errors:
        fields.append({
            "name": "⚠️ Unavailable",
            "value": "\n".join(payload.errors),
            "inline": False,
        })

    date_str = payload.captured_at.astimezone(tz).strftime("%d %b %Y")
    return {
        "title": f"📊 Daily Quota Report - {date_str}",
        "color": REPORT_COLOR,
        "fields": fields,
        "timestamp": payload.captured_at.isoformat(),
    }


def build_message(payload: Payload, tz: ZoneInfo) -> dict:
    if isinstance(payload, AlertPayload):
        embed = build_alert_embed(payload, tz)
    else:
        embed = build_report_embed(payload, tz)
    return {"username": USERNAME, "embeds": [embed]}


class DiscordWebhookNotifier:
    """Deliver payloads to one or more Discord webhooks."""

    def __init__(
        self,
        destinations: list[str],
        tz: ZoneInfo,
        timeout: float = WEBHOOK_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None
    ):
        # Same URL registered twice only gets one post
        self.destinations = list(dict.fromkeys(d for d in destinations if d))
        self.tz = tz
        self.timeout = timeout
        self._client = client

    async def notify(self, payload: Payload) -> list[DeliveryFailure]:
        """Send ``payload`` to every destination concurrently.

        Returns:
            Failures for destinations that did not accept the payload
            (empty when every destination succeeded)

        Raises:
            ConfigurationError: if no destinations are configured
            DeliveryError: if every destination failed
        """
        if not self.destinations:
            raise ConfigurationError("No webhook destinations configured")

        message = build_message(payload, self.tz)

        if self._client is not None:
            results = await self._post_all(self._client, message)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                results = await self._post_all(client, message)

        failures = [f for f in results if f is not None]
        if len(failures) == len(self.destinations):
            raise DeliveryError(failures)

        for failure in failures:
            logger.warning(
                f"Webhook delivery failed for {sanitize_log(failure.destination)}: {failure.reason}"
            )
        logger.info(
            f"Delivered {type(payload).__name__} to "
            f"{len(self.destinations) - len(failures)}/{len(self.destinations)} webhook(s)"
        )
        return failures

    async def _post_all(self, client: httpx.AsyncClient, message: dict) -> list[Optional[DeliveryFailure]]:
        return await asyncio.gather(*[
            self._post(client, destination, message)
            for destination in self.destinations
        ])

    async def _post(self, client: httpx.AsyncClient, destination: str, message: dict) -> Optional[DeliveryFailure]:
        try:
            response = await client.post(destination, json=message)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # A malformed URL fails its own destination only
            return DeliveryFailure(destination, f"{type(e).__name__}: {e}")

        if 200 <= response.status_code < 300:
            return None
        return DeliveryFailure(destination, f"HTTP {response.status_code}")
