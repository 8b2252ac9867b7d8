"""Tests for Discord webhook fan-out and embed rendering."""

from dataclasses import replace

import httpx
import pytest
from unittest.mock import AsyncMock, Mock

from alerts.engine import decide
from alerts.payloads import build_alert_payload, build_report_payload
from errors import ConfigurationError, DeliveryError
from notifiers.discord_webhook import (
    DiscordWebhookNotifier,
    build_alert_embed,
    build_message,
    build_report_embed,
)
from conftest import NOW, SEOUL, claude_snapshot

HOOK_A = "https://discord.com/api/webhooks/1/aaa"
HOOK_B = "https://discord.com/api/webhooks/2/bbb"
HOOK_C = "https://discord.com/api/webhooks/3/ccc"


def _response(status_code: int) -> Mock:
    response = Mock()
    response.status_code = status_code
    return response


def _client(outcomes: dict) -> AsyncMock:
    """Mock client whose post() result depends on the URL."""
    client = AsyncMock()

    async def post(url, json=None):
        outcome = outcomes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return _response(outcome)

    client.post = AsyncMock(side_effect=post)
    return client


@pytest.fixture
def alert_payload():
    decision = decide(claude_snapshot(five_hour=82.0, seven_day=15.0), {})
    return build_alert_payload(decision.alerts[0], NOW)


class TestFanOut:
    """Tests for DiscordWebhookNotifier.notify()."""

    @pytest.mark.asyncio
    async def test_all_succeed(self, alert_payload):
        client = _client({HOOK_A: 204, HOOK_B: 200})
        notifier = DiscordWebhookNotifier([HOOK_A, HOOK_B], SEOUL, client=client)

        failures = await notifier.notify(alert_payload)

        assert failures == []
        assert client.post.await_count == 2

    @pytest.mark.asyncio
    async def test_partial_failure_does_not_raise(self, alert_payload):
        client = _client({
            HOOK_A: 500,
            HOOK_B: 204,
            HOOK_C: httpx.ConnectError("connection refused"),
        })
        notifier = DiscordWebhookNotifier([HOOK_A, HOOK_B, HOOK_C], SEOUL, client=client)

        failures = await notifier.notify(alert_payload)

        assert {f.destination for f in failures} == {HOOK_A, HOOK_C}
        assert client.post.await_count == 3

    @pytest.mark.asyncio
    async def test_all_fail_raises(self, alert_payload):
        client = _client({
            HOOK_A: 500,
            HOOK_B: 404,
            HOOK_C: httpx.ReadTimeout("timed out"),
        })
        notifier = DiscordWebhookNotifier([HOOK_A, HOOK_B, HOOK_C], SEOUL, client=client)

        with pytest.raises(DeliveryError) as exc_info:
            await notifier.notify(alert_payload)

        failures = exc_info.value.failures
        assert [f.destination for f in failures] == [HOOK_A, HOOK_B, HOOK_C]
        assert failures[0].reason == "HTTP 500"
        assert failures[1].reason == "HTTP 404"
        assert "ReadTimeout" in failures[2].reason

    @pytest.mark.asyncio
    async def test_malformed_url_fails_only_itself(self, alert_payload):
        bad = "discord.com/api/webhooks/2/bbb"

        def handler(request):
            return httpx.Response(204 if request.url.host == "discord.com" else 500)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            notifier = DiscordWebhookNotifier([HOOK_A, bad], SEOUL, client=client)
            failures = await notifier.notify(alert_payload)

        assert [f.destination for f in failures] == [bad]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ValueError("unknown url type"),
        httpx.InvalidURL("Invalid URL"),
    ])
    async def test_url_errors_become_failures(self, alert_payload, error):
        client = _client({HOOK_A: 204, HOOK_B: error})
        notifier = DiscordWebhookNotifier([HOOK_A, HOOK_B], SEOUL, client=client)

        failures = await notifier.notify(alert_payload)

        assert [f.destination for f in failures] == [HOOK_B]
        assert failures[0].reason.startswith(type(error).__name__)

    @pytest.mark.asyncio
    async def test_duplicates_sent_once(self, alert_payload):
        client = _client({HOOK_A: 204})
        notifier = DiscordWebhookNotifier([HOOK_A, HOOK_A, HOOK_A], SEOUL, client=client)

        await notifier.notify(alert_payload)

        assert notifier.destinations == [HOOK_A]
        assert client.post.await_count == 1

    @pytest.mark.asyncio
    async def test_no_destinations(self, alert_payload):
        notifier = DiscordWebhookNotifier([], SEOUL, client=AsyncMock())

        with pytest.raises(ConfigurationError):
            await notifier.notify(alert_payload)

    @pytest.mark.asyncio
    async def test_posts_embed_json(self, alert_payload):
        client = _client({HOOK_A: 204})
        notifier = DiscordWebhookNotifier([HOOK_A], SEOUL, client=client)

        await notifier.notify(alert_payload)

        message = client.post.call_args.kwargs["json"]
        assert message["username"] == "AI Quota Monitor"
        assert len(message["embeds"]) == 1

    @pytest.mark.asyncio
    async def test_creates_own_client(self, alert_payload, mock_httpx_client):
        mock_httpx_client.post.return_value = _response(204)
        notifier = DiscordWebhookNotifier([HOOK_A], SEOUL)

        await notifier.notify(alert_payload)

        mock_httpx_client.post.assert_awaited_once()


class TestEmbeds:
    """Tests for embed rendering."""

    def test_alert_embed_fields(self, alert_payload):
        embed = build_alert_embed(alert_payload, SEOUL)

        assert embed["title"] == "🔴 Claude Quota Alert: 5-hour"
        assert embed["description"] == "Usage exceeded **80%**"
        assert embed["color"] == 0xFF0000
        fields = {f["name"]: f["value"] for f in embed["fields"]}
        assert fields["Utilization"] == "82.0%"
        assert fields["Reset In"] == "1h 0m"
        assert "7-day window" in fields
        assert fields["7-day window"].startswith("15.0% used")

    def test_report_embed_lists_every_window(self):
        payload = build_report_payload(claude_snapshot(five_hour=82.0, seven_day=15.0))

        embed = build_report_embed(payload, SEOUL)

        names = [f["name"] for f in embed["fields"]]
        assert names == ["Claude · 5-hour", "Claude · 7-day"]
        assert embed["title"] == "📊 Daily Quota Report - 01 Jan 2024"

    def test_report_embed_lists_unavailable_providers(self):
        snapshot = replace(claude_snapshot(five_hour=10.0), errors=("openai: HTTP 503",))

        embed = build_report_embed(build_report_payload(snapshot), SEOUL)

        fields = {f["name"]: f["value"] for f in embed["fields"]}
        assert fields["⚠️ Unavailable"] == "openai: HTTP 503"

    def test_build_message_dispatches_on_type(self, alert_payload):
        report = build_report_payload(claude_snapshot(five_hour=10.0))

        assert "Quota Alert" in build_message(alert_payload, SEOUL)["embeds"][0]["title"]
        assert "Daily Quota Report" in build_message(report, SEOUL)["embeds"][0]["title"]


class TestPayloadFields:
    """The payload field set is stable."""

    def test_alert_payload_dict(self, alert_payload):
        data = alert_payload.to_dict()

        assert data["provider"] == "claude"
        assert data["period"] == "5-hour"
        assert data["utilization"] == 82.0
        assert data["tier"] == 80
        assert data["time_until_reset_seconds"] == 3600
        assert data["sibling"]["period"] == "7-day"

    def test_report_payload_dict(self):
        data = build_report_payload(claude_snapshot(five_hour=50.0)).to_dict()

        assert data["type"] == "report"
        assert data["errors"] == []
        assert data["providers"][0]["windows"][0]["utilization"] == 50.0
