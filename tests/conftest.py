"""Pytest configuration and fixtures."""

import os
import tempfile

# Keep config, state and log files out of the real home directory
os.environ["AI_QUOTA_HOME"] = tempfile.mkdtemp(prefix="ai_quota_test_")
os.environ.pop("DISCORD_WEBHOOK", None)

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock, patch
from zoneinfo import ZoneInfo

from providers.models import ProviderSnapshot, QuotaSnapshot, QuotaWindow

NOW = datetime(2024, 1, 1, 0, 30, tzinfo=timezone.utc)  # 09:30 in Seoul
SEOUL = ZoneInfo("Asia/Seoul")


def make_window(period: str, utilization: float, reset_in: float = 3600,
                window_seconds: int = None, observed_at: datetime = NOW) -> QuotaWindow:
    """Build a window observed at ``observed_at``."""
    return QuotaWindow(
        period=period,
        utilization=utilization,
        reset_at=observed_at + timedelta(seconds=reset_in),
        observed_at=observed_at,
        window_seconds=window_seconds,
    )


def make_snapshot(*windows: QuotaWindow, provider: str = "claude",
                  captured_at: datetime = NOW) -> QuotaSnapshot:
    """Single-provider snapshot."""
    return QuotaSnapshot(
        providers=(ProviderSnapshot(provider=provider, windows=tuple(windows), captured_at=captured_at),),
        captured_at=captured_at,
    )


def claude_snapshot(five_hour: float = None, seven_day: float = None,
                    captured_at: datetime = NOW) -> QuotaSnapshot:
    """Claude snapshot with the usual 5-hour / 7-day windows."""
    windows = []
    if five_hour is not None:
        windows.append(make_window("5-hour", five_hour, 3600, 18000, captured_at))
    if seven_day is not None:
        windows.append(make_window("7-day", seven_day, 600000, 604800, captured_at))
    return make_snapshot(*windows, captured_at=captured_at)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def seoul():
    return SEOUL


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx client."""
    with patch('httpx.AsyncClient') as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client


@pytest.fixture
def fake_source():
    """Quota source whose snapshots are set per test."""
    source = Mock()
    source.name = "claude"
    source.fetch_quota = AsyncMock()
    source.close = AsyncMock()
    return source


@pytest.fixture
def fake_notifier():
    """Notifier that records payloads and succeeds."""
    notifier = Mock()
    notifier.destinations = ["https://discord.com/api/webhooks/1/abc"]
    notifier.notify = AsyncMock(return_value=[])
    return notifier
