"""Global configuration for the AI quota monitor."""

import json
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()

# Config directory (credentials, alert state)
CONFIG_DIR = Path(os.getenv("AI_QUOTA_HOME", str(Path.home() / ".claude-quota")))
CONFIG_FILE = CONFIG_DIR / "config.json"
STATE_FILE = CONFIG_DIR / "alert-state.json"

# Discord webhook fallback (appended to configured webhooks)
DISCORD_WEBHOOK = os.getenv("DISCORD_WEBHOOK")

# Defaults
DEFAULT_REPORT_HOUR = 9
DEFAULT_REPORT_TIMEZONE = os.getenv("AI_QUOTA_TIMEZONE", "Asia/Seoul")
DEFAULT_POLL_MINUTES = 5
DEFAULT_WATCH_SECONDS = 60
WEBHOOK_TIMEOUT = float(os.getenv("AI_QUOTA_WEBHOOK_TIMEOUT", "10"))

# Logging
LOG_DIR = Path(os.getenv("AI_QUOTA_LOG_DIR", str(CONFIG_DIR / "logs")))


@dataclass
class OpenAICredentials:
    """OAuth tokens for the ChatGPT/Codex usage endpoint."""
    access_token: str
    refresh_token: str
    account_id: Optional[str] = None


@dataclass
class MonitorConfig:
    """Settings read by the monitor, persisted as config.json."""
    session_key: str = ""
    organization_id: str = ""
    webhooks: list[str] = field(default_factory=list)
    report_hour: Optional[int] = DEFAULT_REPORT_HOUR
    report_timezone: str = DEFAULT_REPORT_TIMEZONE
    poll_minutes: int = DEFAULT_POLL_MINUTES
    claude_enabled: bool = True
    openai_enabled: bool = True
    openai: Optional[OpenAICredentials] = None

    @property
    def has_claude_credentials(self) -> bool:
        return bool(self.session_key and self.organization_id)

    @property
    def has_openai_credentials(self) -> bool:
        return self.openai is not None and bool(self.openai.access_token)

    def destinations(self, extra: Optional[list[str]] = None) -> list[str]:
        """Webhook URLs in priority order, duplicates removed.

        Command-line webhooks come first, then configured ones, then the
        DISCORD_WEBHOOK environment variable.
        """
        urls = list(extra or []) + list(self.webhooks)
        if DISCORD_WEBHOOK:
            urls.append(DISCORD_WEBHOOK)
        return list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))

    def to_dict(self) -> dict:
        data = {
            "sessionKey": self.session_key,
            "organizationId": self.organization_id,
            "webhooks": self.webhooks,
            "reportHour": self.report_hour,
            "reportTimezone": self.report_timezone,
            "pollMinutes": self.poll_minutes,
            "providers": {
                "claude": self.claude_enabled,
                "openai": self.openai_enabled,
            },
        }
        if self.openai is not None:
            creds = asdict(self.openai)
            data["openai"] = {
                "accessToken": creds["access_token"],
                "refreshToken": creds["refresh_token"],
                "accountId": creds["account_id"],
            }
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "MonitorConfig":
        webhooks = list(data.get("webhooks") or [])
        # Older config files carried a single discordWebhook
        legacy = data.get("discordWebhook")
        if legacy and legacy not in webhooks:
            webhooks.append(legacy)

        openai = None
        raw_openai = data.get("openai") or {}
        if raw_openai.get("accessToken"):
            openai = OpenAICredentials(
                access_token=raw_openai["accessToken"],
                refresh_token=raw_openai.get("refreshToken", ""),
                account_id=raw_openai.get("accountId"),
            )

        providers = data.get("providers") or {}
        report_hour = data.get("reportHour", DEFAULT_REPORT_HOUR)
        if report_hour is not None:
            report_hour = int(report_hour)
            if not 0 <= report_hour <= 23:
                report_hour = DEFAULT_REPORT_HOUR

        return cls(
            session_key=data.get("sessionKey", ""),
            organization_id=data.get("organizationId", ""),
            webhooks=webhooks,
            report_hour=report_hour,
            report_timezone=data.get("reportTimezone", DEFAULT_REPORT_TIMEZONE),
            poll_minutes=int(data.get("pollMinutes", DEFAULT_POLL_MINUTES)),
            claude_enabled=bool(providers.get("claude", True)),
            openai_enabled=bool(providers.get("openai", True)),
            openai=openai,
        )


def is_webhook_url(url: str) -> bool:
    """True for an absolute http(s) URL with a host."""
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _ensure_config_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)


def load_config(path: Path = None) -> Optional[MonitorConfig]:
    """Load config.json. Returns None if missing or unreadable."""
    path = path or CONFIG_FILE
    if not path.exists():
        return None
    try:
        return MonitorConfig.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, TypeError, AttributeError):
        return None


def save_config(config: MonitorConfig, path: Path = None) -> Path:
    """Write config.json with owner-only permissions."""
    path = path or CONFIG_FILE
    _ensure_config_dir(path)
    path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    os.chmod(path, 0o600)
    return path
