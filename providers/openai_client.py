"""ChatGPT/Codex subscription usage via the wham usage endpoint.

Access tokens are short-lived. A 401 triggers one refresh-token grant and
a retry; rotated tokens are handed to ``on_tokens_refreshed`` so the
caller can persist them.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from errors import SourceError
from logger import logger
from utils.log_sanitizer import sanitize_for_log
from .models import ProviderSnapshot, QuotaSnapshot, QuotaWindow, format_window_period
from .source import Clock, QuotaSource, utc_now

USAGE_URL = "https://chatgpt.com/backend-api/wham/usage"
TOKEN_URL = "https://auth.openai.com/oauth/token"
CLIENT_ID = "app_EMoamEEZ73f0CkXaXp7hrann"
USER_AGENT = "ai-quota-cli/1.0.0"
REQUEST_TIMEOUT = 30

OnTokensRefreshed = Callable[[str, str, Optional[str]], None]


class _Unauthorized(Exception):
    pass


def parse_rate_window(raw: Optional[dict], fallback: str, observed_at: datetime) -> Optional[QuotaWindow]:
    """Build a QuotaWindow from one ``rate_limit`` entry, or None if absent."""
    if not raw or raw.get("used_percent") is None:
        return None

    seconds = int(raw.get("limit_window_seconds") or 0)
    reset_at_raw = raw.get("reset_at")
    if reset_at_raw:
        reset_at = datetime.fromtimestamp(float(reset_at_raw), tz=timezone.utc)
    else:
        reset_at = observed_at + timedelta(seconds=seconds)

    return QuotaWindow(
        period=format_window_period(seconds, fallback),
        utilization=float(raw["used_percent"]),
        reset_at=reset_at,
        observed_at=observed_at,
        window_seconds=seconds or None,
    )


def parse_usage_response(data: dict, observed_at: datetime, provider: str = "openai") -> ProviderSnapshot:
    """Turn the wham usage JSON into a ProviderSnapshot."""
    if not isinstance(data, dict):
        raise SourceError(provider, f"Unexpected usage payload: {type(data).__name__}")

    rate_limit = data.get("rate_limit") or {}
    try:
        windows = [
            parse_rate_window(rate_limit.get("primary_window"), "primary", observed_at),
            parse_rate_window(rate_limit.get("secondary_window"), "secondary", observed_at),
        ]
    except (TypeError, ValueError, OverflowError) as e:
        raise SourceError(provider, f"Malformed rate_limit window: {e}") from e

    return ProviderSnapshot(
        provider=provider,
        windows=tuple(w for w in windows if w is not None),
        captured_at=observed_at,
        plan_type=data.get("plan_type"),
    )


class OpenAIQuotaClient(QuotaSource):
    """Fetch Codex plan usage for one ChatGPT account."""

    def __init__(
        self,
        access_token: str,
        refresh_token: str,
        account_id: Optional[str] = None,
        on_tokens_refreshed: Optional[OnTokensRefreshed] = None,
        clock: Clock = utc_now,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.account_id = account_id
        self.on_tokens_refreshed = on_tokens_refreshed
        self._clock = clock

    @property
    def name(self) -> str:
        return "openai"

    async def fetch_quota(self) -> QuotaSnapshot:
        if not self.access_token:
            raise SourceError(self.name, "OpenAI access token not configured")

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                try:
                    data = await self._fetch_usage(client)
                except _Unauthorized:
                    logger.info("OpenAI access token expired, refreshing")
                    await self._refresh_access_token(client)
                    try:
                        data = await self._fetch_usage(client)
                    except _Unauthorized:
                        raise SourceError(self.name, "Unauthorized after token refresh")
        except httpx.HTTPError as e:
            raise SourceError(self.name, f"Request failed: {e}") from e

        observed_at = self._clock()
        snapshot = parse_usage_response(data, observed_at, provider=self.name)
        summary = ", ".join(f"{w.period}={w.utilization:.1f}%" for w in snapshot.windows)
        logger.info(f"OpenAI usage fetched: {summary or 'no windows'}")
        return QuotaSnapshot(providers=(snapshot,), captured_at=observed_at)

    async def _fetch_usage(self, client: httpx.AsyncClient) -> dict:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        }
        if self.account_id:
            headers["ChatGPT-Account-Id"] = self.account_id

        response = await client.get(USAGE_URL, headers=headers)
        if response.status_code == 401:
            raise _Unauthorized()
        if response.status_code != 200:
            raise SourceError(
                self.name,
                f"Usage API failed: HTTP {response.status_code} {response.reason_phrase}: "
                f"{sanitize_for_log(response.text)}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise SourceError(self.name, f"Usage API returned invalid JSON: {e}") from e

    async def _refresh_access_token(self, client: httpx.AsyncClient) -> None:
        if not self.refresh_token:
            raise SourceError(self.name, "Access token expired and no refresh token configured")

        response = await client.post(
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "client_id": CLIENT_ID,
                "refresh_token": self.refresh_token,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status_code != 200:
            raise SourceError(
                self.name,
                f"Token refresh failed: HTTP {response.status_code} {response.reason_phrase}: "
                f"{sanitize_for_log(response.text)}"
            )

        try:
            body = response.json()
            self.access_token = body["access_token"]
        except (ValueError, KeyError) as e:
            raise SourceError(self.name, f"Token refresh returned no access token: {e}") from e
        if body.get("refresh_token"):
            self.refresh_token = body["refresh_token"]

        logger.info("OpenAI access token refreshed")
        if self.on_tokens_refreshed is not None:
            self.on_tokens_refreshed(self.access_token, self.refresh_token, self.account_id)
