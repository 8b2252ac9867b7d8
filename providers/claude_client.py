"""Claude.ai subscription usage via a headless browser session.

The usage endpoint sits behind Cloudflare, so requests are issued from
inside a real Chromium page that carries the user's ``sessionKey`` cookie.
The browser is launched once and reused across polls until ``close()``.
"""

import re
from datetime import timedelta
from typing import Optional

from dateutil.parser import isoparse

from errors import SourceError
from logger import logger
from .models import ProviderSnapshot, QuotaSnapshot, QuotaWindow
from .source import Clock, QuotaSource, utc_now

CLAUDE_URL = "https://claude.ai/"
USAGE_URL = "https://claude.ai/api/organizations/{org_id}/usage"
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
BROWSER_ARGS = [
    "--headless=new",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
]
PAGE_TIMEOUT_MS = 30000

# Upstream field -> (period id, window length)
WINDOWS = {
    "five_hour": ("5-hour", int(timedelta(hours=5).total_seconds())),
    "seven_day": ("7-day", int(timedelta(days=7).total_seconds())),
}

_STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
if (!window.chrome) { window.chrome = { runtime: {} }; }
"""

_CHALLENGE_DONE = """(() => {
    const body = document.body.innerText;
    return !body.includes('Verifying you are human') &&
           !body.includes('claude.ai needs to review the security');
})()"""

_FETCH_USAGE = """async (apiUrl) => {
    try {
        const response = await fetch(apiUrl, {
            method: "GET",
            credentials: "include",
            headers: {accept: "*/*", "anthropic-client-platform": "web_claude_ai"},
        });
        if (!response.ok) {
            return {error: `HTTP ${response.status}: ${response.statusText}`};
        }
        return {data: await response.json()};
    } catch (error) {
        return {error: String(error)};
    }
}"""


def parse_session_key(raw: str) -> str:
    """Accept either a bare key or a pasted ``Cookie:`` header."""
    if not raw:
        return ""
    if "sessionKey=" in raw:
        match = re.search(r"sessionKey=([^;]+)", raw)
        return match.group(1).strip() if match else raw.strip()
    return raw.strip()


def parse_usage_response(data: dict, observed_at, provider: str = "claude") -> ProviderSnapshot:
    """Turn the ``/usage`` JSON into a ProviderSnapshot.

    Missing or null windows are left out rather than zero-filled.
    """
    if not isinstance(data, dict):
        raise SourceError(provider, f"Unexpected usage payload: {type(data).__name__}")

    windows = []
    for field_name, (period, seconds) in WINDOWS.items():
        raw = data.get(field_name)
        if not raw:
            continue
        try:
            utilization = float(raw["utilization"])
            reset_at = isoparse(raw["resets_at"])
        except (KeyError, TypeError, ValueError) as e:
            raise SourceError(provider, f"Malformed {field_name} window: {e}") from e
        if reset_at.tzinfo is None:
            reset_at = reset_at.replace(tzinfo=observed_at.tzinfo)
        windows.append(QuotaWindow(
            period=period,
            utilization=utilization,
            reset_at=reset_at,
            observed_at=observed_at,
            window_seconds=seconds,
        ))

    return ProviderSnapshot(provider=provider, windows=tuple(windows), captured_at=observed_at)


class ClaudeQuotaClient(QuotaSource):
    """Fetch Claude.ai plan usage for one organization."""

    def __init__(self, session_key: str, organization_id: str, clock: Clock = utc_now,
                 timezone_id: str = "Asia/Seoul"):
        self.session_key = parse_session_key(session_key)
        self.organization_id = organization_id
        self.timezone_id = timezone_id
        self._clock = clock
        self._playwright = None
        self._browser = None
        self._context = None

    @property
    def name(self) -> str:
        return "claude"

    async def fetch_quota(self) -> QuotaSnapshot:
        if not self.session_key or not self.organization_id:
            raise SourceError(self.name, "Session key and organization ID not configured")

        data = await self._fetch_usage()
        observed_at = self._clock()
        snapshot = parse_usage_response(data, observed_at, provider=self.name)
        summary = ", ".join(f"{w.period}={w.utilization:.1f}%" for w in snapshot.windows)
        logger.info(f"Claude usage fetched: {summary or 'no windows'}")
        return QuotaSnapshot(providers=(snapshot,), captured_at=observed_at)

    async def _ensure_context(self):
        if self._context is not None:
            return self._context

        from playwright.async_api import async_playwright

        if self._playwright is None:
            self._playwright = await async_playwright().start()
        if self._browser is None:
            self._browser = await self._playwright.chromium.launch(
                headless=False,
                args=BROWSER_ARGS,
            )

        self._context = await self._browser.new_context(
            user_agent=USER_AGENT,
            locale="en-US",
            timezone_id=self.timezone_id,
        )
        await self._context.add_cookies([
            {
                "name": "sessionKey",
                "value": self.session_key,
                "domain": ".claude.ai",
                "path": "/",
                "httpOnly": True,
                "secure": True,
                "sameSite": "Lax",
            },
            {
                "name": "lastActiveOrg",
                "value": self.organization_id,
                "domain": ".claude.ai",
                "path": "/",
                "secure": True,
                "sameSite": "Lax",
            },
        ])
        return self._context

    async def _fetch_usage(self) -> dict:
        page = None
        try:
            context = await self._ensure_context()
            page = await context.new_page()
            await page.add_init_script(_STEALTH_SCRIPT)
            await page.goto(CLAUDE_URL, wait_until="domcontentloaded", timeout=PAGE_TIMEOUT_MS)

            try:
                await page.wait_for_function(_CHALLENGE_DONE, timeout=PAGE_TIMEOUT_MS)
            except Exception as e:
                # The usage call below reports the real failure if the challenge never cleared
                logger.debug(f"Claude challenge wait ended: {e}")

            await page.wait_for_timeout(2000)

            url = USAGE_URL.format(org_id=self.organization_id)
            result = await page.evaluate(_FETCH_USAGE, url)
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(self.name, f"Failed to fetch quota: {e}") from e
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception as e:
                    logger.debug(f"Claude page close failed: {e}")

        if not isinstance(result, dict):
            raise SourceError(self.name, "Empty response from usage endpoint")
        if result.get("error"):
            raise SourceError(self.name, f"Failed to fetch quota: {result['error']}")
        return result.get("data") or {}

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
