"""Daily report scheduling.

The report fires on the first poll that lands inside the configured hour
of the reporting timezone, at most once per local day. The last-sent date
lives in memory only, so a restart during the report hour can repeat it.
"""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo


def local_date(now: datetime, tz: ZoneInfo) -> date:
    return now.astimezone(tz).date()


def is_report_due(
    now: datetime,
    configured_hour: Optional[int],
    last_sent_date: Optional[date],
    tz: ZoneInfo
) -> bool:
    """True when ``now`` is in the report hour and today's report is unsent.

    Args:
        now: Timezone-aware current instant
        configured_hour: Hour (0-23) in ``tz``; None disables reports
        last_sent_date: Local date of the last report, if any
        tz: Reporting timezone (not the host's)
    """
    if configured_hour is None:
        return False
    local = now.astimezone(tz)
    return local.hour == configured_hour and local.date() != last_sent_date


class ReportCursor:
    """Remembers the local date of the last daily report."""

    def __init__(self, tz: ZoneInfo, last_sent_date: Optional[date] = None):
        self.tz = tz
        self.last_sent_date = last_sent_date

    def is_due(self, now: datetime, configured_hour: Optional[int]) -> bool:
        return is_report_due(now, configured_hour, self.last_sent_date, self.tz)

    def advance(self, now: datetime) -> Optional[date]:
        """Mark today as sent; returns the previous value for rollback."""
        previous = self.last_sent_date
        self.last_sent_date = local_date(now, self.tz)
        return previous

    def rollback(self, previous: Optional[date]) -> None:
        self.last_sent_date = previous
