"""Quota monitor poll loop.

Each cycle fetches a snapshot, sends any new tier alerts, and posts the
daily report when it is due. Cycles run as one-shot APScheduler jobs and
the next one is only scheduled once the current one has finished, so two
cycles never overlap.

Usage:
    monitor = QuotaMonitor(source, notifier, FileAlertStateStore(STATE_FILE), ...)
    await monitor.start()
    ...
    monitor.stop()          # e.g. from a signal handler
    await monitor.wait()    # returns after the in-flight cycle, if any
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from alerts.engine import PendingAlert, decide, pending_baseline, record_alert
from alerts.payloads import build_alert_payload, build_report_payload
from alerts.report import ReportCursor
from alerts.state_store import AlertStateStore
from errors import ConfigurationError, DeliveryError, SourceError
from logger import logger
from notifiers.discord_webhook import DiscordWebhookNotifier
from providers.models import QuotaSnapshot
from providers.source import Clock, QuotaSource, utc_now

JOB_ID = "quota_monitor_cycle"

OnStatus = Callable[[str], None]


def _describe(alert: PendingAlert) -> str:
    return (
        f"{alert.provider} {alert.window.period} at "
        f"{alert.window.utilization:.1f}% (threshold: {alert.tier}%)"
    )


class QuotaMonitor:
    """Poll-decide-notify loop with cooperative cancellation."""

    def __init__(
        self,
        source: QuotaSource,
        notifier: DiscordWebhookNotifier,
        store: AlertStateStore,
        tz: ZoneInfo,
        interval_minutes: float = 5,
        report_hour: Optional[int] = None,
        clock: Clock = utc_now,
        on_status: Optional[OnStatus] = None,
    ):
        self.source = source
        self.notifier = notifier
        self.store = store
        self.tz = tz
        self.interval = timedelta(minutes=interval_minutes)
        self.report_hour = report_hour
        self.report_cursor = ReportCursor(tz)
        self.on_status = on_status

        self._clock = clock
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._cancel = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._fatal: Optional[BaseException] = None
        self._last_snapshot: Optional[QuotaSnapshot] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def last_snapshot(self) -> Optional[QuotaSnapshot]:
        return self._last_snapshot

    @property
    def stopped(self) -> bool:
        return self._cancel.is_set()

    async def start(self) -> None:
        """Start polling; the first cycle runs immediately."""
        self._cancel.clear()
        self._fatal = None
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=self.tz)
        self._scheduler.start()
        self._schedule_next(timedelta(0))
        logger.info(
            f"Quota monitor started, interval={self.interval.total_seconds() / 60:g} min"
        )

    def stop(self) -> None:
        """Request shutdown. An in-flight cycle is allowed to finish."""
        if self._cancel.is_set():
            return
        self._cancel.set()
        if self._scheduler is not None:
            try:
                self._scheduler.remove_job(JOB_ID)
                # The queued cycle will never run
                self._idle.set()
            except JobLookupError:
                pass
        logger.info("Quota monitor stopping")

    async def wait(self) -> None:
        """Block until stopped, then release resources.

        Raises:
            ConfigurationError: if a cycle found the monitor unable to notify
        """
        await self._cancel.wait()
        await self._idle.wait()
        await self._shutdown()
        if self._fatal is not None:
            raise self._fatal

    async def run_forever(self) -> None:
        await self.start()
        await self.wait()

    async def run_once(self) -> str:
        """Run a single cycle (cron mode) and release resources."""
        try:
            return await self.run_cycle()
        finally:
            await self.source.close()

    async def run_cycle(self) -> str:
        """One fetch → decide → notify pass. Returns the status line.

        Raises:
            ConfigurationError: if something must be sent but no webhook is configured
        """
        now = self._clock()

        try:
            snapshot = await self.source.fetch_quota()
        except SourceError as e:
            return self._emit(f"Error: {e}", error=True)

        self._last_snapshot = snapshot
        for error in snapshot.errors:
            logger.warning(f"Partial snapshot: {error}")

        previous = self.store.load()
        decision = decide(snapshot, previous)
        state = pending_baseline(decision, previous)
        if state != previous:
            self.store.save(state)

        sent: list[PendingAlert] = []
        failed: list[PendingAlert] = []
        if decision.alerts:
            self._require_destinations()
        for alert in decision.alerts:
            logger.info(f"Alert: {_describe(alert)}")
            try:
                await self.notifier.notify(build_alert_payload(alert, now))
            except DeliveryError as e:
                # Tier stays unmarked so the next cycle retries it
                logger.error(f"Alert delivery failed for {alert.key}: {e}")
                failed.append(alert)
                continue
            state = record_alert(state, alert)
            self.store.save(state)
            sent.append(alert)

        report_status = await self._maybe_send_report(snapshot, now)

        parts = []
        if sent:
            parts.append("Alert sent: " + "; ".join(_describe(a) for a in sent))
        if failed:
            parts.append("Error: alert delivery failed for " + ", ".join(a.key for a in failed))
        if snapshot.errors:
            parts.append("Error: " + "; ".join(snapshot.errors))
        if report_status:
            parts.append(report_status)
        if not parts:
            parts.append("All quotas OK")

        return self._emit(" | ".join(parts), error=bool(failed or snapshot.errors) and not sent)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _maybe_send_report(self, snapshot: QuotaSnapshot, now: datetime) -> Optional[str]:
        if not self.report_cursor.is_due(now, self.report_hour):
            return None
        self._require_destinations()

        # Advance before sending so a slow send cannot produce a second report
        previous = self.report_cursor.advance(now)
        try:
            await self.notifier.notify(build_report_payload(snapshot))
        except DeliveryError as e:
            self.report_cursor.rollback(previous)
            logger.error(f"Daily report delivery failed: {e}")
            return "Error: daily report delivery failed"
        return "Daily report sent"

    def _require_destinations(self) -> None:
        if not self.notifier.destinations:
            raise ConfigurationError(
                "Notification due but no webhook configured. "
                "Use --webhook, config, or the DISCORD_WEBHOOK env var."
            )

    def _emit(self, status: str, error: bool = False) -> str:
        if error:
            logger.error(status)
        else:
            logger.info(status)
        if self.on_status is not None:
            self.on_status(status)
        return status

    def _schedule_next(self, delay: timedelta) -> None:
        if self._cancel.is_set() or self._scheduler is None:
            return
        # Busy from the moment a cycle is queued until it finishes
        self._idle.clear()
        self._scheduler.add_job(
            self._scheduled_cycle,
            trigger=DateTrigger(run_date=datetime.now(self.tz) + delay),
            id=JOB_ID,
            name="quota monitor cycle",
            replace_existing=True,
            misfire_grace_time=None,
        )

    async def _scheduled_cycle(self) -> None:
        try:
            await self.run_cycle()
        except ConfigurationError as e:
            logger.error(f"Error: {e}")
            self._fatal = e
            self.stop()
        except Exception as e:
            self._emit(f"Error: {e}", error=True)
        finally:
            self._idle.set()
            self._schedule_next(self.interval)

    async def _shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        try:
            await self.source.close()
        except Exception as e:
            logger.warning(f"Failed to release quota source: {e}")
        logger.info("Quota monitor stopped")
