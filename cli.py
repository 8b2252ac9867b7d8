"""Command-line interface for the AI quota monitor.

Usage:
    ai-quota config --session-key <key> --org-id <id> [--webhook <url>]
    ai-quota status [--json]
    ai-quota watch [--interval 60]
    ai-quota monitor [--webhook <url>] [--interval 5] [--once] [--reset-state]
"""

import argparse
import asyncio
import signal
import sys
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rich.console import Console

import config as app_config
from alerts.state_store import FileAlertStateStore
from config import MonitorConfig, OpenAICredentials, is_webhook_url, load_config, save_config
from display import render_snapshot, snapshot_to_json
from errors import ConfigurationError, SourceError
from jobs.quota_monitor import QuotaMonitor
from logger import logger
from notifiers.discord_webhook import DiscordWebhookNotifier
from registry import registry

console = Console()
err_console = Console(stderr=True)

NOT_CONFIGURED = "Not configured. Run: ai-quota config --session-key <key> --org-id <id>"


def _hour(value: str) -> int:
    hour = int(value)
    if not 0 <= hour <= 23:
        raise argparse.ArgumentTypeError("hour must be between 0 and 23")
    return hour


def _positive(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("interval must be positive")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-quota",
        description="Monitor AI subscription quotas and send Discord alerts"
    )
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")
    sub = parser.add_subparsers(dest="command", required=True)

    cfg = sub.add_parser("config", help="Configure credentials and alert settings")
    cfg.add_argument("--session-key", help="Claude.ai sessionKey cookie value")
    cfg.add_argument("--org-id", help="Claude.ai organization ID")
    cfg.add_argument("--webhook", action="append", default=[],
                     help="Discord webhook URL for alerts (repeatable)")
    cfg.add_argument("--clear-webhooks", action="store_true",
                     help="Remove previously configured webhooks first")
    cfg.add_argument("--report-hour", type=_hour, help="Hour (0-23) for the daily report")
    cfg.add_argument("--no-report", action="store_true", help="Disable the daily report")
    cfg.add_argument("--timezone", help="IANA timezone for reports and display")
    cfg.add_argument("--openai-access-token", help="ChatGPT OAuth access token")
    cfg.add_argument("--openai-refresh-token", help="ChatGPT OAuth refresh token")
    cfg.add_argument("--openai-account-id", help="ChatGPT account ID")
    cfg.add_argument("--disable", action="append", default=[], choices=registry.names(),
                     help="Disable a provider")
    cfg.add_argument("--enable", action="append", default=[], choices=registry.names(),
                     help="Enable a provider")

    status = sub.add_parser("status", help="Show current quota status")
    status.add_argument("-j", "--json", action="store_true", help="Output as JSON")

    watch = sub.add_parser("watch", help="Watch mode - refresh periodically")
    watch.add_argument("-i", "--interval", type=_positive, default=app_config.DEFAULT_WATCH_SECONDS,
                       help="Refresh interval in seconds")

    monitor = sub.add_parser(
        "monitor",
        help="Monitor quotas and send Discord alerts at thresholds (80%%, 60%%, 40%%, 20%%)"
    )
    monitor.add_argument("--webhook", action="append", default=[],
                         help="Discord webhook URL (or use config / DISCORD_WEBHOOK)")
    monitor.add_argument("--interval", type=_positive, help="Check interval in minutes")
    monitor.add_argument("--once", action="store_true", help="Run once and exit (for cron)")
    monitor.add_argument("--reset-state", action="store_true", help="Reset alert state")
    monitor.add_argument("--report-hour", type=_hour, help="Hour (0-23) for the daily report")

    return parser


def _timezone(cfg: MonitorConfig) -> ZoneInfo:
    try:
        return ZoneInfo(cfg.report_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone {cfg.report_timezone!r}") from e


def _require_config() -> MonitorConfig:
    cfg = load_config(app_config.CONFIG_FILE)
    if cfg is None:
        raise ConfigurationError(NOT_CONFIGURED)
    return cfg


def _check_webhooks(urls: list[str]) -> None:
    invalid = [url for url in urls if not is_webhook_url(url)]
    if invalid:
        raise ConfigurationError(
            f"Invalid webhook URL(s): {', '.join(invalid)}. Expected https://discord.com/api/webhooks/..."
        )


def _install_stop_handler(stop) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop)
        except (NotImplementedError, RuntimeError):
            # Windows: fall back to KeyboardInterrupt
            pass


def cmd_config(args: argparse.Namespace) -> int:
    cfg = load_config(app_config.CONFIG_FILE) or MonitorConfig()

    if args.session_key:
        cfg.session_key = args.session_key
    if args.org_id:
        cfg.organization_id = args.org_id
    _check_webhooks(args.webhook)
    if args.clear_webhooks:
        cfg.webhooks = []
    for url in args.webhook:
        if url not in cfg.webhooks:
            cfg.webhooks.append(url)
    if args.no_report:
        cfg.report_hour = None
    elif args.report_hour is not None:
        cfg.report_hour = args.report_hour
    if args.timezone:
        cfg.report_timezone = args.timezone
        _timezone(cfg)

    if args.openai_access_token:
        previous = cfg.openai
        cfg.openai = OpenAICredentials(
            access_token=args.openai_access_token,
            refresh_token=args.openai_refresh_token or (previous.refresh_token if previous else ""),
            account_id=args.openai_account_id or (previous.account_id if previous else None),
        )
    elif cfg.openai is not None:
        if args.openai_refresh_token:
            cfg.openai.refresh_token = args.openai_refresh_token
        if args.openai_account_id:
            cfg.openai.account_id = args.openai_account_id

    for name in args.enable:
        setattr(cfg, f"{name}_enabled", True)
    for name in args.disable:
        setattr(cfg, f"{name}_enabled", False)

    if not cfg.has_claude_credentials and not cfg.has_openai_credentials:
        raise ConfigurationError(
            "Provide --session-key and --org-id (Claude) or --openai-access-token (OpenAI)"
        )

    path = save_config(cfg, app_config.CONFIG_FILE)
    console.print(f"[green]✓ Configuration saved to {path}[/]")
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    cfg = _require_config()
    tz = _timezone(cfg)
    source = registry.build(cfg)
    try:
        if args.json:
            snapshot = await source.fetch_quota()
            print(snapshot_to_json(snapshot))
        else:
            with console.status("Fetching quota data..."):
                snapshot = await source.fetch_quota()
            render_snapshot(snapshot, tz, console)
    except SourceError as e:
        err_console.print(f"[red]Error: {e}[/]")
        return 1
    finally:
        await source.close()
    return 0


async def cmd_watch(args: argparse.Namespace) -> int:
    cfg = _require_config()
    tz = _timezone(cfg)
    source = registry.build(cfg)
    stop = asyncio.Event()
    _install_stop_handler(stop.set)

    console.print(f"[grey50]Watch mode (refreshing every {args.interval:g}s). Ctrl+C to exit.\n[/]")
    try:
        while not stop.is_set():
            try:
                snapshot = await source.fetch_quota()
                console.clear()
                console.print(f"[grey50]Last updated: {datetime.now(tz).strftime('%H:%M:%S')}\n[/]")
                render_snapshot(snapshot, tz, console)
            except SourceError as e:
                err_console.print(f"[red]Error: {e}[/]")
            try:
                await asyncio.wait_for(stop.wait(), timeout=args.interval)
            except asyncio.TimeoutError:
                pass
    finally:
        await source.close()
    return 0


def _print_status(tz: ZoneInfo):
    def on_status(status: str) -> None:
        timestamp = datetime.now(tz).strftime("%H:%M:%S")
        style = "red" if status.startswith("Error") else "yellow" if status.startswith("Alert") else "green"
        console.print(f"[grey50][{timestamp}][/] [{style}]{status}[/]")
    return on_status


async def cmd_monitor(args: argparse.Namespace) -> int:
    cfg = _require_config()
    tz = _timezone(cfg)

    destinations = cfg.destinations(args.webhook)
    if not destinations:
        raise ConfigurationError(
            "Discord webhook required. Use --webhook, config, or DISCORD_WEBHOOK env var."
        )
    _check_webhooks(destinations)

    store = FileAlertStateStore(app_config.STATE_FILE)
    if args.reset_state:
        store.reset()
        console.print("[green]Alert state reset.[/]")

    report_hour = args.report_hour if args.report_hour is not None else cfg.report_hour
    interval = args.interval or cfg.poll_minutes

    monitor = QuotaMonitor(
        source=registry.build(cfg),
        notifier=DiscordWebhookNotifier(destinations, tz),
        store=store,
        tz=tz,
        interval_minutes=interval,
        report_hour=report_hour,
        on_status=_print_status(tz),
    )

    if args.once:
        await monitor.run_once()
        return 0

    console.print(f"[cyan]🔍 Monitoring quotas (every {interval:g} min). Ctrl+C to exit.[/]")
    _install_stop_handler(monitor.stop)
    try:
        await monitor.run_forever()
    except (KeyboardInterrupt, asyncio.CancelledError):
        monitor.stop()
        await monitor.wait()
    return 0


COMMANDS = {
    "status": cmd_status,
    "watch": cmd_watch,
    "monitor": cmd_monitor,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "config":
            return cmd_config(args)
        return asyncio.run(COMMANDS[args.command](args))
    except ConfigurationError as e:
        err_console.print(f"[red]{e}[/]")
        logger.error(f"Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
