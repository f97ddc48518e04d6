"""Command-line interface for the position health monitor."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from .config import load_config
from .errors import PositionHealthError
from .logging_setup import configure_logging
from .models import AlertType
from .services import Monitor

logger = logging.getLogger(__name__)


def _parse_ts(value: str) -> datetime:
    """ISO-8601 timestamp; naive values are taken as UTC."""
    try:
        ts = datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid timestamp '{value}'") from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="position-health",
        description="Position health monitoring and alerting",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init-db", help="Create database tables")
    sub.add_parser("check", help="Single sweep with alerts")
    sub.add_parser("report", help="Generate daily position report")

    monitor_parser = sub.add_parser("monitor", help="Continuous monitoring loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in minutes (overrides config)",
    )

    register_parser = sub.add_parser("register", help="Register a discovered position")
    register_parser.add_argument("position_id")
    register_parser.add_argument("wallet")
    register_parser.add_argument("protocol")
    register_parser.add_argument("--name", default="", help="Display name")
    register_parser.add_argument("--base-asset", default="USD")

    archive_parser = sub.add_parser("archive", help="Archive a fully exited position")
    archive_parser.add_argument("position_id")

    link_parser = sub.add_parser("link", help="Link a wallet to a user")
    link_parser.add_argument("user_id")
    link_parser.add_argument("wallet")

    record_parser = sub.add_parser("record", help="Record a position valuation")
    record_parser.add_argument("position_id")
    record_parser.add_argument("valuation", type=float)
    record_parser.add_argument(
        "--ts", type=_parse_ts, default=None, help="ISO timestamp (default: now)"
    )
    record_parser.add_argument(
        "--reset",
        action="store_true",
        help="Mark a capital inflow/outflow (restarts APY tracking)",
    )

    history_parser = sub.add_parser("history", help="Show a user's notification log")
    history_parser.add_argument("user_id")
    history_parser.add_argument("--limit", type=int, default=20)
    history_parser.add_argument(
        "--type", choices=[t.value for t in AlertType], default=None
    )

    cleanup_parser = sub.add_parser("cleanup", help="Prune old notification log entries")
    cleanup_parser.add_argument(
        "--days", type=int, default=None, help="Retention in days (default: config)"
    )

    return parser


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    monitor = Monitor(config)

    try:
        if args.command == "init-db":
            await monitor.init_db()
        elif args.command == "check":
            await monitor.check_and_alert()
        elif args.command == "report":
            print(await monitor.generate_daily_report())
        elif args.command == "monitor":
            await monitor.run_continuous(args.interval)
        elif args.command == "register":
            position = await monitor.positions.register(
                args.position_id,
                args.wallet,
                args.protocol,
                display_name=args.name,
                base_asset=args.base_asset,
            )
            print(f"Registered {position.id} ({position.display_name} · {position.protocol})")
        elif args.command == "archive":
            await monitor.positions.archive(args.position_id)
            print(f"Archived {args.position_id}")
        elif args.command == "link":
            await monitor.positions.link_wallet(args.user_id, args.wallet)
            print(f"Linked {args.wallet} to user {args.user_id}")
        elif args.command == "record":
            ts = args.ts or datetime.now(timezone.utc)
            entries = await monitor.record_valuation(
                args.position_id, ts, args.valuation, is_reset=args.reset
            )
            print(f"Recorded {args.position_id} at {ts.isoformat()}; {len(entries)} alert(s) issued")
        elif args.command == "history":
            alert_type = AlertType(args.type) if args.type else None
            entries = await monitor.log_store.list_for_user(
                args.user_id, limit=args.limit, alert_type=alert_type
            )
            for entry in entries:
                print(
                    f"{entry.sent_at:%Y-%m-%d %H:%M:%S} [{entry.severity.value}] "
                    f"{entry.alert_type.value} {entry.subject}: {entry.title}"
                )
            if not entries:
                print("No notifications found.")
        elif args.command == "cleanup":
            days = args.days if args.days is not None else config.suppression.retention_days
            deleted = await monitor.log_store.delete_older_than(days)
            print(f"Deleted {deleted} notification log entries")
        else:
            build_parser().print_help()
            sys.exit(1)
    finally:
        await monitor.close()


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except PositionHealthError as e:
        logger.error("%s", e)
        sys.exit(2)
