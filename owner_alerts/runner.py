"""Command line entry points for Owner Alerts.

Meant to be run from cron:
    owner-alerts retry            every 5 minutes
    owner-alerts digest           once a day
    owner-alerts cleanup          once a day
"""

import argparse
import json
import logging
import sys
from datetime import date

from .config import config
from .engine import AlertEngine
from .exceptions import UnknownChannelError
from .models import AlertLevel, AlertType, ChannelId

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Quiet down HTTP client logs
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def cmd_retry(engine: AlertEngine, args) -> int:
    stats = engine.retry_failed_notifications(limit=args.limit, max_age_hours=args.max_age_hours)
    print(
        f"Retried {stats['records']} alert(s): {stats['success']} sent, "
        f"{stats['failed']} failed, {stats['skipped']} skipped"
    )
    return 0 if stats["failed"] == 0 else 1


def cmd_digest(engine: AlertEngine, args) -> int:
    day = date.fromisoformat(args.date) if args.date else None
    result = engine.send_daily_digest(day)
    if result is None:
        print("No digest sent")
        return 0
    if result.success:
        print("Digest sent")
        return 0
    print(f"Digest failed: {result.error}")
    return 1


def cmd_test_channel(engine: AlertEngine, args) -> int:
    try:
        result = engine.test_channel(args.channel)
    except UnknownChannelError as e:
        print(str(e))
        return 2

    if result.success:
        print(f"{args.channel}: OK")
        return 0
    print(f"{args.channel}: FAILED - {result.error}")
    return 1


def cmd_trigger(engine: AlertEngine, args) -> int:
    context = json.loads(args.context) if args.context else {}
    record = engine.trigger_alert(
        alert_type=AlertType(args.type),
        code=args.code,
        level=AlertLevel(args.level),
        title=args.title,
        message=args.message,
        context=context,
    )
    if record is None:
        print("No owner configured; alert dropped")
        return 1

    print(f"Alert {record.id} ({record.occurrence_count}x)")
    for channel, delivery in sorted(record.deliveries.items()):
        status = "sent" if delivery.sent else f"failed: {delivery.error}"
        print(f"  {channel}: {status}")
    return 0


def cmd_cleanup(engine: AlertEngine, args) -> int:
    count = engine.store.cleanup_old_alerts(days=args.days)
    print(f"Removed {count} alert(s) older than {args.days} days")
    return 0


def cmd_stats(engine: AlertEngine, args) -> int:
    stats = engine.store.get_stats(days=args.days)
    print(json.dumps(stats, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Owner alert engine: retry, digest and maintenance commands."
    )
    parser.add_argument(
        "--db-path",
        default=None,
        help=f"Alert database path (default: {config.ALERT_DB_PATH})",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    retry = subparsers.add_parser("retry", help="Re-send failed notifications")
    retry.add_argument("--limit", type=int, default=config.RETRY_LIMIT)
    retry.add_argument("--max-age-hours", type=int, default=config.RETRY_MAX_AGE_HOURS)
    retry.set_defaults(func=cmd_retry)

    digest = subparsers.add_parser("digest", help="Send the daily digest email")
    digest.add_argument("--date", help="Day to summarize, YYYY-MM-DD (default: today)")
    digest.set_defaults(func=cmd_digest)

    test = subparsers.add_parser("test-channel", help="Send a test notification")
    test.add_argument("channel", choices=ChannelId.ALL)
    test.set_defaults(func=cmd_test_channel)

    trigger = subparsers.add_parser("trigger", help="Trigger an alert manually")
    trigger.add_argument("--type", required=True, choices=[t.value for t in AlertType])
    trigger.add_argument("--code", required=True)
    trigger.add_argument("--level", required=True, choices=[lv.value for lv in AlertLevel])
    trigger.add_argument("--title", required=True)
    trigger.add_argument("--message", required=True)
    trigger.add_argument("--context", help="JSON object with extra context")
    trigger.set_defaults(func=cmd_trigger)

    cleanup = subparsers.add_parser("cleanup", help="Delete old alerts")
    cleanup.add_argument("--days", type=int, default=config.CLEANUP_DAYS)
    cleanup.set_defaults(func=cmd_cleanup)

    stats = subparsers.add_parser("stats", help="Print alert statistics as JSON")
    stats.add_argument("--days", type=int, default=7)
    stats.set_defaults(func=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    engine = AlertEngine.from_config(db_path=args.db_path)
    return args.func(engine, args)


if __name__ == "__main__":
    sys.exit(main())
