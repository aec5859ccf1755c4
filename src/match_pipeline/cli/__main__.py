"""CLI entry point: python -m match_pipeline.cli flush"""

import argparse
import asyncio
import json
import sys

import structlog

from match_pipeline.config.pipeline import NOTIFICATION_TYPES, load_pipeline_config
from match_pipeline.config.settings import get_settings
from match_pipeline.db.session import get_session_factory
from match_pipeline.logging_config import configure_logging
from match_pipeline.notifications.batcher import run_batch
from match_pipeline.notifications.delivery import build_channel


async def run_flush(notification_types: list[str], dry_run: bool) -> list[dict]:
    """Run one batch per notification type and return the summaries."""
    log = structlog.get_logger()
    settings = get_settings()
    pipeline_config = load_pipeline_config(settings.pipeline_config_path)
    session_factory = get_session_factory()

    if dry_run:
        settings = settings.model_copy(update={"resend_api_key": ""})
    channel = build_channel(settings)

    summaries = []
    try:
        for notification_type in notification_types:
            summary = await run_batch(
                session_factory,
                channel,
                pipeline_config.batcher,
                notification_type,
                link_url=f"{settings.app_base_url.rstrip('/')}/messages",
            )
            summaries.append(summary.as_dict())
    finally:
        await channel.aclose()

    log.info("flush_complete", runs=len(summaries))
    return summaries


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="match_pipeline.cli",
        description="Match pipeline CLI",
    )
    subparsers = parser.add_subparsers(dest="command")

    flush_parser = subparsers.add_parser(
        "flush", help="Run the notification batcher once (for cron-style schedulers)"
    )
    flush_parser.add_argument(
        "--type",
        dest="notification_types",
        action="append",
        choices=NOTIFICATION_TYPES,
        default=None,
        help="Notification type to flush; repeatable (default: configured types)",
    )
    flush_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log digests instead of sending them (events are still marked sent)",
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "flush":
        settings = get_settings()
        configure_logging(json_output=settings.log_json, log_level=settings.log_level)

        notification_types = args.notification_types
        if not notification_types:
            notification_types = load_pipeline_config(settings.pipeline_config_path).batcher.notification_types

        summaries = asyncio.run(run_flush(notification_types, args.dry_run))
        print(json.dumps(summaries, indent=2))


if __name__ == "__main__":
    main()
