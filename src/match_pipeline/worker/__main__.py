"""Notification batch worker entry point: python -m match_pipeline.worker"""

import asyncio
import signal

import structlog

from match_pipeline.config.pipeline import load_pipeline_config
from match_pipeline.config.settings import get_settings
from match_pipeline.db.session import get_session_factory
from match_pipeline.logging_config import configure_logging
from match_pipeline.notifications.delivery import build_channel
from match_pipeline.worker.scheduler import run_periodically


async def main() -> None:
    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    log = structlog.get_logger()

    session_factory = get_session_factory()
    pipeline_config = load_pipeline_config(settings.pipeline_config_path)
    channel = build_channel(settings)

    log.info(
        "worker_starting",
        database=settings.database_url.split("@")[-1],
        notification_types=pipeline_config.batcher.notification_types,
    )

    # Graceful shutdown via SIGTERM/SIGINT
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await run_periodically(
            session_factory,
            channel,
            pipeline_config.batcher,
            stop_event,
            link_url=f"{settings.app_base_url.rstrip('/')}/messages",
        )
    finally:
        await channel.aclose()
    log.info("worker_shutdown")


if __name__ == "__main__":
    asyncio.run(main())
