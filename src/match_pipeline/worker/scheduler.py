"""Fixed-interval scheduler for the notification batcher.

Each tick runs one batch per configured notification type.  A failing run
is logged and the loop carries on; the next tick retries whatever is
still unsent.
"""

from __future__ import annotations

import asyncio

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from match_pipeline.config.pipeline import BatcherConfig
from match_pipeline.notifications.batcher import BatchSummary, run_batch
from match_pipeline.notifications.delivery import DeliveryChannel

logger = structlog.get_logger()


async def run_all_types(
    session_factory: async_sessionmaker,
    channel: DeliveryChannel,
    config: BatcherConfig,
    link_url: str = "",
) -> list[BatchSummary]:
    """Run the batcher once for every configured notification type."""
    summaries = []
    for notification_type in config.notification_types:
        try:
            summary = await run_batch(
                session_factory, channel, config, notification_type, link_url=link_url
            )
        except Exception as e:
            logger.error("batch_failed", notification_type=notification_type, error=str(e), exc_info=True)
            continue
        summaries.append(summary)
    return summaries


async def run_periodically(
    session_factory: async_sessionmaker,
    channel: DeliveryChannel,
    config: BatcherConfig,
    stop_event: asyncio.Event,
    link_url: str = "",
) -> int:
    """Run ``run_all_types`` every ``batch_interval_seconds`` until stopped.

    Returns:
        Number of completed ticks.
    """
    log = logger.bind(interval_seconds=config.batch_interval_seconds)
    log.info("scheduler_started", notification_types=config.notification_types)
    ticks = 0

    while not stop_event.is_set():
        await run_all_types(session_factory, channel, config, link_url=link_url)
        ticks += 1
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=config.batch_interval_seconds)
        except TimeoutError:
            pass

    log.info("scheduler_stopped", ticks=ticks)
    return ticks
