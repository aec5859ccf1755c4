"""Notification batcher: the periodically-triggered flush of pending events.

One run:
1. Fetch unsent events of one type that have dwelled long enough
2. Group by (recipient, source), re-read preferences and plan digests (pure)
3. Settle groups that can never be delivered under ``skipped:<reason>``
4. Dispatch at most ``max_groups_per_run`` digests with a bounded timeout
5. Mark the group's events sent in one update, only after dispatch succeeded

Recipients on a scheduled (non-instant) frequency are left out of the fetch
and stay queued for the digest job.

A failed or timed-out dispatch leaves the group unsent for the next run
(at-least-once delivery).  The ``is_sent = false`` guard on the update
keeps a second run over the same window from double-counting.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from match_pipeline.clock import as_naive_utc, utcnow
from match_pipeline.config.pipeline import BatcherConfig
from match_pipeline.errors import DeliveryFailure
from match_pipeline.models.delivery_failure import DeliveryFailureLog
from match_pipeline.models.pending_notification import PendingNotification
from match_pipeline.notifications.delivery import DeliveryChannel
from match_pipeline.notifications.digest import (
    DEFERRED_SKIP_REASONS,
    EventSnapshot,
    PlannedDigest,
    group_events,
    plan_digests,
)
from match_pipeline.profiles.directory import (
    deferred_recipient_clause,
    get_notification_preferences,
)

logger = structlog.get_logger()


@dataclass
class BatchSummary:
    notification_type: str
    groups_processed: int = 0
    events_flushed: int = 0
    groups_skipped: int = 0
    groups_failed: int = 0
    events_settled: int = 0

    def as_dict(self) -> dict:
        return {
            "notificationType": self.notification_type,
            "groupsProcessed": self.groups_processed,
            "eventsFlushed": self.events_flushed,
            "groupsSkipped": self.groups_skipped,
            "groupsFailed": self.groups_failed,
            "eventsSettled": self.events_settled,
        }


async def fetch_unsent_events(
    session_factory: async_sessionmaker,
    notification_type: str,
    cutoff: datetime,
    limit: int,
) -> list[EventSnapshot]:
    """Snapshot unsent events created at or before ``cutoff``, oldest first.

    Events for recipients on a scheduled digest frequency are not returned.
    """
    async with session_factory() as session:
        result = await session.execute(
            sa.select(PendingNotification)
            .where(
                PendingNotification.notification_type == notification_type,
                PendingNotification.is_sent == False,  # noqa: E712
                PendingNotification.created_at <= cutoff,
                ~deferred_recipient_clause(PendingNotification.recipient_user_id),
            )
            .order_by(PendingNotification.created_at.asc(), PendingNotification.id.asc())
            .limit(limit)
        )
        rows = result.scalars().all()

    return [
        EventSnapshot(
            id=row.id,
            recipient_user_id=row.recipient_user_id,
            notification_type=row.notification_type,
            source_actor_name=row.source_actor_name,
            payload=row.payload or {},
            created_at=row.created_at,
        )
        for row in rows
    ]


async def mark_sent(
    session_factory: async_sessionmaker,
    event_ids: list[int],
    subject: str,
    sent_at: datetime,
) -> int:
    """Flag events as sent in a single update; returns rows actually changed."""
    async with session_factory() as session, session.begin():
        result = await session.execute(
            sa.update(PendingNotification)
            .where(
                PendingNotification.id.in_(event_ids),
                PendingNotification.is_sent == False,  # noqa: E712
            )
            .values(is_sent=True, sent_at=sent_at, subject=subject)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


async def record_failure(
    session_factory: async_sessionmaker,
    planned: PlannedDigest,
    notification_type: str,
    error: str,
    failed_at: datetime,
) -> int:
    """Log a failed dispatch and return the attempt count for the group."""
    group = planned.group
    async with session_factory() as session, session.begin():
        session.add(
            DeliveryFailureLog(
                recipient_user_id=group.recipient_user_id,
                notification_type=notification_type,
                group_key=group.key,
                event_count=len(group.events),
                error=error[:2000],
                created_at=failed_at,
            )
        )
        await session.flush()
        result = await session.execute(
            sa.select(sa.func.count(DeliveryFailureLog.id)).where(
                DeliveryFailureLog.group_key == group.key,
                DeliveryFailureLog.notification_type == notification_type,
            )
        )
        return result.scalar_one()


async def _dispatch(channel: DeliveryChannel, planned: PlannedDigest, timeout: float) -> None:
    try:
        await asyncio.wait_for(
            channel.send(planned.contact, planned.digest.subject, planned.digest.body),
            timeout=timeout,
        )
    except TimeoutError as e:
        raise DeliveryFailure(f"Delivery timed out after {timeout}s") from e


async def run_batch(
    session_factory: async_sessionmaker,
    channel: DeliveryChannel,
    config: BatcherConfig,
    notification_type: str = "new_message",
    now: datetime | None = None,
    link_url: str = "",
) -> BatchSummary:
    """Flush one notification type once.

    Args:
        session_factory: Async session factory for DB access.
        channel: Delivery collaborator.
        config: Batcher configuration (dwell time, ceilings, timeout).
        notification_type: Which queue to flush.
        now: Reference time for the dwell cutoff (defaults to UTC now).
        link_url: Fallback call-to-action link for rendered digests.

    Returns:
        ``BatchSummary`` with groups processed, events flushed and events
        settled without delivery.
    """
    now = as_naive_utc(now) if now else utcnow()
    cutoff = now - timedelta(minutes=config.dwell_minutes)
    summary = BatchSummary(notification_type=notification_type)
    log = logger.bind(notification_type=notification_type)

    events = await fetch_unsent_events(session_factory, notification_type, cutoff, config.fetch_limit)
    if not events:
        log.debug("batch_no_events", cutoff=cutoff.isoformat())
        return summary

    groups = group_events(events)

    # Preferences are re-read on every run; they may have changed since enqueue
    preferences = {}
    async with session_factory() as session:
        for group in groups:
            if group.recipient_user_id not in preferences:
                preferences[group.recipient_user_id] = await get_notification_preferences(
                    session, group.recipient_user_id
                )

    plan = plan_digests(groups, preferences, notification_type, config, link_url=link_url)

    # Undeliverable groups are settled so they stop occupying the fetch window
    for skipped in plan.skipped:
        if skipped.reason in DEFERRED_SKIP_REASONS:
            log.debug("digest_deferred", group=skipped.group.key, reason=skipped.reason)
            continue
        settled = await mark_sent(
            session_factory, skipped.group.event_ids, f"skipped:{skipped.reason}", now
        )
        summary.events_settled += settled
        log.info("digest_skipped", group=skipped.group.key, reason=skipped.reason, settled=settled)

    deliveries = plan.deliveries
    if len(deliveries) > config.max_groups_per_run:
        log.info("batch_groups_deferred", deferred=len(deliveries) - config.max_groups_per_run)
        deliveries = deliveries[: config.max_groups_per_run]
    summary.groups_processed = len(deliveries) + len(plan.skipped)
    summary.groups_skipped = len(plan.skipped)

    for planned in deliveries:
        group_log = log.bind(recipient=planned.group.recipient_user_id, group=planned.group.key)
        try:
            await _dispatch(channel, planned, config.send_timeout_seconds)
        except DeliveryFailure as e:
            summary.groups_failed += 1
            attempts = await record_failure(session_factory, planned, notification_type, str(e), now)
            group_log.warning(
                "digest_dispatch_failed",
                error=str(e),
                attempt=attempts,
                event_count=len(planned.group.events),
            )
            continue

        flushed = await mark_sent(session_factory, planned.group.event_ids, planned.digest.subject, now)
        summary.events_flushed += flushed
        group_log.info("digest_dispatched", event_count=len(planned.group.events), flushed=flushed)

    log.info("batch_complete", **summary.as_dict())
    return summary
