"""Write side of the pending notification queue."""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from match_pipeline.clock import as_naive_utc, utcnow
from match_pipeline.config.pipeline import NOTIFICATION_TYPES
from match_pipeline.errors import UnknownNotificationType
from match_pipeline.models.pending_notification import PendingNotification

logger = structlog.get_logger()


async def enqueue_notification(
    session: AsyncSession,
    recipient_user_id: str,
    notification_type: str,
    source_actor_name: str,
    payload: dict | None = None,
    now: datetime | None = None,
) -> int:
    """Queue one event for the batcher and return its id.

    Must be called within the transaction of the action that triggered it,
    so the event exists if and only if the action committed.
    """
    if notification_type not in NOTIFICATION_TYPES:
        raise UnknownNotificationType(f"Unknown notification type: {notification_type!r}")

    event = PendingNotification(
        recipient_user_id=recipient_user_id,
        notification_type=notification_type,
        source_actor_name=(source_actor_name or "").strip() or "someone",
        payload=payload or {},
        created_at=as_naive_utc(now) if now else utcnow(),
        is_sent=False,
    )
    session.add(event)
    await session.flush()

    logger.debug(
        "notification_enqueued",
        event_id=event.id,
        recipient=recipient_user_id,
        notification_type=notification_type,
    )
    return event.id
