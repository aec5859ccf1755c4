"""API routes for the notification queue and manual batch runs."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from match_pipeline.api.deps import get_channel, get_db, get_pipeline_config, get_sessions
from match_pipeline.api.schemas import BatchSummarySchema, NotificationCreated, NotificationRequest
from match_pipeline.config.pipeline import PipelineConfig
from match_pipeline.notifications.batcher import run_batch
from match_pipeline.notifications.delivery import DeliveryChannel
from match_pipeline.notifications.queue import enqueue_notification

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("", response_model=NotificationCreated, status_code=201)
async def create_notification(
    request: NotificationRequest,
    db: AsyncSession = Depends(get_db),
) -> NotificationCreated:
    """Queue an event (e.g. a new chat message) for batched delivery."""
    async with db.begin():
        event_id = await enqueue_notification(
            db,
            recipient_user_id=request.recipient_user_id,
            notification_type=request.notification_type,
            source_actor_name=request.source_actor_name,
            payload=request.payload,
        )
    return NotificationCreated(id=event_id)


@router.post("/flush", response_model=BatchSummarySchema)
async def flush_notifications(
    notification_type: str = Query(default="new_message", pattern="^(new_message|match|intro_request|wali_approval)$"),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
    channel: DeliveryChannel = Depends(get_channel),
    config: PipelineConfig = Depends(get_pipeline_config),
) -> BatchSummarySchema:
    """Run the batcher once, outside the regular schedule."""
    summary = await run_batch(sessions, channel, config.batcher, notification_type)
    return BatchSummarySchema(**summary.as_dict())
