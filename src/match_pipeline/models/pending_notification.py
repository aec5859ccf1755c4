"""Pending notification event queue model."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from match_pipeline.models.base import Base


class PendingNotification(Base):
    """One notification-worthy event awaiting batched delivery.

    Written once per triggering action and mutated exactly once, when the
    batcher marks it sent (``is_sent``, ``sent_at`` and the digest
    ``subject`` are set together).
    """

    __tablename__ = "pending_notifications"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    recipient_user_id: Mapped[str] = mapped_column(sa.String)
    notification_type: Mapped[str] = mapped_column(sa.String)
    source_actor_name: Mapped[str] = mapped_column(sa.String)
    payload: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime)

    is_sent: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    sent_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)
    subject: Mapped[str | None] = mapped_column(sa.String, nullable=True)

    __table_args__ = (
        sa.CheckConstraint(
            "notification_type IN ('new_message', 'match', 'intro_request', 'wali_approval')",
            name="valid_notification_type",
        ),
        sa.Index("ix_pending_notifications_unsent", "notification_type", "is_sent", "created_at"),
    )
