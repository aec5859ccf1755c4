"""Record of failed digest dispatches, one row per failed group attempt."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from match_pipeline.models.base import Base


class DeliveryFailureLog(Base):
    """A digest group that could not be dispatched.

    The group's events stay unsent and are retried on the next run; the
    number of rows per ``group_key`` is the attempt count reported in logs.
    """

    __tablename__ = "notification_delivery_failures"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    recipient_user_id: Mapped[str] = mapped_column(sa.String)
    notification_type: Mapped[str] = mapped_column(sa.String)
    group_key: Mapped[str] = mapped_column(sa.String, index=True)
    event_count: Mapped[int] = mapped_column(sa.Integer)
    error: Mapped[str] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime)
