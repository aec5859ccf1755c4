"""Read-only mirror of the profile fields the pipeline consumes.

Profile management owns this table; the pipeline only reads the tier,
guardian policy, contact and notification preference columns.
"""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from match_pipeline.models.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(sa.String, primary_key=True)
    display_name: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    email: Mapped[str | None] = mapped_column(sa.String, nullable=True)

    # Billing-owned fact
    subscription_tier: Mapped[str] = mapped_column(sa.String, default="basic")

    # Guardian (wali) policy
    wali_required: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    guardian_user_id: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    guardian_contact: Mapped[str | None] = mapped_column(sa.String, nullable=True)

    # Notification preferences
    email_notifications_enabled: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    notify_messages: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    notify_matches: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    notify_intro_requests: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    notification_frequency: Mapped[str] = mapped_column(sa.String, default="instant")

    updated_at: Mapped[datetime] = mapped_column(sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP"))
