"""Audit log of guardian decisions."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from match_pipeline.models.base import Base


class GuardianActivity(Base):
    __tablename__ = "guardian_activity_log"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    introduction_request_id: Mapped[int | None] = mapped_column(
        sa.Integer, sa.ForeignKey("introduction_requests.id", ondelete="SET NULL"), nullable=True
    )
    guardian_id: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    action: Mapped[str] = mapped_column(sa.String)  # "approved", "rejected"
    notes: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    details: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime)
