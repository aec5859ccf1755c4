"""Introduction request model -- the guardian approval record."""

from __future__ import annotations

import enum
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from match_pipeline.models.base import Base


class IntroductionStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not IntroductionStatus.PENDING


LIVE_STATUSES = (IntroductionStatus.PENDING.value, IntroductionStatus.APPROVED.value)


class IntroductionRequest(Base):
    """Pending-approval record created when mutual interest meets a guardian policy.

    ``recipient_id`` is always the ward whose guardian decides.  The
    ``user_low``/``user_high`` columns hold the unordered pair in canonical
    order; a partial unique index allows at most one live (pending or
    approved) request per pair.
    """

    __tablename__ = "introduction_requests"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[str] = mapped_column(sa.String)
    recipient_id: Mapped[str] = mapped_column(sa.String)
    user_low: Mapped[str] = mapped_column(sa.String)
    user_high: Mapped[str] = mapped_column(sa.String)

    status: Mapped[str] = mapped_column(sa.String, default=IntroductionStatus.PENDING.value)
    guardian_id: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    guardian_approved: Mapped[bool | None] = mapped_column(sa.Boolean, nullable=True)
    guardian_notes: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    message: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime)
    decided_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)

    __table_args__ = (
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="valid_intro_status"),
        sa.CheckConstraint("user_low < user_high", name="intro_canonical_ordering"),
        sa.Index(
            "uq_introduction_requests_live_pair",
            "user_low",
            "user_high",
            unique=True,
            sqlite_where=sa.text("status IN ('pending', 'approved')"),
            postgresql_where=sa.text("status IN ('pending', 'approved')"),
        ),
        sa.Index("ix_introduction_requests_guardian_status", "guardian_id", "status"),
    )
