"""Interest signal model -- the append-only ledger."""

from __future__ import annotations

import enum
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from match_pipeline.models.base import Base


class SignalKind(enum.StrEnum):
    PASS = "pass"
    LIKE = "like"
    SUPER_INTEREST = "super_interest"

    @property
    def is_positive(self) -> bool:
        return self in POSITIVE_KINDS


POSITIVE_KINDS = frozenset({SignalKind.LIKE, SignalKind.SUPER_INTEREST})


class Signal(Base):
    """One user's directional signal toward another.

    Rows are immutable once written.  Repeats are allowed: a user may pass
    and later like the same person, so there is no uniqueness on the pair.
    """

    __tablename__ = "signals"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    from_user_id: Mapped[str] = mapped_column(sa.String)
    to_user_id: Mapped[str] = mapped_column(sa.String)
    kind: Mapped[str] = mapped_column(sa.String)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime)

    __table_args__ = (
        sa.CheckConstraint("from_user_id <> to_user_id", name="no_self_signal"),
        sa.CheckConstraint("kind IN ('pass', 'like', 'super_interest')", name="valid_signal_kind"),
        sa.Index("ix_signals_from_user_created", "from_user_id", "created_at"),
        sa.Index("ix_signals_pair", "from_user_id", "to_user_id"),
    )
