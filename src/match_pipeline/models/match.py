"""Match model -- the canonical record authorizing private messaging."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from match_pipeline.models.base import Base


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Order a user pair so that (A, B) and (B, A) normalise to one key."""
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class Match(Base):
    """A mutual match between two users.

    Canonical ordering is enforced (user_a < user_b) so each unordered pair
    maps to exactly one row.
    """

    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_a: Mapped[str] = mapped_column(sa.String)
    user_b: Mapped[str] = mapped_column(sa.String)

    # Set when the match came from a guardian approval
    introduction_request_id: Mapped[int | None] = mapped_column(
        sa.Integer, sa.ForeignKey("introduction_requests.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(sa.DateTime)

    __table_args__ = (
        sa.UniqueConstraint("user_a", "user_b", name="uq_matches_user_pair"),
        sa.CheckConstraint("user_a < user_b", name="canonical_ordering"),
    )

    def other(self, user_id: str) -> str:
        return self.user_b if user_id == self.user_a else self.user_a
