"""Quota enforcer: per-tier daily ceiling on positive signals.

The check runs before the signal is recorded (check-then-act).  Two
concurrent requests from the same user can both pass the check, so the
ceiling may be exceeded by the number of in-flight requests.  This is an
accepted soft limit, not a billing guarantee.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from match_pipeline.clock import utc_day_bounds, utcnow
from match_pipeline.config.pipeline import QuotaConfig
from match_pipeline.consent.ledger import parse_kind
from match_pipeline.errors import QuotaExceeded
from match_pipeline.models.signal import POSITIVE_KINDS, Signal, SignalKind

logger = structlog.get_logger()


@dataclass(frozen=True)
class QuotaStatus:
    """Positive signals used today against the tier ceiling (``None`` = unlimited)."""

    tier: str
    used: int
    limit: int | None

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)


async def count_positive_signals_today(
    session: AsyncSession, user_id: str, now: datetime | None = None
) -> int:
    """Count the user's positive signals within the current UTC day."""
    start, end = utc_day_bounds(now or utcnow())
    result = await session.execute(
        sa.select(sa.func.count(Signal.id)).where(
            Signal.from_user_id == user_id,
            Signal.kind.in_([k.value for k in POSITIVE_KINDS]),
            Signal.created_at >= start,
            Signal.created_at < end,
        )
    )
    return result.scalar_one()


async def daily_quota(
    session: AsyncSession,
    user_id: str,
    tier: str,
    config: QuotaConfig,
    now: datetime | None = None,
) -> QuotaStatus:
    """Report today's usage for ``user_id`` without authorizing anything."""
    limit = config.limit_for(tier)
    used = await count_positive_signals_today(session, user_id, now)
    return QuotaStatus(tier=tier, used=used, limit=limit)


async def authorize(
    session: AsyncSession,
    user_id: str,
    tier: str,
    kind: str | SignalKind,
    config: QuotaConfig,
    now: datetime | None = None,
) -> QuotaStatus:
    """Authorize one more signal of ``kind`` for ``user_id`` today.

    Pass signals and unlimited tiers are never counted against.

    Returns:
        The usage *before* the new signal is recorded.

    Raises:
        QuotaExceeded: the tier ceiling has already been reached.
    """
    signal_kind = parse_kind(kind)
    limit = config.limit_for(tier)

    if not signal_kind.is_positive or limit is None:
        return QuotaStatus(tier=tier, used=0, limit=limit)

    used = await count_positive_signals_today(session, user_id, now)
    if used >= limit:
        logger.info("quota_exceeded", user_id=user_id, tier=tier, used=used, limit=limit)
        raise QuotaExceeded(user_id=user_id, tier=tier, limit=limit, used=used)

    return QuotaStatus(tier=tier, used=used, limit=limit)
