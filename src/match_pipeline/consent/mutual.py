"""Mutual-interest detector."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from match_pipeline.models.signal import POSITIVE_KINDS, Signal


async def check_mutual(session: AsyncSession, from_user_id: str, to_user_id: str) -> bool:
    """Return whether ``to_user_id`` has ever sent a positive signal to ``from_user_id``.

    Read-only; safe to call any number of times.
    """
    stmt = sa.select(
        sa.exists().where(
            Signal.from_user_id == to_user_id,
            Signal.to_user_id == from_user_id,
            Signal.kind.in_([k.value for k in POSITIVE_KINDS]),
        )
    )
    result = await session.execute(stmt)
    return bool(result.scalar())
