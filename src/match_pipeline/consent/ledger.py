"""Interest ledger: append-only signal recording."""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from match_pipeline.clock import as_naive_utc, utcnow
from match_pipeline.errors import InvalidSignal
from match_pipeline.models.signal import Signal, SignalKind

logger = structlog.get_logger()


def parse_kind(kind: str | SignalKind) -> SignalKind:
    try:
        return SignalKind(kind)
    except ValueError:
        raise InvalidSignal(f"Unknown signal kind: {kind!r}") from None


async def record_signal(
    session: AsyncSession,
    from_user_id: str,
    to_user_id: str,
    kind: str | SignalKind,
    now: datetime | None = None,
) -> int:
    """Append one signal row and return its id.

    Duplicates are accepted.  No quota or mutual-interest logic runs here;
    callers sequence those steps explicitly.

    Raises:
        InvalidSignal: ``from_user_id == to_user_id`` or an unknown kind.
    """
    if from_user_id == to_user_id:
        raise InvalidSignal("A user cannot signal themselves")
    signal_kind = parse_kind(kind)

    signal = Signal(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        kind=signal_kind.value,
        created_at=as_naive_utc(now) if now else utcnow(),
    )
    session.add(signal)
    await session.flush()

    logger.info(
        "signal_recorded",
        signal_id=signal.id,
        from_user=from_user_id,
        to_user=to_user_id,
        kind=signal_kind.value,
    )
    return signal.id
