"""Match materializer: idempotent creation of the canonical match row."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from match_pipeline.clock import as_naive_utc, utcnow
from match_pipeline.db.upsert import insert_if_absent
from match_pipeline.errors import InvalidTransition
from match_pipeline.models.match import Match, canonical_pair
from match_pipeline.notifications.queue import enqueue_notification
from match_pipeline.profiles.directory import get_display_name

logger = structlog.get_logger()


@dataclass(frozen=True)
class MaterializeResult:
    """Outcome of ``materialize``.

    ``created`` is ``False`` when the pair was already matched; the call
    is then a no-op and no notifications are queued.
    """

    match_id: int
    user_a: str
    user_b: str
    created: bool
    notification_ids: tuple[int, ...] = ()

    @property
    def duplicate_suppressed(self) -> bool:
        return not self.created


async def materialize(
    session: AsyncSession,
    user_a: str,
    user_b: str,
    introduction_request_id: int | None = None,
    now: datetime | None = None,
) -> MaterializeResult:
    """Insert the match for an unordered pair unless it already exists.

    Both the direct path and the guardian-approval path may call this for
    the same pair, in either argument order and under retries.  The
    unique pair constraint decides the winner; losers read the existing
    row.  Exactly one ``match`` notification per participant is queued,
    and only by the call that created the row.

    Raises:
        InvalidTransition: ``user_a == user_b``.
    """
    if user_a == user_b:
        raise InvalidTransition("Cannot match a user with themselves")

    low, high = canonical_pair(user_a, user_b)
    created_at = as_naive_utc(now) if now else utcnow()

    match_id = await insert_if_absent(
        session,
        Match,
        {
            "user_a": low,
            "user_b": high,
            "introduction_request_id": introduction_request_id,
            "created_at": created_at,
        },
        conflict_columns=["user_a", "user_b"],
    )

    if match_id is None:
        existing = await session.execute(
            sa.select(Match.id).where(Match.user_a == low, Match.user_b == high)
        )
        match_id = existing.scalar_one()
        logger.info("match_duplicate_suppressed", match_id=match_id, user_a=low, user_b=high)
        return MaterializeResult(match_id=match_id, user_a=low, user_b=high, created=False)

    notification_ids = []
    for recipient, other in ((low, high), (high, low)):
        other_name = await get_display_name(session, other)
        event_id = await enqueue_notification(
            session,
            recipient_user_id=recipient,
            notification_type="match",
            source_actor_name=other_name,
            payload={"match_id": match_id, "matched_user_id": other, "matchName": other_name},
            now=created_at,
        )
        notification_ids.append(event_id)

    logger.info(
        "match_materialized",
        match_id=match_id,
        user_a=low,
        user_b=high,
        introduction_request_id=introduction_request_id,
    )
    return MaterializeResult(
        match_id=match_id,
        user_a=low,
        user_b=high,
        created=True,
        notification_ids=tuple(notification_ids),
    )


async def are_matched(session: AsyncSession, user_a: str, user_b: str) -> bool:
    """Authorization check for private messaging."""
    if user_a == user_b:
        return False
    low, high = canonical_pair(user_a, user_b)
    result = await session.execute(
        sa.select(sa.exists().where(Match.user_a == low, Match.user_b == high))
    )
    return bool(result.scalar())


async def list_matches(session: AsyncSession, user_id: str) -> list[Match]:
    """All matches involving ``user_id``, newest first."""
    result = await session.execute(
        sa.select(Match)
        .where(sa.or_(Match.user_a == user_id, Match.user_b == user_id))
        .order_by(Match.created_at.desc(), Match.id.desc())
    )
    return list(result.scalars().all())
