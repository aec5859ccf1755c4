"""Signal flow bridging the ledger, quota, mutual detection, guardian gate and materializer.

Sequence for one incoming signal, all in a single transaction:

1. Look up the sender's tier and authorize the signal (quota)
2. Append the signal to the ledger
3. For positive signals, check for the reverse signal
4. On mutual interest, ask the guardian gate what happens next
5. On a direct match, materialize it
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from match_pipeline.config.pipeline import PipelineConfig
from match_pipeline.consent.guardian import DirectMatch, GateOutcome, NeedsApproval, resolve
from match_pipeline.consent.ledger import parse_kind, record_signal
from match_pipeline.consent.materializer import MaterializeResult, materialize
from match_pipeline.consent.mutual import check_mutual
from match_pipeline.consent.quota import QuotaStatus, authorize
from match_pipeline.errors import InvalidSignal
from match_pipeline.profiles.directory import get_subscription_tier

logger = structlog.get_logger()


@dataclass(frozen=True)
class SignalOutcome:
    """Everything the swipe flow needs to report back to the user."""

    signal_id: int
    kind: str
    quota: QuotaStatus
    mutual: bool = False
    gate: GateOutcome | None = None
    match: MaterializeResult | None = None

    @property
    def outcome(self) -> str:
        """``"none"``, ``"matched"`` or ``"pending_approval"``."""
        if self.match is not None:
            return "matched"
        if isinstance(self.gate, NeedsApproval):
            return "pending_approval" if self.gate.status == "pending" else self.gate.status
        return "none"


async def submit_signal(
    session_factory: async_sessionmaker,
    from_user_id: str,
    to_user_id: str,
    kind: str,
    config: PipelineConfig,
    message: str | None = None,
    now: datetime | None = None,
) -> SignalOutcome:
    """Run one signal through the consent pipeline.

    Raises:
        InvalidSignal: self-signal or unknown kind.
        QuotaExceeded: the sender's tier ceiling is reached; nothing is written.
    """
    if from_user_id == to_user_id:
        raise InvalidSignal("A user cannot signal themselves")
    signal_kind = parse_kind(kind)
    log = logger.bind(from_user=from_user_id, to_user=to_user_id, kind=signal_kind.value)

    async with session_factory() as session, session.begin():
        tier = await get_subscription_tier(session, from_user_id, default=config.quota.default_tier)
        status = await authorize(session, from_user_id, tier, signal_kind, config.quota, now=now)

        signal_id = await record_signal(session, from_user_id, to_user_id, signal_kind, now=now)
        if status.limit is not None and signal_kind.is_positive:
            status = QuotaStatus(tier=tier, used=status.used + 1, limit=status.limit)

        if not signal_kind.is_positive:
            return SignalOutcome(signal_id=signal_id, kind=signal_kind.value, quota=status)

        if not await check_mutual(session, from_user_id, to_user_id):
            return SignalOutcome(signal_id=signal_id, kind=signal_kind.value, quota=status)

        log.info("mutual_interest_detected", signal_id=signal_id)
        gate = await resolve(
            session, from_user_id, to_user_id, config.guardian, message=message, now=now
        )

        match_result = None
        if isinstance(gate, DirectMatch):
            match_result = await materialize(session, gate.user_a, gate.user_b, now=now)

    outcome = SignalOutcome(
        signal_id=signal_id,
        kind=signal_kind.value,
        quota=status,
        mutual=True,
        gate=gate,
        match=match_result,
    )
    log.info("signal_processed", signal_id=signal_id, outcome=outcome.outcome)
    return outcome
