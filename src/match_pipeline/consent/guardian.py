"""Guardian gate: third-party approval inserted between mutual interest and a match.

State machine for an introduction request::

    pending --(guardian approves)--> approved   [terminal, match created]
    pending --(guardian rejects)---> rejected   [terminal, no match]

Nothing ever leaves ``approved`` or ``rejected``.  A later re-detection of
mutual interest for the same pair returns the existing request instead of
opening a new one.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from match_pipeline.clock import as_naive_utc, utcnow
from match_pipeline.config.pipeline import GuardianConfig
from match_pipeline.consent.materializer import MaterializeResult, materialize
from match_pipeline.db.upsert import insert_if_absent
from match_pipeline.errors import GuardianMismatch, InvalidTransition, NotFound
from match_pipeline.models.guardian_activity import GuardianActivity
from match_pipeline.models.introduction_request import (
    LIVE_STATUSES,
    IntroductionRequest,
    IntroductionStatus,
)
from match_pipeline.models.match import canonical_pair
from match_pipeline.profiles.directory import GuardianPolicy, get_guardian_policy

logger = structlog.get_logger()


@dataclass(frozen=True)
class DirectMatch:
    """No guardian is involved; the caller proceeds straight to ``materialize``."""

    user_a: str
    user_b: str


@dataclass(frozen=True)
class NeedsApproval:
    """A guardian must decide before the pair may be matched.

    ``created`` is ``False`` when the request already existed (the
    duplicate-suppressed case); ``status`` is its current state.
    """

    request_id: int
    status: IntroductionStatus
    ward_user_id: str
    guardian_id: str | None
    created: bool

    @property
    def duplicate_suppressed(self) -> bool:
        return not self.created


GateOutcome = DirectMatch | NeedsApproval


@dataclass(frozen=True)
class DecisionResult:
    request_id: int
    status: IntroductionStatus
    match: MaterializeResult | None = None


async def _ward_policy(
    session: AsyncSession, requester_id: str, recipient_id: str
) -> GuardianPolicy | None:
    """Pick the participant whose guardian must approve, if any.

    The recipient's policy is consulted first.  The requester's policy
    also counts so that both signal orders converge on the same request;
    when both parties have guardians the lower user id is the ward.
    """
    policies = [
        await get_guardian_policy(session, recipient_id),
        await get_guardian_policy(session, requester_id),
    ]
    required = [p for p in policies if p.required]
    if not required:
        return None
    if len(required) > 1:
        return min(required, key=lambda p: p.ward_user_id)
    return required[0]


async def _find_request(
    session: AsyncSession, low: str, high: str, live_only: bool
) -> IntroductionRequest | None:
    stmt = sa.select(IntroductionRequest).where(
        IntroductionRequest.user_low == low,
        IntroductionRequest.user_high == high,
    )
    if live_only:
        stmt = stmt.where(IntroductionRequest.status.in_(LIVE_STATUSES))
    stmt = stmt.order_by(IntroductionRequest.created_at.desc(), IntroductionRequest.id.desc()).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def _existing(request: IntroductionRequest) -> NeedsApproval:
    return NeedsApproval(
        request_id=request.id,
        status=IntroductionStatus(request.status),
        ward_user_id=request.recipient_id,
        guardian_id=request.guardian_id,
        created=False,
    )


async def resolve(
    session: AsyncSession,
    requester_id: str,
    recipient_id: str,
    config: GuardianConfig,
    message: str | None = None,
    now: datetime | None = None,
) -> GateOutcome:
    """Decide what mutual interest between two users turns into.

    Only call this after ``check_mutual`` returned ``True``.

    Returns:
        ``DirectMatch`` when no guardian policy applies, otherwise
        ``NeedsApproval`` for the single live (or terminal) request of the
        pair.  Concurrent calls for the same pair are resolved by the
        live-pair unique index, so at most one live request ever exists.
    """
    if requester_id == recipient_id:
        raise InvalidTransition("Cannot introduce a user to themselves")

    policy = await _ward_policy(session, requester_id, recipient_id)
    if policy is None:
        return DirectMatch(user_a=requester_id, user_b=recipient_id)

    ward = policy.ward_user_id
    other = requester_id if ward == recipient_id else recipient_id
    low, high = canonical_pair(ward, other)
    log = logger.bind(ward=ward, requester=other)

    live = await _find_request(session, low, high, live_only=True)
    if live is not None:
        log.info("introduction_duplicate_suppressed", request_id=live.id, status=live.status)
        return _existing(live)

    if not config.allow_retry_after_rejection:
        previous = await _find_request(session, low, high, live_only=False)
        if previous is not None:
            log.info("introduction_rejected_previously", request_id=previous.id)
            return _existing(previous)

    ts = as_naive_utc(now) if now else utcnow()
    request_id = await insert_if_absent(
        session,
        IntroductionRequest,
        {
            "requester_id": other,
            "recipient_id": ward,
            "user_low": low,
            "user_high": high,
            "status": IntroductionStatus.PENDING.value,
            "guardian_id": policy.guardian_id,
            "guardian_approved": None,
            "message": message,
            "created_at": ts,
            "updated_at": ts,
        },
        conflict_columns=["user_low", "user_high"],
        conflict_where=IntroductionRequest.status.in_(LIVE_STATUSES),
    )

    if request_id is None:
        # Lost the race to a concurrent resolve for the same pair
        winner = await _find_request(session, low, high, live_only=True)
        log.info("introduction_duplicate_suppressed", request_id=winner.id, status=winner.status)
        return _existing(winner)

    log.info("introduction_requested", request_id=request_id, guardian_id=policy.guardian_id)
    return NeedsApproval(
        request_id=request_id,
        status=IntroductionStatus.PENDING,
        ward_user_id=ward,
        guardian_id=policy.guardian_id,
        created=True,
    )


async def decide(
    session: AsyncSession,
    request_id: int,
    approved: bool,
    notes: str | None = None,
    guardian_id: str | None = None,
    now: datetime | None = None,
) -> DecisionResult:
    """Apply a guardian's decision to a pending introduction request.

    Approval materializes the match inside the same transaction.
    Rejection is terminal and not retryable.

    Raises:
        NotFound: no request with ``request_id``.
        GuardianMismatch: ``guardian_id`` is not the request's guardian.
        InvalidTransition: the request is no longer pending.
    """
    request = await session.get(IntroductionRequest, request_id)
    if request is None:
        raise NotFound(f"Introduction request {request_id} not found")

    if guardian_id is not None and request.guardian_id is not None and guardian_id != request.guardian_id:
        raise GuardianMismatch(f"Guardian {guardian_id} cannot decide request {request_id}")

    if IntroductionStatus(request.status).is_terminal:
        raise InvalidTransition(f"Introduction request {request_id} is already {request.status}")

    new_status = IntroductionStatus.APPROVED if approved else IntroductionStatus.REJECTED
    ts = as_naive_utc(now) if now else utcnow()

    # Guarded on status so a concurrent decision cannot be overwritten
    result = await session.execute(
        sa.update(IntroductionRequest)
        .where(
            IntroductionRequest.id == request_id,
            IntroductionRequest.status == IntroductionStatus.PENDING.value,
        )
        .values(
            status=new_status.value,
            guardian_approved=approved,
            guardian_notes=notes,
            decided_at=ts,
            updated_at=ts,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidTransition(f"Introduction request {request_id} was decided concurrently")
    await session.refresh(request)

    match_result = None
    if approved:
        match_result = await materialize(
            session,
            request.requester_id,
            request.recipient_id,
            introduction_request_id=request.id,
            now=ts,
        )

    session.add(
        GuardianActivity(
            introduction_request_id=request.id,
            guardian_id=guardian_id or request.guardian_id,
            action=new_status.value,
            notes=notes,
            details={
                "requester_id": request.requester_id,
                "recipient_id": request.recipient_id,
                "match_id": match_result.match_id if match_result else None,
            },
            created_at=ts,
        )
    )
    await session.flush()

    logger.info(
        "introduction_decided",
        request_id=request.id,
        status=new_status.value,
        guardian_id=guardian_id or request.guardian_id,
        match_id=match_result.match_id if match_result else None,
    )
    return DecisionResult(request_id=request.id, status=new_status, match=match_result)


async def list_introduction_requests(
    session: AsyncSession,
    guardian_id: str | None = None,
    user_id: str | None = None,
    status: str | None = None,
    page: int = 1,
    size: int = 20,
) -> tuple[list[IntroductionRequest], int]:
    """One page of introduction requests, newest first, with the total count.

    ``user_id`` matches either participant.
    """
    stmt = sa.select(IntroductionRequest)

    if guardian_id is not None:
        stmt = stmt.where(IntroductionRequest.guardian_id == guardian_id)
    if user_id is not None:
        stmt = stmt.where(
            sa.or_(
                IntroductionRequest.requester_id == user_id,
                IntroductionRequest.recipient_id == user_id,
            )
        )
    if status is not None:
        stmt = stmt.where(IntroductionRequest.status == status)

    stmt = stmt.order_by(IntroductionRequest.created_at.desc(), IntroductionRequest.id.desc())

    count_stmt = sa.select(sa.func.count()).select_from(stmt.subquery())
    total = (await session.execute(count_stmt)).scalar_one()

    result = await session.execute(stmt.offset((page - 1) * size).limit(size))
    return list(result.scalars().all()), total
