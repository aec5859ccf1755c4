"""API routes for the discovery/swipe flow."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from match_pipeline.api.deps import get_db, get_pipeline_config, get_sessions
from match_pipeline.api.schemas import (
    MatchCheckResponse,
    MatchSchema,
    QuotaSchema,
    SignalRequest,
    SignalResponse,
)
from match_pipeline.config.pipeline import PipelineConfig
from match_pipeline.consent.flow import submit_signal
from match_pipeline.consent.guardian import NeedsApproval
from match_pipeline.consent.materializer import are_matched, list_matches
from match_pipeline.consent.quota import QuotaStatus, daily_quota
from match_pipeline.profiles.directory import get_subscription_tier

router = APIRouter(prefix="/api", tags=["signals"])


def _quota_schema(status: QuotaStatus) -> QuotaSchema:
    return QuotaSchema(
        tier=status.tier, used=status.used, limit=status.limit, remaining=status.remaining
    )


@router.post("/signals", response_model=SignalResponse)
async def post_signal(
    request: SignalRequest,
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
    config: PipelineConfig = Depends(get_pipeline_config),
) -> SignalResponse:
    """Record a pass/like/super-interest and run mutual detection."""
    outcome = await submit_signal(
        sessions,
        request.from_user_id,
        request.to_user_id,
        request.kind,
        config,
        message=request.message,
    )

    gate = outcome.gate
    needs_approval = isinstance(gate, NeedsApproval)
    duplicate = False
    if outcome.match is not None:
        duplicate = outcome.match.duplicate_suppressed
    elif needs_approval:
        duplicate = gate.duplicate_suppressed

    return SignalResponse(
        signal_id=outcome.signal_id,
        kind=outcome.kind,
        outcome=outcome.outcome,
        mutual=outcome.mutual,
        quota=_quota_schema(outcome.quota),
        match_id=outcome.match.match_id if outcome.match else None,
        introduction_request_id=gate.request_id if needs_approval else None,
        introduction_status=gate.status.value if needs_approval else None,
        duplicate_suppressed=duplicate,
    )


@router.get("/users/{user_id}/quota", response_model=QuotaSchema)
async def get_quota(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    config: PipelineConfig = Depends(get_pipeline_config),
) -> QuotaSchema:
    """Today's positive-signal usage for a user."""
    tier = await get_subscription_tier(db, user_id, default=config.quota.default_tier)
    status = await daily_quota(db, user_id, tier, config.quota)
    return _quota_schema(status)


@router.get("/users/{user_id}/matches", response_model=list[MatchSchema])
async def get_matches(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[MatchSchema]:
    """All matches involving a user, newest first."""
    matches = await list_matches(db, user_id)
    return [
        MatchSchema.model_validate(m).model_copy(update={"other_user_id": m.other(user_id)})
        for m in matches
    ]


@router.get("/matches/check", response_model=MatchCheckResponse)
async def check_match(
    user_a: str,
    user_b: str,
    db: AsyncSession = Depends(get_db),
) -> MatchCheckResponse:
    """Whether two users may message each other privately."""
    return MatchCheckResponse(user_a=user_a, user_b=user_b, matched=await are_matched(db, user_a, user_b))
