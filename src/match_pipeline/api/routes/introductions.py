"""API routes for the guardian console."""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from match_pipeline.api.deps import get_db
from match_pipeline.api.schemas import (
    DecisionRequest,
    DecisionResponse,
    IntroductionRequestSchema,
    PaginatedResponse,
)
from match_pipeline.consent.guardian import decide, list_introduction_requests

router = APIRouter(prefix="/api/introductions", tags=["introductions"])


@router.get("", response_model=PaginatedResponse[IntroductionRequestSchema])
async def list_introductions(
    db: AsyncSession = Depends(get_db),
    page: int = Query(default=1, ge=1),
    size: int = Query(default=20, ge=1, le=100),
    guardian_id: str | None = None,
    user_id: str | None = None,
    status: str | None = Query(default=None, pattern="^(pending|approved|rejected)$"),
) -> PaginatedResponse[IntroductionRequestSchema]:
    """Introduction requests, filterable by guardian, participant and status."""
    requests, total = await list_introduction_requests(
        db, guardian_id=guardian_id, user_id=user_id, status=status, page=page, size=size
    )

    items = [IntroductionRequestSchema.model_validate(r) for r in requests]
    pages = math.ceil(total / size) if total > 0 else 1

    return PaginatedResponse(items=items, total=total, page=page, size=size, pages=pages)


@router.post("/{request_id}/decision", response_model=DecisionResponse)
async def decide_introduction(
    request_id: int,
    request: DecisionRequest,
    db: AsyncSession = Depends(get_db),
) -> DecisionResponse:
    """Guardian approves or rejects a pending introduction."""
    async with db.begin():
        result = await decide(
            db,
            request_id,
            approved=request.approved,
            notes=request.notes,
            guardian_id=request.guardian_id,
        )

    return DecisionResponse(
        request_id=result.request_id,
        status=result.status.value,
        match_id=result.match.match_id if result.match else None,
        match_created=bool(result.match and result.match.created),
    )
