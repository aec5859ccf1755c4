"""Pydantic request/response schemas for the match pipeline API."""

from __future__ import annotations

import datetime as dt
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _coerce_to_str(v: object) -> str | None:
    """Coerce datetimes to ISO strings for schema output."""
    if v is None:
        return None
    if isinstance(v, (dt.datetime, dt.date)):
        return v.isoformat()
    return str(v)


DateTimeStr = Annotated[str, BeforeValidator(_coerce_to_str)]
OptDateTimeStr = Annotated[str | None, BeforeValidator(_coerce_to_str)]

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    size: int
    pages: int


# --- Signals ---


class SignalRequest(BaseModel):
    from_user_id: str = Field(min_length=1)
    to_user_id: str = Field(min_length=1)
    kind: str  # "pass", "like" or "super_interest"
    message: str | None = None  # carried onto an introduction request


class QuotaSchema(BaseModel):
    tier: str
    used: int
    limit: int | None = None  # None = unlimited
    remaining: int | None = None


class SignalResponse(BaseModel):
    signal_id: int
    kind: str
    outcome: str  # "none", "matched", "pending_approval", "approved", "rejected"
    mutual: bool
    quota: QuotaSchema
    match_id: int | None = None
    introduction_request_id: int | None = None
    introduction_status: str | None = None
    duplicate_suppressed: bool = False


# --- Matches ---


class MatchSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_a: str
    user_b: str
    introduction_request_id: int | None = None
    created_at: DateTimeStr
    # Set when listing from one participant's point of view
    other_user_id: str | None = None


class MatchCheckResponse(BaseModel):
    user_a: str
    user_b: str
    matched: bool


# --- Introductions ---


class IntroductionRequestSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: str
    recipient_id: str
    status: str
    guardian_id: str | None = None
    guardian_approved: bool | None = None
    guardian_notes: str | None = None
    message: str | None = None
    created_at: DateTimeStr
    updated_at: DateTimeStr
    decided_at: OptDateTimeStr = None


class DecisionRequest(BaseModel):
    approved: bool
    notes: str | None = None
    guardian_id: str | None = None


class DecisionResponse(BaseModel):
    request_id: int
    status: str
    match_id: int | None = None
    match_created: bool = False


# --- Notifications ---


class NotificationRequest(BaseModel):
    recipient_user_id: str = Field(min_length=1)
    notification_type: str
    source_actor_name: str = "someone"
    payload: dict = {}


class NotificationCreated(BaseModel):
    id: int


class BatchSummarySchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notification_type: str = Field(alias="notificationType")
    groups_processed: int = Field(alias="groupsProcessed")
    events_flushed: int = Field(alias="eventsFlushed")
    groups_skipped: int = Field(alias="groupsSkipped")
    groups_failed: int = Field(alias="groupsFailed")
    events_settled: int = Field(default=0, alias="eventsSettled")
