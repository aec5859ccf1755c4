"""Profile/Tier collaborator boundary.

The pipeline consumes a handful of facts owned by profile management and
billing.  Every read goes through this module so the rest of the pipeline
never touches ``profiles`` columns directly.
"""

from __future__ import annotations

from dataclasses import dataclass

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from match_pipeline.models.profile import Profile

# Per-type opt-in column for each notification type
_TYPE_OPT_IN = {
    "new_message": "notify_messages",
    "match": "notify_matches",
    "intro_request": "notify_intro_requests",
    "wali_approval": "notify_intro_requests",
}


@dataclass(frozen=True)
class GuardianPolicy:
    """Whether a ward's matches need a guardian's approval, and who that is."""

    ward_user_id: str
    required: bool
    guardian_id: str | None = None
    contact: str | None = None


@dataclass(frozen=True)
class NotificationPreferences:
    """Delivery preferences re-read by the batcher on every run."""

    user_id: str
    contact: str | None
    enabled: bool
    frequency: str
    opted_in: frozenset[str]

    def allows(self, notification_type: str) -> bool:
        return notification_type in self.opted_in


async def _load(session: AsyncSession, user_id: str) -> Profile | None:
    result = await session.execute(sa.select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def get_subscription_tier(session: AsyncSession, user_id: str, default: str = "basic") -> str:
    """Return the user's current tier, or ``default`` for unknown users."""
    result = await session.execute(
        sa.select(Profile.subscription_tier).where(Profile.id == user_id)
    )
    tier = result.scalar_one_or_none()
    return tier or default


async def get_guardian_policy(session: AsyncSession, user_id: str) -> GuardianPolicy:
    """Return the guardian policy for ``user_id``.

    Users without a profile row have no guardian requirement.
    """
    profile = await _load(session, user_id)
    if profile is None:
        return GuardianPolicy(ward_user_id=user_id, required=False)
    return GuardianPolicy(
        ward_user_id=user_id,
        required=bool(profile.wali_required),
        guardian_id=profile.guardian_user_id,
        contact=profile.guardian_contact,
    )


async def get_display_name(session: AsyncSession, user_id: str) -> str:
    result = await session.execute(sa.select(Profile.display_name).where(Profile.id == user_id))
    name = result.scalar_one_or_none()
    return (name or "").strip() or "someone"


async def get_notification_preferences(
    session: AsyncSession, user_id: str
) -> NotificationPreferences | None:
    """Return current notification preferences, or ``None`` without a profile."""
    profile = await _load(session, user_id)
    if profile is None:
        return None
    opted_in = frozenset(
        notification_type
        for notification_type, column in _TYPE_OPT_IN.items()
        if getattr(profile, column)
    )
    return NotificationPreferences(
        user_id=user_id,
        contact=profile.email,
        enabled=bool(profile.email_notifications_enabled),
        frequency=profile.notification_frequency or "instant",
        opted_in=opted_in,
    )


def deferred_recipient_clause(recipient_column: sa.ColumnElement) -> sa.ColumnElement[bool]:
    """SQL predicate matching recipients whose profile asks for scheduled digests.

    The instant batcher excludes these rows when fetching so queued events for
    daily or weekly recipients never fill its fetch window.
    """
    return sa.exists().where(
        Profile.id == recipient_column,
        sa.func.coalesce(Profile.notification_frequency, "instant") != "instant",
    )
