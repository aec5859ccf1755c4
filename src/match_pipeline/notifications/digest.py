"""Digest planning for the notification batcher.

Groups a snapshot of unsent events, applies recipient preferences and
renders one message per (recipient, source) group.  All functions are
PURE -- no database access, no network.
"""

from __future__ import annotations

import html
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from match_pipeline.config.pipeline import BatcherConfig
from match_pipeline.profiles.directory import NotificationPreferences


@dataclass(frozen=True)
class EventSnapshot:
    """Detached copy of one unsent ``PendingNotification`` row."""

    id: int
    recipient_user_id: str
    notification_type: str
    source_actor_name: str
    payload: dict
    created_at: datetime

    @property
    def preview(self) -> str | None:
        text = self.payload.get("message") or self.payload.get("preview")
        if isinstance(text, str) and text.strip():
            return text.strip()
        return None


@dataclass
class EventGroup:
    """Events for one recipient from one source, oldest first."""

    recipient_user_id: str
    source_actor_name: str
    events: list[EventSnapshot] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.recipient_user_id}::{self.source_actor_name}"

    @property
    def event_ids(self) -> list[int]:
        return [e.id for e in self.events]


@dataclass(frozen=True)
class Digest:
    subject: str
    body: str


@dataclass(frozen=True)
class PlannedDigest:
    group: EventGroup
    contact: str
    digest: Digest


@dataclass(frozen=True)
class SkippedGroup:
    group: EventGroup
    reason: str


@dataclass
class BatchPlan:
    deliveries: list[PlannedDigest] = field(default_factory=list)
    skipped: list[SkippedGroup] = field(default_factory=list)


def group_events(events: Iterable[EventSnapshot]) -> list[EventGroup]:
    """Group events by ``(recipient, source_actor_name)``.

    Groups keep first-seen order and events within a group are sorted by
    ``created_at``, so the newest previews are at the end.
    """
    groups: dict[tuple[str, str], EventGroup] = {}
    for event in events:
        source = (event.source_actor_name or "").strip() or "someone"
        key = (event.recipient_user_id, source)
        if key not in groups:
            groups[key] = EventGroup(recipient_user_id=event.recipient_user_id, source_actor_name=source)
        groups[key].events.append(event)

    for group in groups.values():
        group.events.sort(key=lambda e: (e.created_at, e.id))
    return list(groups.values())


# Skip reasons that leave a group queued for a later job instead of settling it
DEFERRED_SKIP_REASONS = frozenset({"not_instant"})


def delivery_skip_reason(
    prefs: NotificationPreferences | None, notification_type: str
) -> str | None:
    """Return why a group must not be sent now, or ``None`` to send it.

    Non-instant frequencies are left for the scheduled digest job.
    """
    if prefs is None:
        return "no_profile"
    if not prefs.contact:
        return "no_contact"
    if not prefs.enabled:
        return "disabled"
    if not prefs.allows(notification_type):
        return "opted_out"
    if prefs.frequency != "instant":
        return "not_instant"
    return None


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _subject(notification_type: str, source: str, count: int) -> str:
    if notification_type == "new_message":
        if count == 1:
            return f"New message from {source}"
        return f"You have {count} unread messages from {source}"
    if notification_type == "match":
        return f"You have a new match with {source}!"
    if notification_type == "intro_request":
        if count == 1:
            return f"New introduction request from {source}"
        return f"{count} introduction requests from {source}"
    if notification_type == "wali_approval":
        return f"Wali approval received for {source}"
    return f"{count} new notifications from {source}"


def _noun(notification_type: str, count: int) -> str:
    nouns = {
        "new_message": ("message", "messages"),
        "match": ("match", "matches"),
        "intro_request": ("introduction request", "introduction requests"),
        "wali_approval": ("approval", "approvals"),
    }
    singular, plural = nouns.get(notification_type, ("notification", "notifications"))
    return singular if count == 1 else plural


def render_digest(
    group: EventGroup,
    notification_type: str,
    config: BatcherConfig,
    link_url: str = "",
) -> Digest:
    """Render one HTML message for a group.

    Shows at most ``config.max_previews`` of the most recent non-empty
    previews, each truncated to ``config.preview_max_chars``, followed by
    a "+ N more" line for the events not shown.
    """
    count = len(group.events)
    source = html.escape(group.source_actor_name)

    previews = [e.preview for e in group.events if e.preview]
    shown = previews[-config.max_previews:]
    more = max(0, count - len(shown))

    lines = [
        "<h2>Assalamu Alaikum,</h2>",
        f"<p>You have <strong>{count}</strong> new {_noun(notification_type, count)} "
        f"from <strong>{source}</strong>.</p>",
    ]
    if shown:
        lines.append('<div style="margin:12px 0;padding:12px;border:1px solid #e5e7eb;border-radius:8px;">')
        for text in shown:
            quoted = html.escape(_truncate(text, config.preview_max_chars))
            lines.append(f'<p style="margin:0 0 8px 0;color:#374151;"><em>&ldquo;{quoted}&rdquo;</em></p>')
        if more > 0:
            lines.append(f'<p style="margin:0;color:#6b7280;font-size:12px;">+ {more} more</p>')
        lines.append("</div>")

    link = group.events[-1].payload.get("loginUrl") or link_url
    if link:
        lines.append(
            f'<p><a href="{html.escape(link, quote=True)}" '
            'style="background:#10b981;color:white;padding:12px 24px;text-decoration:none;'
            'border-radius:6px;display:inline-block;margin-top:8px;">Open app</a></p>'
        )
    lines.append("<p>JazakAllah Khair,<br/>The Nikah Team</p>")

    return Digest(subject=_subject(notification_type, group.source_actor_name, count), body="\n".join(lines))


def plan_digests(
    groups: Iterable[EventGroup],
    preferences: Mapping[str, NotificationPreferences | None],
    notification_type: str,
    config: BatcherConfig,
    link_url: str = "",
) -> BatchPlan:
    """Decide, for each group, whether to send it and what to send."""
    plan = BatchPlan()
    for group in groups:
        prefs = preferences.get(group.recipient_user_id)
        reason = delivery_skip_reason(prefs, notification_type)
        if reason is not None:
            plan.skipped.append(SkippedGroup(group=group, reason=reason))
            continue
        plan.deliveries.append(
            PlannedDigest(
                group=group,
                contact=prefs.contact,
                digest=render_digest(group, notification_type, config, link_url=link_url),
            )
        )
    return plan
