"""Tests for digest grouping, preference filtering and rendering."""

import datetime as dt

from match_pipeline.config.pipeline import BatcherConfig
from match_pipeline.notifications.digest import (
    EventGroup,
    EventSnapshot,
    delivery_skip_reason,
    group_events,
    plan_digests,
    render_digest,
)
from match_pipeline.profiles.directory import NotificationPreferences

BASE = dt.datetime(2026, 3, 10, 12, 0, 0)


def _make_event(
    event_id: int,
    recipient: str = "alice",
    source: str = "Bilal",
    message: str | None = "Salaam",
    minutes: int = 0,
    payload: dict | None = None,
) -> EventSnapshot:
    if payload is None:
        payload = {"message": message} if message is not None else {}
    return EventSnapshot(
        id=event_id,
        recipient_user_id=recipient,
        notification_type="new_message",
        source_actor_name=source,
        payload=payload,
        created_at=BASE + dt.timedelta(minutes=minutes),
    )


def _make_prefs(
    user_id: str = "alice",
    contact: str | None = "alice@example.com",
    enabled: bool = True,
    frequency: str = "instant",
    opted_in: frozenset[str] = frozenset({"new_message", "match", "intro_request", "wali_approval"}),
) -> NotificationPreferences:
    return NotificationPreferences(
        user_id=user_id, contact=contact, enabled=enabled, frequency=frequency, opted_in=opted_in
    )


def _group(*events: EventSnapshot) -> EventGroup:
    return group_events(events)[0]


class TestGroupEvents:
    def test_groups_by_recipient_and_source(self):
        events = [
            _make_event(1, recipient="alice", source="Bilal"),
            _make_event(2, recipient="alice", source="Zaid"),
            _make_event(3, recipient="fatima", source="Bilal"),
            _make_event(4, recipient="alice", source="Bilal"),
        ]
        groups = group_events(events)

        assert [g.key for g in groups] == ["alice::Bilal", "alice::Zaid", "fatima::Bilal"]
        assert groups[0].event_ids == [1, 4]

    def test_events_sorted_oldest_first(self):
        groups = group_events([_make_event(2, minutes=5), _make_event(1, minutes=1)])
        assert groups[0].event_ids == [1, 2]

    def test_blank_source_becomes_someone(self):
        groups = group_events([_make_event(1, source="  ")])
        assert groups[0].source_actor_name == "someone"

    def test_empty_input(self):
        assert group_events([]) == []


class TestPreview:
    def test_preview_from_message_or_preview_key(self):
        assert _make_event(1, payload={"message": " hi "}).preview == "hi"
        assert _make_event(1, payload={"preview": "hello"}).preview == "hello"

    def test_missing_or_blank_preview(self):
        assert _make_event(1, payload={}).preview is None
        assert _make_event(1, payload={"message": "   "}).preview is None
        assert _make_event(1, payload={"message": 42}).preview is None


class TestDeliverySkipReason:
    def test_send_when_everything_allows(self):
        assert delivery_skip_reason(_make_prefs(), "new_message") is None

    def test_no_profile(self):
        assert delivery_skip_reason(None, "new_message") == "no_profile"

    def test_no_contact(self):
        assert delivery_skip_reason(_make_prefs(contact=None), "new_message") == "no_contact"

    def test_disabled(self):
        assert delivery_skip_reason(_make_prefs(enabled=False), "new_message") == "disabled"

    def test_opted_out_of_type(self):
        prefs = _make_prefs(opted_in=frozenset({"match"}))
        assert delivery_skip_reason(prefs, "new_message") == "opted_out"
        assert delivery_skip_reason(prefs, "match") is None

    def test_non_instant_frequency(self):
        assert delivery_skip_reason(_make_prefs(frequency="daily"), "new_message") == "not_instant"


class TestRenderDigest:
    def test_single_message_subject(self):
        digest = render_digest(_group(_make_event(1)), "new_message", BatcherConfig())
        assert digest.subject == "New message from Bilal"
        assert "Salaam" in digest.body
        assert "Assalamu Alaikum" in digest.body

    def test_multiple_messages_subject(self):
        group = _group(_make_event(1), _make_event(2, minutes=1), _make_event(3, minutes=2))
        digest = render_digest(group, "new_message", BatcherConfig())
        assert digest.subject == "You have 3 unread messages from Bilal"
        assert "<strong>3</strong> new messages" in digest.body

    def test_match_subject(self):
        digest = render_digest(_group(_make_event(1, message=None)), "match", BatcherConfig())
        assert digest.subject == "You have a new match with Bilal!"

    def test_shows_only_most_recent_previews(self):
        events = [_make_event(i, message=f"message number {i}", minutes=i) for i in range(1, 8)]
        digest = render_digest(_group(*events), "new_message", BatcherConfig(max_previews=5))

        assert "message number 1" not in digest.body
        assert "message number 2" not in digest.body
        for i in range(3, 8):
            assert f"message number {i}" in digest.body
        assert "+ 2 more" in digest.body

    def test_truncates_long_previews(self):
        long_text = "x" * 200
        digest = render_digest(_group(_make_event(1, message=long_text)), "new_message", BatcherConfig())
        assert "x" * 120 + "..." in digest.body
        assert "x" * 121 not in digest.body

    def test_escapes_html(self):
        event = _make_event(1, source="<b>Eve</b>", message="<script>alert(1)</script>")
        digest = render_digest(_group(event), "new_message", BatcherConfig())
        assert "<script>" not in digest.body
        assert "&lt;script&gt;" in digest.body
        assert "&lt;b&gt;Eve&lt;/b&gt;" in digest.body

    def test_link_prefers_event_payload(self):
        event = _make_event(1, payload={"message": "hi", "loginUrl": "https://app.example/messages/7"})
        digest = render_digest(_group(event), "new_message", BatcherConfig(), link_url="https://fallback")
        assert "https://app.example/messages/7" in digest.body
        assert "https://fallback" not in digest.body

    def test_link_falls_back_to_default(self):
        digest = render_digest(_group(_make_event(1)), "new_message", BatcherConfig(), link_url="https://app")
        assert 'href="https://app"' in digest.body

    def test_no_link_without_url(self):
        digest = render_digest(_group(_make_event(1)), "new_message", BatcherConfig())
        assert "href" not in digest.body


class TestPlanDigests:
    def test_splits_deliveries_and_skips(self):
        groups = group_events(
            [
                _make_event(1, recipient="alice"),
                _make_event(2, recipient="fatima"),
                _make_event(3, recipient="ghost"),
            ]
        )
        preferences = {
            "alice": _make_prefs(),
            "fatima": _make_prefs(user_id="fatima", enabled=False),
            "ghost": None,
        }

        plan = plan_digests(groups, preferences, "new_message", BatcherConfig())

        assert [p.group.recipient_user_id for p in plan.deliveries] == ["alice"]
        assert plan.deliveries[0].contact == "alice@example.com"
        assert {(s.group.recipient_user_id, s.reason) for s in plan.skipped} == {
            ("fatima", "disabled"),
            ("ghost", "no_profile"),
        }

    def test_planning_is_pure(self):
        groups = group_events([_make_event(1), _make_event(2, minutes=1)])
        preferences = {"alice": _make_prefs()}

        first = plan_digests(groups, preferences, "new_message", BatcherConfig())
        second = plan_digests(groups, preferences, "new_message", BatcherConfig())

        assert first.deliveries[0].digest == second.deliveries[0].digest
        assert groups[0].event_ids == [1, 2]
