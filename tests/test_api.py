"""Tests for the FastAPI endpoints."""

import datetime as dt

import pytest
from sqlalchemy import update

from match_pipeline.api import deps
from match_pipeline.api.app import app, lifespan
from match_pipeline.models.pending_notification import PendingNotification


async def _signal(client, from_user, to_user, kind="like", **extra):
    return await client.post(
        "/api/signals", json={"from_user_id": from_user, "to_user_id": to_user, "kind": kind, **extra}
    )


async def _age_all_events(factory):
    """Backdate queued events so they are past the dwell time."""
    async with factory() as session, session.begin():
        await session.execute(
            update(PendingNotification).values(
                created_at=dt.datetime(2020, 1, 1, 12, 0, 0)
            )
        )


async def test_health_endpoint(api_client):
    resp = await api_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


# ---- Signals ----


async def test_post_pass_signal(api_client, profiles):
    resp = await _signal(api_client, "alice", "bilal", "pass")
    assert resp.status_code == 200
    data = resp.json()
    assert data["kind"] == "pass"
    assert data["outcome"] == "none"
    assert data["mutual"] is False
    assert data["match_id"] is None


async def test_mutual_like_returns_match(api_client, profiles):
    await _signal(api_client, "bilal", "alice")
    resp = await _signal(api_client, "alice", "bilal", "super_interest")

    data = resp.json()
    assert data["outcome"] == "matched"
    assert data["mutual"] is True
    assert data["match_id"] is not None
    assert data["duplicate_suppressed"] is False
    assert data["quota"] == {"tier": "basic", "used": 1, "limit": 3, "remaining": 2}

    check = await api_client.get("/api/matches/check", params={"user_a": "bilal", "user_b": "alice"})
    assert check.json()["matched"] is True

    matches = await api_client.get("/api/users/alice/matches")
    assert [m["id"] for m in matches.json()] == [data["match_id"]]
    assert matches.json()[0]["user_a"] == "alice"
    assert matches.json()[0]["other_user_id"] == "bilal"

    from_bilal = await api_client.get("/api/users/bilal/matches")
    assert from_bilal.json()[0]["other_user_id"] == "alice"


async def test_quota_exceeded_is_429(api_client, profiles):
    for target in ("t1", "t2", "t3"):
        assert (await _signal(api_client, "alice", target)).status_code == 200

    resp = await _signal(api_client, "alice", "bilal")

    assert resp.status_code == 429
    data = resp.json()
    assert data["error"] == "QuotaExceeded"
    assert data["tier"] == "basic"
    assert data["limit"] == 3
    assert data["used"] == 3

    quota = await api_client.get("/api/users/alice/quota")
    assert quota.json() == {"tier": "basic", "used": 3, "limit": 3, "remaining": 0}


async def test_premium_quota_is_unlimited(api_client, profiles):
    resp = await api_client.get("/api/users/zaid/quota")
    assert resp.json() == {"tier": "premium", "used": 0, "limit": None, "remaining": None}


@pytest.mark.parametrize(
    "payload",
    [
        {"from_user_id": "alice", "to_user_id": "bilal", "kind": "wink"},
        {"from_user_id": "alice", "to_user_id": "alice", "kind": "like"},
    ],
)
async def test_invalid_signal_is_422(api_client, profiles, payload):
    resp = await api_client.post("/api/signals", json=payload)
    assert resp.status_code == 422
    assert resp.json()["error"] == "InvalidSignal"


async def test_missing_fields_is_422(api_client):
    resp = await api_client.post("/api/signals", json={"from_user_id": "alice"})
    assert resp.status_code == 422


# ---- Introductions ----


async def test_guardian_flow_over_http(api_client, profiles):
    await _signal(api_client, "fatima", "alice")
    resp = await _signal(api_client, "alice", "fatima", message="Salaam")

    data = resp.json()
    assert data["outcome"] == "pending_approval"
    assert data["introduction_status"] == "pending"
    assert data["match_id"] is None
    request_id = data["introduction_request_id"]

    listing = await api_client.get("/api/introductions", params={"guardian_id": "omar", "status": "pending"})
    body = listing.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == request_id
    assert body["items"][0]["requester_id"] == "alice"
    assert body["items"][0]["recipient_id"] == "fatima"
    assert body["items"][0]["message"] == "Salaam"

    decision = await api_client.post(
        f"/api/introductions/{request_id}/decision",
        json={"approved": True, "guardian_id": "omar", "notes": "Approved after family call"},
    )
    assert decision.status_code == 200
    assert decision.json()["status"] == "approved"
    assert decision.json()["match_created"] is True

    again = await api_client.post(f"/api/introductions/{request_id}/decision", json={"approved": False})
    assert again.status_code == 409
    assert again.json()["error"] == "InvalidTransition"

    check = await api_client.get("/api/matches/check", params={"user_a": "alice", "user_b": "fatima"})
    assert check.json()["matched"] is True


async def test_list_introductions_filters(api_client, profiles):
    await _signal(api_client, "fatima", "alice")
    await _signal(api_client, "alice", "fatima")
    await _signal(api_client, "maryam", "bilal")
    await _signal(api_client, "bilal", "maryam")

    by_user = await api_client.get("/api/introductions", params={"user_id": "bilal"})
    assert by_user.json()["total"] == 1
    assert by_user.json()["items"][0]["guardian_id"] == "yusuf"

    everything = await api_client.get("/api/introductions", params={"size": 1})
    assert everything.json()["total"] == 2
    assert everything.json()["pages"] == 2
    assert len(everything.json()["items"]) == 1

    rejected = await api_client.get("/api/introductions", params={"status": "rejected"})
    assert rejected.json()["total"] == 0

    bad_status = await api_client.get("/api/introductions", params={"status": "cancelled"})
    assert bad_status.status_code == 422


async def test_decision_unknown_request_is_404(api_client):
    resp = await api_client.post("/api/introductions/999/decision", json={"approved": True})
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


async def test_decision_by_other_guardian_is_403(api_client, profiles):
    await _signal(api_client, "fatima", "alice")
    request_id = (await _signal(api_client, "alice", "fatima")).json()["introduction_request_id"]

    resp = await api_client.post(
        f"/api/introductions/{request_id}/decision", json={"approved": True, "guardian_id": "yusuf"}
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "GuardianMismatch"


# ---- Notifications ----


async def test_enqueue_and_flush(api_client, profiles, test_session_factory, channel):
    for text in ("Salaam", "How are you?"):
        resp = await api_client.post(
            "/api/notifications",
            json={
                "recipient_user_id": "alice",
                "notification_type": "new_message",
                "source_actor_name": "Bilal",
                "payload": {"message": text},
            },
        )
        assert resp.status_code == 201
        assert "id" in resp.json()

    await _age_all_events(test_session_factory)
    resp = await api_client.post("/api/notifications/flush")

    assert resp.status_code == 200
    assert resp.json() == {
        "notificationType": "new_message",
        "groupsProcessed": 1,
        "eventsFlushed": 2,
        "groupsSkipped": 0,
        "groupsFailed": 0,
        "eventsSettled": 0,
    }
    assert channel.sent[0]["subject"] == "You have 2 unread messages from Bilal"

    again = await api_client.post("/api/notifications/flush")
    assert again.json()["eventsFlushed"] == 0


async def test_flush_match_events(api_client, profiles, test_session_factory, channel):
    await _signal(api_client, "bilal", "alice")
    await _signal(api_client, "alice", "bilal")
    await _age_all_events(test_session_factory)

    resp = await api_client.post("/api/notifications/flush", params={"notification_type": "match"})

    assert resp.json()["eventsFlushed"] == 2
    assert sorted(m["to"] for m in channel.sent) == ["alice@example.com", "bilal@example.com"]


async def test_enqueue_unknown_type_is_422(api_client):
    resp = await api_client.post(
        "/api/notifications",
        json={"recipient_user_id": "alice", "notification_type": "newsletter"},
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "UnknownNotificationType"


async def test_flush_unknown_type_is_422(api_client):
    resp = await api_client.post("/api/notifications/flush", params={"notification_type": "newsletter"})
    assert resp.status_code == 422


async def test_shutdown_closes_cached_channel(make_channel, monkeypatch):
    recorder = make_channel()
    deps.get_channel.cache_clear()
    monkeypatch.setattr(deps, "build_channel", lambda settings: recorder)
    assert deps.get_channel() is recorder

    async with lifespan(app):
        pass

    assert recorder.closed is True
    assert deps.get_channel.cache_info().currsize == 0
