from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import func, select

from fellowship.models import RSVP, MemberRole, RSVPStatus
from tests.conftest import auth_headers

STAFF = "pastor@example.com"


def _event_payload(**overrides):
    starts_at = datetime.now(timezone.utc) + timedelta(days=3)
    payload = {
        "title": "Youth Group Night",
        "location": "Room 12",
        "starts_at": starts_at.isoformat(),
        "ends_at": (starts_at + timedelta(hours=2)).isoformat(),
    }
    payload.update(overrides)
    return payload


def _create_event(client: TestClient, **overrides) -> str:
    resp = client.post("/v1/events", json=_event_payload(**overrides), headers=auth_headers(STAFF))
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def _rsvp(client: TestClient, event_id: str, email: str, **kwargs):
    return client.post(f"/v1/events/{event_id}/rsvp", headers=auth_headers(email), **kwargs)


def test_health_and_root(client: TestClient):
    assert client.get("/health").json() == {"status": "ok"}
    resp = client.get("/")
    assert resp.status_code == 200
    assert "x-request-id" in resp.headers


def test_requests_without_token_are_unauthorized(client: TestClient, make_event):
    event = make_event()
    resp = client.post(f"/v1/events/{event.id}/rsvp")
    assert resp.status_code == 401


def test_staff_can_create_and_update_event(client: TestClient, make_member):
    make_member(STAFF, MemberRole.STAFF)
    event_id = _create_event(client, max_capacity=40)

    resp = client.patch(
        f"/v1/events/{event_id}",
        json={"title": "Youth Group Game Night"},
        headers=auth_headers(STAFF),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Youth Group Game Night"
    assert body["max_capacity"] == 40
    assert body["cancelled_at"] is None


def test_members_cannot_manage_events(client: TestClient, make_event):
    resp = client.post(
        "/v1/events", json=_event_payload(), headers=auth_headers("member@example.com")
    )
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "FORBIDDEN"

    event = make_event()
    for method, path in (
        ("patch", f"/v1/events/{event.id}"),
        ("post", f"/v1/events/{event.id}/cancel"),
        ("get", f"/v1/events/{event.id}/rsvps"),
    ):
        kwargs = {"json": {"title": "Nope"}} if method == "patch" else {}
        resp = getattr(client, method)(path, headers=auth_headers("member@example.com"), **kwargs)
        assert resp.status_code == 403, path


def test_create_event_validation(client: TestClient, make_member):
    make_member(STAFF, MemberRole.STAFF)
    starts_at = datetime.now(timezone.utc) + timedelta(days=1)

    backwards = _event_payload(
        starts_at=starts_at.isoformat(), ends_at=(starts_at - timedelta(hours=1)).isoformat()
    )
    assert client.post("/v1/events", json=backwards, headers=auth_headers(STAFF)).status_code == 422

    naive = _event_payload(starts_at="2030-01-01T10:00:00", ends_at="2030-01-01T12:00:00")
    assert client.post("/v1/events", json=naive, headers=auth_headers(STAFF)).status_code == 422

    zero = _event_payload(max_capacity=0)
    assert client.post("/v1/events", json=zero, headers=auth_headers(STAFF)).status_code == 422

    past = datetime.now(timezone.utc) - timedelta(days=1)
    resp = client.post(
        "/v1/events",
        json=_event_payload(
            starts_at=past.isoformat(), ends_at=(past + timedelta(hours=1)).isoformat()
        ),
        headers=auth_headers(STAFF),
    )
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "INVALID_EVENT"


def test_rsvp_flow_status_codes(client: TestClient, make_event, dispatcher):
    event = make_event(max_capacity=1)

    first = _rsvp(client, event.id, "anna@example.com", json={"notes": "bringing a salad"})
    assert first.status_code == 201
    body = first.json()
    assert body["rsvp"]["status"] == "CONFIRMED"
    assert body["rsvp"]["notes"] == "bringing a salad"
    assert body["is_waitlisted"] is False
    assert body["available_spots"] == 0

    second = _rsvp(client, event.id, "ben@example.com")
    assert second.status_code == 201
    assert second.json()["rsvp"]["status"] == "WAITLISTED"
    assert second.json()["is_waitlisted"] is True

    duplicate = _rsvp(client, event.id, "ben@example.com")
    assert duplicate.status_code == 409
    detail = duplicate.json()["detail"]
    assert detail["code"] == "RSVP_ALREADY_EXISTS"
    assert detail["status"] == "WAITLISTED"

    cancelled = client.delete(f"/v1/events/{event.id}/rsvp", headers=auth_headers("anna@example.com"))
    assert cancelled.status_code == 200
    body = cancelled.json()
    assert body["rsvp"]["status"] == "CANCELLED"
    assert body["waitlist_promoted"] is True
    assert body["promoted_rsvp_id"] == second.json()["rsvp"]["id"]

    again = client.delete(f"/v1/events/{event.id}/rsvp", headers=auth_headers("anna@example.com"))
    assert again.status_code == 422
    assert again.json()["detail"]["code"] == "RSVP_NOT_FOUND"

    assert dispatcher.kinds() == [
        "rsvp.confirmed",
        "rsvp.waitlisted",
        "rsvp.cancelled",
        "rsvp.promoted",
    ]


def test_rsvp_unknown_event_is_404(client: TestClient):
    resp = _rsvp(client, uuid.uuid4(), "who@example.com")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "EVENT_NOT_FOUND"


def test_rsvp_to_cancelled_event_is_410(client: TestClient, make_event):
    event = make_event(cancelled_at=datetime.now(timezone.utc))
    resp = _rsvp(client, event.id, "late@example.com")
    assert resp.status_code == 410
    assert resp.json()["detail"]["code"] == "EVENT_CANCELLED"


def test_event_detail_includes_rsvp_summary(client: TestClient, make_event):
    event = make_event(max_capacity=2)
    for email in ("a@example.com", "b@example.com", "c@example.com"):
        _rsvp(client, event.id, email)

    resp = client.get(f"/v1/events/{event.id}")
    assert resp.status_code == 200
    summary = resp.json()["rsvp_summary"]
    assert summary == {
        "confirmed_count": 2,
        "waitlisted_count": 1,
        "max_capacity": 2,
        "available_spots": 0,
    }

    assert client.get(f"/v1/events/{uuid.uuid4()}").status_code == 404


def test_list_events_hides_cancelled_by_default(client: TestClient, make_event):
    active = make_event(title="Prayer Breakfast", max_capacity=10)
    gone = make_event(title="Retreat", cancelled_at=datetime.now(timezone.utc))
    _rsvp(client, active.id, "early@example.com")

    resp = client.get("/v1/events")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert [item["id"] for item in data["items"]] == [str(active.id)]
    assert data["items"][0]["confirmed_count"] == 1

    resp = client.get("/v1/events", params={"include_cancelled": True})
    assert {item["id"] for item in resp.json()["items"]} == {str(active.id), str(gone.id)}


def test_capacity_cannot_drop_below_confirmed(client: TestClient, make_member, make_event):
    staff = make_member(STAFF, MemberRole.STAFF)
    event = make_event(created_by=staff, max_capacity=3)
    _rsvp(client, event.id, "x@example.com")
    _rsvp(client, event.id, "y@example.com")

    resp = client.patch(
        f"/v1/events/{event.id}", json={"max_capacity": 1}, headers=auth_headers(STAFF)
    )
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["code"] == "CAPACITY_BELOW_CONFIRMED"
    assert detail["confirmed_count"] == 2


def test_raising_capacity_promotes_waitlist_in_order(
    client: TestClient, make_member, make_event, dispatcher, db_session
):
    make_member(STAFF, MemberRole.STAFF)
    event = make_event(max_capacity=1)
    for email in ("one@example.com", "two@example.com", "three@example.com"):
        _rsvp(client, event.id, email)

    resp = client.patch(
        f"/v1/events/{event.id}", json={"max_capacity": 2}, headers=auth_headers(STAFF)
    )
    assert resp.status_code == 200
    assert dispatcher.kinds()[-1] == "rsvp.promoted"

    roster = client.get(f"/v1/events/{event.id}/rsvps", headers=auth_headers(STAFF)).json()
    statuses = {r["member"]["email"]: r["status"] for r in roster["rsvps"]}
    assert statuses == {
        "one@example.com": "CONFIRMED",
        "two@example.com": "CONFIRMED",
        "three@example.com": "WAITLISTED",
    }
    assert roster["confirmed_count"] == 2
    assert roster["available_spots"] == 0

    # Clearing the limit seats everyone still waiting
    resp = client.patch(
        f"/v1/events/{event.id}", json={"max_capacity": None}, headers=auth_headers(STAFF)
    )
    assert resp.status_code == 200
    confirmed = db_session.scalar(
        select(func.count())
        .select_from(RSVP)
        .where(RSVP.event_id == event.id, RSVP.status == RSVPStatus.CONFIRMED)
    )
    db_session.rollback()
    assert confirmed == 3


def test_roster_status_filter(client: TestClient, make_member, make_event):
    make_member(STAFF, MemberRole.STAFF)
    event = make_event(max_capacity=1)
    _rsvp(client, event.id, "seat@example.com")
    _rsvp(client, event.id, "queue@example.com")

    resp = client.get(
        f"/v1/events/{event.id}/rsvps",
        params={"status": "WAITLISTED"},
        headers=auth_headers(STAFF),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert [r["member"]["email"] for r in body["rsvps"]] == ["queue@example.com"]


def test_cancel_event_keeps_rsvps_and_notifies(
    client: TestClient, make_member, make_event, dispatcher
):
    make_member(STAFF, MemberRole.STAFF)
    event = make_event(max_capacity=1)
    _rsvp(client, event.id, "p@example.com")
    _rsvp(client, event.id, "q@example.com")

    resp = client.post(f"/v1/events/{event.id}/cancel", headers=auth_headers(STAFF))
    assert resp.status_code == 200
    assert resp.json()["notified_count"] == 2
    assert dispatcher.published[-1][0] == "event.cancelled"
    assert len(dispatcher.published[-1][1]["member_ids"]) == 2

    again = client.post(f"/v1/events/{event.id}/cancel", headers=auth_headers(STAFF))
    assert again.status_code == 410

    edit = client.patch(
        f"/v1/events/{event.id}", json={"title": "Back on"}, headers=auth_headers(STAFF)
    )
    assert edit.status_code == 410

    roster = client.get(f"/v1/events/{event.id}/rsvps", headers=auth_headers(STAFF)).json()
    assert roster["total"] == 2
    assert roster["confirmed_count"] == 1


def test_me_lists_my_rsvps(client: TestClient, make_event):
    event = make_event(title="Men's Breakfast")
    _rsvp(client, event.id, "me@example.com")

    me = client.get("/v1/me", headers=auth_headers("me@example.com"))
    assert me.status_code == 200
    assert me.json()["email"] == "me@example.com"
    assert me.json()["role"] == "MEMBER"

    resp = client.get("/v1/me/rsvps", headers=auth_headers("me@example.com"))
    assert resp.status_code == 200
    [rsvp] = resp.json()
    assert rsvp["event"]["title"] == "Men's Breakfast"
    assert rsvp["status"] == "CONFIRMED"
