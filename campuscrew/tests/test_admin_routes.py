from datetime import datetime, timedelta, timezone

from campuscrew.admin_service.routes import created_at, filter_and_sort
from conftest import ADMIN


def iso(days):
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def own_event(event_id, created_days_ago, date_days=10, **extra):
    return {
        "_id": event_id,
        "title": f"Event {event_id}",
        "date": iso(date_days),
        "category": "Tech",
        "createdBy": "a1",
        "createdAt": iso(-created_days_ago),
        **extra,
    }


def registrations(n):
    return {"success": True, "registration": [{"_id": f"r{i}", "is_registered": True} for i in range(n)]}


def setup_dashboard(backend):
    events = [
        own_event("e1", 3),
        own_event("e2", 1, category="Arts"),
        own_event("e3", 2, date_days=-4),
        {**own_event("x1", 1), "createdBy": "someone-else"},
    ]
    backend.on("GET", "/events", json={"success": True, "events": events})
    backend.on("GET", "/registrations/event/e1", json=registrations(5))
    backend.on("GET", "/registrations/event/e2", json=registrations(1))
    # e3 answers 404: nobody registered


def test_created_at_falls_back_to_object_id():
    assert created_at({"_id": "5f5b8f000000000000000000"}) == datetime(2020, 9, 11, 14, 51, 44, tzinfo=timezone.utc)
    assert created_at({"_id": "x", "date": "2030-01-01T00:00:00Z"}).year == 2030


def test_filter_and_sort():
    events = [
        {"_id": "a", "title": "Alpha", "attendeeCount": 3, "createdAt": iso(-1)},
        {"_id": "b", "title": "Beta", "attendeeCount": 9, "createdAt": iso(-5)},
    ]

    assert [e["_id"] for e in filter_and_sort(events)] == ["a", "b"]
    assert [e["_id"] for e in filter_and_sort(events, sort="attendees")] == ["b", "a"]
    assert [e["_id"] for e in filter_and_sort(events, descending=False)] == ["b", "a"]
    assert [e["_id"] for e in filter_and_sort(events, min_attendees=5)] == ["b"]
    assert [e["_id"] for e in filter_and_sort(events, query="alp")] == ["a"]


def test_dashboard_stats_and_default_order(client, backend, login):
    login(ADMIN)
    setup_dashboard(backend)

    data = client.get("/dashboard").get_json()

    assert data["stats"] == {"total": 3, "upcoming": 2, "attendees": 6}
    assert [e["_id"] for e in data["events"]] == ["e2", "e3", "e1"]
    assert data["categories"] == ["Arts", "Tech"]
    assert {e["_id"]: e["attendeeCount"] for e in data["events"]} == {"e1": 5, "e2": 1, "e3": 0}


def test_dashboard_sort_by_attendees_and_paging(client, backend, login):
    login(ADMIN)
    setup_dashboard(backend)

    data = client.get("/dashboard?sort=attendees&per_page=2&page=1").get_json()

    assert data["pages"] == 2
    assert data["page"] == 1
    assert [e["_id"] for e in data["events"]] == ["e3"]


def test_dashboard_filters(client, backend, login):
    login(ADMIN)
    setup_dashboard(backend)

    data = client.get("/dashboard?category=Tech&min_attendees=1").get_json()

    assert [e["_id"] for e in data["events"]] == ["e1"]


def test_manage_events_redirects(client, backend, login):
    login(ADMIN)

    response = client.get("/manage-events")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/dashboard")


def test_attendees(client, backend, login):
    login(ADMIN)
    backend.on("GET", "/events/e1", json={"success": True, "event": own_event("e1", 1)})
    backend.on("GET", "/registrations/event/e1", json={"success": True, "registration": [
        {"_id": "r1", "userId": {"_id": "u1", "username": "student", "email": "s@example.com"},
         "is_registered": True, "payment_status": "paid"},
    ]})

    rows = client.get("/events/e1/attendees").get_json()["attendees"]

    assert rows == [{
        "registrationId": "r1", "userId": "u1", "username": "student", "email": "s@example.com",
        "is_registered": True, "payment_status": "paid",
    }]


def test_remove_attendee(client, backend, login):
    login(ADMIN)
    backend.on("GET", "/events/e1", json={"success": True, "event": own_event("e1", 1)})
    backend.on("PUT", "/unregister", json={"success": True})

    response = client.post("/events/e1/attendees/u1/remove")

    assert response.status_code == 302
    assert backend.requests_to("PUT", "/unregister")[0]["json"] == {"userId": "u1", "eventId": "e1"}


def test_attendees_of_foreign_event_forbidden(client, backend, login):
    login(ADMIN)
    backend.on("GET", "/events/e1", json={"success": True, "event": {**own_event("e1", 1), "createdBy": "other"}})

    response = client.get("/events/e1/attendees")

    assert response.headers["Location"].endswith("/forbidden")
