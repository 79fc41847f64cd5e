# tests/test_api.py
import pytest

from ticketbox.app import create_app
from ticketbox.config import TestingConfig
from ticketbox.constants import ROLE_ADMIN, ROLE_ATTENDEE
from ticketbox.stores.interfaces import USERS

from conftest import PASSWORD, add_user


def register(client, email, role="attendee"):
    resp = client.post("/api/register", json={"email": email, "password": PASSWORD, "role": role})
    assert resp.status_code == 201
    return resp.get_json()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def login_token(app, email):
    # Fresh client: a session cookie would take precedence over bearer headers.
    resp = app.test_client().post("/api/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200
    return resp.get_json()["token"]


# Tokens come from separate clients so no session cookie leaks into `client`.
@pytest.fixture
def organizer_token(app):
    return register(app.test_client(), "host@example.com", "organizer")["token"]


@pytest.fixture
def attendee_token(app):
    return register(app.test_client(), "guest@example.com")["token"]


@pytest.fixture
def published_event(client, organizer_token):
    resp = client.post(
        "/api/events",
        json={
            "title": "Jazz Night",
            "location": "Blue Room",
            "category": "music",
            "date": "2026-11-20T20:00:00+00:00",
            "price": 25,
            "total_tickets": 5,
        },
        headers=bearer(organizer_token),
    )
    assert resp.status_code == 201
    event_id = resp.get_json()["event"]["id"]
    assert client.post(f"/api/events/{event_id}/publish", headers=bearer(organizer_token)).status_code == 200
    return event_id


def test_health_and_security_headers(client):
    resp = client.get("/api/health", headers={"X-Request-Id": "req-1"})
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "status": "up"}
    assert resp.headers["X-Request-Id"] == "req-1"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_register_login_me_logout(client):
    body = register(client, "Carol@Example.com")
    assert body["user"]["email"] == "carol@example.com"
    assert body["token_type"] == "bearer"
    assert client.get("/api/me").get_json()["user"]["email"] == "carol@example.com"

    assert client.post("/api/logout").status_code == 200
    assert client.get("/api/me").get_json()["user"] is None

    resp = client.post("/api/login", json={"email": "carol@example.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "unauthorized"
    resp = client.post("/api/login", json={"email": "carol@example.com", "password": PASSWORD})
    assert resp.status_code == 200
    assert resp.get_json()["token"]


def test_duplicate_registration_conflicts(client):
    register(client, "dup@example.com")
    resp = client.post("/api/register", json={"email": "dup@example.com", "password": PASSWORD})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "conflict"


def test_requests_must_be_json(client):
    resp = client.post("/api/register", data="email=x", content_type="application/x-www-form-urlencoded")
    assert resp.status_code == 415
    assert resp.get_json() == {"ok": False, "error": "Request must be JSON.", "code": "unsupported_media_type"}


def test_protected_routes_need_authentication(client):
    resp = client.post("/api/tickets/book", json={"event_id": "x"})
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "unauthorized"
    assert client.get("/api/tickets", headers=bearer("not-a-token")).status_code == 401


def test_unknown_route_and_method(client):
    assert client.get("/api/nowhere").get_json()["code"] == "not_found"
    resp = client.delete("/api/health")
    assert resp.status_code == 405
    assert resp.get_json()["code"] == "method_not_allowed"


def test_booking_flow_over_http(client, published_event, attendee_token, organizer_token):
    resp = client.post(
        "/api/tickets/book", json={"event_id": published_event, "quantity": 3}, headers=bearer(attendee_token)
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["message"] == "3 ticket(s) booked successfully"
    assert len(body["ticket_ids"]) == 3
    assert body["order"]["total_amount"] == 75
    assert body["order"]["payment_status"] == "completed"

    event = client.get(f"/api/events/{published_event}").get_json()["event"]
    assert event["available_tickets"] == 2

    resp = client.post(
        "/api/tickets/book", json={"event_id": published_event, "quantity": 3}, headers=bearer(attendee_token)
    )
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "insufficient_inventory"
    assert resp.get_json()["details"] == {"requested": 3, "available": 2}

    ticket_id = body["ticket_ids"][0]
    resp = client.post(f"/api/tickets/{ticket_id}/check-in", headers=bearer(attendee_token))
    assert resp.status_code == 403
    resp = client.post(f"/api/tickets/{ticket_id}/check-in", headers=bearer(organizer_token))
    assert resp.get_json()["ticket"]["status"] == "used"

    resp = client.post(f"/api/tickets/{ticket_id}/cancel", headers=bearer(attendee_token))
    assert resp.get_json()["ticket"]["status"] == "cancelled"
    resp = client.post(f"/api/tickets/{ticket_id}/cancel", headers=bearer(attendee_token))
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "already_terminal"

    code = client.get(f"/api/tickets/{ticket_id}", headers=bearer(attendee_token)).get_json()["ticket"]["code"]
    scanned = client.get(f"/api/tickets/code/{code}", headers=bearer(organizer_token)).get_json()["ticket"]
    assert scanned["id"] == ticket_id
    assert scanned["event"]["title"] == "Jazz Night"


def test_quantity_errors_over_http(client, published_event, attendee_token):
    for quantity, code in ((0, "quantity_out_of_range"), (11, "quantity_out_of_range"), ("many", "validation_error")):
        resp = client.post(
            "/api/tickets/book",
            json={"event_id": published_event, "quantity": quantity},
            headers=bearer(attendee_token),
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == code


def test_orders_and_user_records(client, published_event, attendee_token, organizer_token):
    booking = client.post(
        "/api/tickets/book", json={"event_id": published_event, "quantity": 2}, headers=bearer(attendee_token)
    ).get_json()
    me = client.get("/api/me", headers=bearer(attendee_token)).get_json()["user"]

    order = client.get(f"/api/orders/{booking['order_id']}", headers=bearer(attendee_token)).get_json()["order"]
    assert order["tickets"] == booking["ticket_ids"]
    assert client.get(f"/api/orders/{booking['order_id']}", headers=bearer(organizer_token)).status_code == 403

    orders = client.get(f"/api/users/{me['id']}/orders", headers=bearer(attendee_token)).get_json()["orders"]
    assert [o["id"] for o in orders] == [booking["order_id"]]
    tickets = client.get(f"/api/users/{me['id']}/tickets", headers=bearer(attendee_token)).get_json()["tickets"]
    assert len(tickets) == 2

    roster = client.get(f"/api/events/{published_event}/tickets", headers=bearer(organizer_token)).get_json()
    assert len(roster["tickets"]) == 2


def test_batch_issue_and_ticket_admin(client, published_event, organizer_token, attendee_token):
    resp = client.post(
        "/api/tickets", json={"event_id": published_event, "quantity": 2}, headers=bearer(attendee_token)
    )
    assert resp.status_code == 403

    resp = client.post(
        "/api/tickets",
        json={"event_id": published_event, "quantity": 2, "ticket_type": "vip"},
        headers=bearer(organizer_token),
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["order_id"] is None
    assert {t["status"] for t in body["tickets"]} == {"reserved"}

    listed = client.get("/api/tickets?status=reserved", headers=bearer(organizer_token)).get_json()["tickets"]
    assert len(listed) == 2

    ticket_id = body["ticket_ids"][0]
    resp = client.put(f"/api/tickets/{ticket_id}", json={"seat_number": "B7"}, headers=bearer(organizer_token))
    assert resp.get_json()["ticket"]["seat_number"] == "B7"
    resp = client.put(f"/api/tickets/{ticket_id}", json={"price": 0}, headers=bearer(organizer_token))
    assert resp.status_code == 400

    assert client.delete(f"/api/tickets/{ticket_id}", headers=bearer(organizer_token)).status_code == 200
    event = client.get(f"/api/events/{published_event}").get_json()["event"]
    assert event["available_tickets"] == 4


def test_event_management_over_http(client, published_event, organizer_token, attendee_token):
    resp = client.put(f"/api/events/{published_event}", json={"title": "Hijack"}, headers=bearer(attendee_token))
    assert resp.status_code == 403

    resp = client.put(
        f"/api/events/{published_event}", json={"total_tickets": 8}, headers=bearer(organizer_token)
    )
    assert resp.get_json()["event"]["available_tickets"] == 8

    listed = client.get("/api/events?category=music").get_json()
    assert listed["pagination"]["total"] == 1
    mine = client.get("/api/my/events", headers=bearer(organizer_token)).get_json()
    assert [e["id"] for e in mine["events"]] == [published_event]
    assert client.get("/api/my/events", headers=bearer(attendee_token)).status_code == 403

    assert client.delete(f"/api/events/{published_event}", headers=bearer(organizer_token)).status_code == 200
    assert client.get(f"/api/events/{published_event}").status_code == 404


def test_invalid_ids_are_validation_errors(client):
    resp = client.get("/api/events/not-an-id")
    assert resp.status_code == 400
    assert resp.get_json()["details"] == {"field": "event_id"}


def test_vendors_over_http(client, organizer_token, attendee_token):
    resp = client.post(
        "/api/vendors",
        json={"name": "Stage Crew", "contact_email": "crew@example.com"},
        headers=bearer(organizer_token),
    )
    assert resp.status_code == 201
    vendor_id = resp.get_json()["vendor"]["id"]
    assert client.get(f"/api/vendors/{vendor_id}", headers=bearer(attendee_token)).status_code == 403
    assert client.get("/api/vendors?name=stage").get_json()["pagination"]["total"] == 1
    resp = client.put(
        f"/api/vendors/{vendor_id}", json={"website": "https://crew.example"}, headers=bearer(organizer_token)
    )
    assert resp.get_json()["vendor"]["website"] == "https://crew.example"
    assert client.delete(f"/api/vendors/{vendor_id}", headers=bearer(organizer_token)).status_code == 200


def test_admin_role_management(app, client, store, attendee_token):
    add_user(store, "boss@example.com", [ROLE_ATTENDEE, ROLE_ADMIN])
    admin_token = login_token(app, "boss@example.com")
    guest = store.find_one(USERS, {"email": "guest@example.com"})

    resp = client.put(f"/api/users/{guest['_id']}/roles", json={"roles": ["admin"]}, headers=bearer(attendee_token))
    assert resp.status_code == 403
    resp = client.put(
        f"/api/users/{guest['_id']}/roles", json={"roles": ["attendee", "organizer"]}, headers=bearer(admin_token)
    )
    assert resp.get_json()["user"]["roles"] == ["attendee", "organizer"]
    users = client.get("/api/users", headers=bearer(admin_token)).get_json()
    assert users["pagination"]["total"] == 2


def test_manual_payment_notification_needs_admin(app, client, store, published_event, attendee_token):
    booking = client.post(
        "/api/tickets/book", json={"event_id": published_event, "quantity": 1}, headers=bearer(attendee_token)
    ).get_json()
    payload = {"order_id": booking["order_id"], "transaction_status": "settlement", "transaction_id": "t-9"}
    assert client.post("/api/payments/notification", json=payload, headers=bearer(attendee_token)).status_code == 403

    add_user(store, "boss@example.com", [ROLE_ATTENDEE, ROLE_ADMIN])
    admin_token = login_token(app, "boss@example.com")
    resp = client.post("/api/payments/notification", json=payload, headers=bearer(admin_token))
    assert resp.get_json()["order"]["transaction_id"] == "t-9"


def test_unhandled_errors_return_envelope(store, monkeypatch):
    app = create_app(TestingConfig, store=store)
    monkeypatch.setattr(store, "ping", lambda: 1 / 0)
    resp = app.test_client().get("/api/health", headers={"X-Request-Id": "boom-1"})
    assert resp.status_code == 500
    assert resp.get_json() == {
        "ok": False,
        "error": "Internal server error.",
        "code": "internal_error",
        "request_id": "boom-1",
    }
