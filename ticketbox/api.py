# ticketbox/api.py
"""JSON API. Routes only translate requests; the services decide everything."""
from __future__ import annotations

from typing import Any, Dict, Tuple

from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from ticketbox.auth import User, current_actor, token_issuer
from ticketbox.constants import PAYMENT_MODE_GATEWAY, ROLE_ADMIN, ROLE_ORGANIZER
from ticketbox.errors import AccessDenied, ApiError
from ticketbox.policy import has_role
from ticketbox.serializers import public_event, public_order, public_ticket, public_user, public_vendor
from ticketbox.services import BookingResult, Services
from ticketbox.stores.interfaces import EVENTS
from ticketbox.utils import clean_str, safe_int

api = Blueprint("api", __name__, url_prefix="/api")


def ok(payload: Dict[str, Any] | None = None, status: int = 200) -> Tuple[Response, int]:
    data = {"ok": True}
    if payload:
        data.update(payload)
    return jsonify(data), status


def fail(err: ApiError) -> Tuple[Response, int]:
    data = {"ok": False, "error": err.message, "code": err.code}
    if err.details:
        data["details"] = err.details
    return jsonify(data), err.status


def require_json() -> Dict[str, Any]:
    if not request.is_json:
        raise ApiError("Request must be JSON.", 415, "unsupported_media_type")
    data = request.get_json(silent=True)
    if data is None:
        raise ApiError("Invalid JSON payload.", 400, "invalid_json")
    if not isinstance(data, dict):
        raise ApiError("JSON body must be an object.", 400, "invalid_json")
    return data


def services() -> Services:
    return current_app.extensions["ticketbox"]


def page_args(default_limit: int = 10) -> Tuple[int, int]:
    page = safe_int(request.args.get("page", 1), "page", min_value=1)
    limit = safe_int(request.args.get("limit", default_limit), "limit", min_value=1)
    return page, limit


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit}


def booking_payload(result: BookingResult) -> Dict[str, Any]:
    return {
        "message": result.message,
        "ticket_ids": result.ticket_ids,
        "order_id": result.order_id,
        "tickets": [public_ticket(t) for t in result.tickets],
        "order": public_order(result.order) if result.order else None,
    }


def auth_payload(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "user": public_user(doc),
        "token": token_issuer().create_access_token(str(doc["_id"])),
        "token_type": "bearer",
    }


# -------------------------
# Health / Auth
# -------------------------
@api.get("/health")
def health():
    services().store.ping()
    return ok({"status": "up"})


@api.post("/register")
def register():
    doc = services().users.register(require_json())
    login_user(User(doc))
    return ok(auth_payload(doc), 201)


@api.post("/login")
def login():
    data = require_json()
    doc = services().users.authenticate(data.get("email", ""), data.get("password") or "")
    login_user(User(doc))
    return ok(auth_payload(doc))


@api.post("/logout")
@login_required
def logout():
    logout_user()
    return ok({})


@api.get("/me")
def me():
    if not current_user.is_authenticated:
        return ok({"user": None})
    # Reload to avoid stale roles in the session
    doc = services().users.find(current_user.id)
    return ok({"user": public_user(doc)})


# -------------------------
# Users
# -------------------------
@api.get("/users")
@login_required
def list_users():
    page, limit = page_args(50)
    users, total = services().users.list_users(current_actor(), page, limit)
    return ok({"users": [public_user(u) for u in users], "pagination": pagination(page, limit, total)})


@api.get("/users/<user_id>")
@login_required
def get_user(user_id: str):
    return ok({"user": public_user(services().users.get_profile(current_actor(), user_id))})


@api.put("/users/<user_id>")
@login_required
def update_user(user_id: str):
    doc = services().users.update_profile(current_actor(), user_id, require_json())
    return ok({"user": public_user(doc)})


@api.put("/users/<user_id>/roles")
@login_required
def update_user_roles(user_id: str):
    data = require_json()
    doc = services().users.update_roles(current_actor(), user_id, data.get("roles"))
    return ok({"user": public_user(doc)})


@api.get("/users/<user_id>/tickets")
@login_required
def user_tickets(user_id: str):
    tickets = services().tickets.list_user_tickets(user_id, current_actor())
    return ok({"tickets": [public_ticket(t) for t in tickets]})


@api.get("/users/<user_id>/orders")
@login_required
def user_orders(user_id: str):
    orders = services().orders.list_user_orders(user_id, current_actor())
    return ok({"orders": [public_order(o) for o in orders]})


@api.get("/users/<user_id>/vendors")
@login_required
def user_vendors(user_id: str):
    vendors = services().vendors.list_user_vendors(current_actor(), user_id)
    return ok({"vendors": [public_vendor(v) for v in vendors]})


# -------------------------
# Events
# -------------------------
@api.get("/events")
def list_events():
    page, limit = page_args()
    filters = {k: request.args.get(k, "") for k in ("category", "location", "date")}
    events, total = services().events.list_events(filters, page, limit)
    return ok({"events": [public_event(e) for e in events], "pagination": pagination(page, limit, total)})


@api.get("/my/events")
@login_required
def my_events():
    actor = current_actor()
    if not has_role(actor.roles, ROLE_ORGANIZER, ROLE_ADMIN):
        raise AccessDenied("Access denied. Only admins and organizers have events.")
    page, limit = page_args(50)
    filters = {} if has_role(actor.roles, ROLE_ADMIN) else {"organizer_id": actor.user_id}
    events, total = services().events.list_events(filters, page, limit, published_only=False)
    return ok({"events": [public_event(e) for e in events], "pagination": pagination(page, limit, total)})


@api.get("/events/<event_id>")
def get_event(event_id: str):
    return ok({"event": public_event(services().events.get_event(event_id))})


@api.post("/events")
@login_required
def create_event():
    event = services().events.create_event(current_actor(), require_json())
    return ok({"event": public_event(event)}, 201)


@api.put("/events/<event_id>")
@login_required
def update_event(event_id: str):
    event = services().events.update_event(current_actor(), event_id, require_json())
    return ok({"event": public_event(event)})


@api.post("/events/<event_id>/publish")
@login_required
def publish_event(event_id: str):
    event = services().events.publish_event(current_actor(), event_id)
    return ok({"event": public_event(event)})


@api.delete("/events/<event_id>")
@login_required
def delete_event(event_id: str):
    services().events.delete_event(current_actor(), event_id)
    return ok({})


@api.get("/events/<event_id>/tickets")
@login_required
def event_tickets(event_id: str):
    tickets = services().tickets.list_event_tickets(event_id, current_actor())
    return ok({"tickets": [public_ticket(t) for t in tickets]})


# -------------------------
# Vendors
# -------------------------
@api.get("/vendors")
def list_vendors():
    page, limit = page_args()
    vendors, total = services().vendors.list_vendors(request.args.get("name", ""), page, limit)
    return ok({"vendors": [public_vendor(v) for v in vendors], "pagination": pagination(page, limit, total)})


@api.post("/vendors")
@login_required
def create_vendor():
    vendor = services().vendors.create_vendor(current_actor(), require_json())
    return ok({"vendor": public_vendor(vendor)}, 201)


@api.get("/vendors/<vendor_id>")
@login_required
def get_vendor(vendor_id: str):
    return ok({"vendor": public_vendor(services().vendors.get_vendor(current_actor(), vendor_id))})


@api.put("/vendors/<vendor_id>")
@login_required
def update_vendor(vendor_id: str):
    vendor = services().vendors.update_vendor(current_actor(), vendor_id, require_json())
    return ok({"vendor": public_vendor(vendor)})


@api.delete("/vendors/<vendor_id>")
@login_required
def delete_vendor(vendor_id: str):
    services().vendors.delete_vendor(current_actor(), vendor_id)
    return ok({})


# -------------------------
# Tickets
# -------------------------
@api.post("/tickets/book")
@login_required
def book_tickets():
    data = require_json()
    result = services().booking.book_tickets(
        current_actor(),
        data.get("event_id"),
        data.get("quantity", 1),
        data.get("ticket_type"),
        data.get("payment_method"),
    )
    return ok(booking_payload(result), 201)


@api.post("/tickets")
@login_required
def issue_tickets():
    data = require_json()
    result = services().booking.issue_batch(
        current_actor(),
        data.get("event_id"),
        data.get("quantity", 1),
        data.get("ticket_type"),
        data.get("price"),
    )
    return ok(booking_payload(result), 201)


@api.get("/tickets")
@login_required
def list_tickets():
    limit = safe_int(request.args.get("limit", 500), "limit", min_value=1)
    tickets = services().tickets.list_all_tickets(
        current_actor(), request.args.get("event_id"), request.args.get("status"), min(limit, 500)
    )
    return ok({"tickets": [public_ticket(t) for t in tickets]})


@api.get("/tickets/code/<code>")
@login_required
def ticket_by_code(code: str):
    svc = services()
    ticket = svc.tickets.get_ticket_by_code(code, current_actor())
    event = svc.store.find_by_id(EVENTS, ticket["event_id"])
    return ok({"ticket": public_ticket(ticket, event)})


@api.get("/tickets/<ticket_id>")
@login_required
def get_ticket(ticket_id: str):
    svc = services()
    ticket = svc.tickets.get_ticket(ticket_id, current_actor())
    event = svc.store.find_by_id(EVENTS, ticket["event_id"])
    return ok({"ticket": public_ticket(ticket, event)})


@api.put("/tickets/<ticket_id>")
@login_required
def update_ticket(ticket_id: str):
    ticket = services().tickets.update_ticket(ticket_id, current_actor(), require_json())
    return ok({"ticket": public_ticket(ticket)})


@api.delete("/tickets/<ticket_id>")
@login_required
def delete_ticket(ticket_id: str):
    services().tickets.delete_ticket(ticket_id, current_actor())
    return ok({"message": "Ticket deleted successfully"})


@api.post("/tickets/<ticket_id>/cancel")
@login_required
def cancel_ticket(ticket_id: str):
    ticket = services().tickets.cancel_ticket(ticket_id, current_actor())
    return ok({"message": "Ticket cancelled successfully", "ticket": public_ticket(ticket)})


@api.post("/tickets/<ticket_id>/check-in")
@login_required
def check_in_ticket(ticket_id: str):
    ticket = services().tickets.check_in(ticket_id, current_actor())
    return ok({"message": "Ticket checked in successfully", "ticket": public_ticket(ticket)})


# -------------------------
# Orders / Payments
# -------------------------
@api.get("/orders/<order_id>")
@login_required
def get_order(order_id: str):
    return ok({"order": public_order(services().orders.get_order(order_id, current_actor()))})


@api.post("/orders/<order_id>/charge")
@login_required
def charge_order(order_id: str):
    customer = {"id": current_user.id, "email": current_user.email}
    handle = services().payments.request_charge(order_id, current_actor(), customer)
    return ok({"charge_id": handle.charge_id, "status": handle.status, "client_secret": handle.client_secret}, 201)


@api.post("/payments/notification")
def payment_notification():
    data = require_json()
    order_id = clean_str(data.get("order_id"), "order_id", required=True)
    svc = services()
    if svc.payment_mode == PAYMENT_MODE_GATEWAY and svc.payments.gateway is not None:
        # Callback bodies are unauthenticated; the gateway is asked for the real status.
        order = svc.payments.refresh_from_gateway(order_id)
    else:
        actor = current_actor()
        if not has_role(actor.roles, ROLE_ADMIN):
            raise AccessDenied("Access denied. Admin privileges required.")
        order = svc.payments.reconcile(
            order_id,
            clean_str(data.get("transaction_status"), "transaction_status"),
            clean_str(data.get("transaction_id"), "transaction_id") or None,
        )
    return ok({"order": public_order(order)})
