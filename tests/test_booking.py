# tests/test_booking.py
from concurrent.futures import ThreadPoolExecutor

import pytest

from ticketbox.constants import (
    PAYMENT_COMPLETED,
    PAYMENT_MODE_GATEWAY,
    PAYMENT_PENDING,
    TICKET_CONFIRMED,
    TICKET_RESERVED,
)
from ticketbox.errors import (
    AccessDenied,
    EventNotPublished,
    InsufficientInventory,
    QuantityOutOfRange,
    UpstreamFailure,
    ValidationFailed,
)
from ticketbox.services import build_services
from ticketbox.stores.interfaces import EVENTS, ORDERS, TICKETS

from conftest import available


def test_book_cancel_rebook_scenario(svc, store, make_event, attendee):
    event = make_event(total=5, price=20)

    result = svc.booking.book_tickets(attendee, event["_id"], 3)
    assert result.message == "3 ticket(s) booked successfully"
    assert len(result.ticket_ids) == 3
    assert result.order["total_amount"] == 60
    assert [t["status"] for t in result.tickets] == [TICKET_CONFIRMED] * 3
    assert available(store, event) == 2

    svc.tickets.cancel_ticket(result.ticket_ids[0], attendee)
    assert available(store, event) == 3

    with pytest.raises(InsufficientInventory):
        svc.booking.book_tickets(attendee, event["_id"], 4)
    assert available(store, event) == 3


def test_order_groups_the_booked_tickets(svc, store, make_event, attendee):
    event = make_event(total=5, price=15)
    result = svc.booking.book_tickets(attendee, event["_id"], 2, payment_method="paypal")
    order = store.find_by_id(ORDERS, result.order["_id"])
    assert [str(t) for t in order["tickets"]] == result.ticket_ids
    assert order["payment_method"] == "paypal"
    assert order["payment_status"] == PAYMENT_COMPLETED
    assert order["event_id"] == event["_id"]
    assert result.order_id == str(order["_id"])


def test_order_total_is_not_recomputed(svc, store, make_event, attendee, organizer):
    event = make_event(total=5, price=10)
    result = svc.booking.book_tickets(attendee, event["_id"], 2)
    svc.events.update_event(organizer, event["_id"], {"price": 99})
    svc.tickets.cancel_ticket(result.ticket_ids[0], attendee)
    assert store.find_by_id(ORDERS, result.order["_id"])["total_amount"] == 20


@pytest.mark.parametrize("quantity", [0, 11, -1])
def test_consumer_quantity_bounds(svc, store, make_event, attendee, quantity):
    event = make_event(total=20)
    with pytest.raises(QuantityOutOfRange):
        svc.booking.book_tickets(attendee, event["_id"], quantity)
    assert available(store, event) == 20


def test_consumer_quantity_upper_boundary(svc, store, make_event, attendee):
    event = make_event(total=20)
    assert len(svc.booking.book_tickets(attendee, event["_id"], 10).ticket_ids) == 10
    assert available(store, event) == 10


@pytest.mark.parametrize("quantity", ["two", 1.5, True, None])
def test_non_integer_quantity(svc, make_event, attendee, quantity):
    event = make_event(total=5)
    with pytest.raises(ValidationFailed):
        svc.booking.book_tickets(attendee, event["_id"], quantity)


def test_unknown_ticket_type_is_rejected(svc, make_event, attendee):
    event = make_event(total=5)
    with pytest.raises(ValidationFailed):
        svc.booking.book_tickets(attendee, event["_id"], 1, ticket_type="balcony")


def test_cannot_book_unpublished_event(svc, store, make_event, attendee):
    event = make_event(total=5, published=False)
    with pytest.raises(EventNotPublished):
        svc.booking.book_tickets(attendee, event["_id"], 1)
    assert store.count(TICKETS) == 0


def test_concurrent_bookings_never_oversell(svc, store, make_event, attendee):
    remaining, attempts = 7, 25
    event = make_event(total=remaining)

    def attempt(_):
        try:
            svc.booking.book_tickets(attendee, event["_id"], 1)
            return "ok"
        except InsufficientInventory:
            return "sold_out"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(attempts)))

    assert outcomes.count("ok") == remaining
    assert outcomes.count("sold_out") == attempts - remaining
    assert available(store, event) == 0
    assert store.count(TICKETS, {"event_id": event["_id"]}) == remaining


def test_failed_order_rolls_back_tickets(svc, store, make_event, attendee, monkeypatch):
    event = make_event(total=5)

    def broken(*args, **kwargs):
        raise UpstreamFailure("Database error while writing orders.")

    monkeypatch.setattr(svc.orders, "create_order", broken)
    with pytest.raises(UpstreamFailure):
        svc.booking.book_tickets(attendee, event["_id"], 2)
    assert store.count(TICKETS) == 0
    assert available(store, event) == 5


def test_gateway_mode_leaves_orders_pending(store, make_event, attendee):
    services = build_services(store, {"PAYMENT_MODE": PAYMENT_MODE_GATEWAY})
    event = make_event(total=5)
    result = services.booking.book_tickets(attendee, event["_id"], 1)
    assert result.order["payment_status"] == PAYMENT_PENDING


def test_batch_issue_is_all_or_nothing(svc, store, make_event, organizer, attendee):
    event = make_event(total=100)
    svc.booking.book_tickets(attendee, event["_id"], 1)
    assert available(store, event) == 99

    with pytest.raises(InsufficientInventory):
        svc.booking.issue_batch(organizer, event["_id"], 100)
    assert available(store, event) == 99
    assert store.count(TICKETS, {"status": TICKET_RESERVED}) == 0

    result = svc.booking.issue_batch(organizer, event["_id"], 99, ticket_type="vip", price=5)
    assert result.message == "99 ticket(s) created successfully"
    assert result.order_id is None
    assert {t["status"] for t in result.tickets} == {TICKET_RESERVED}
    assert {t["price"] for t in result.tickets} == {5.0}
    assert {str(t["user_id"]) for t in result.tickets} == {organizer.user_id}
    assert available(store, event) == 0


def test_batch_cap_and_permissions(svc, make_event, organizer, other_organizer, attendee, admin):
    event = make_event(total=200)
    with pytest.raises(QuantityOutOfRange):
        svc.booking.issue_batch(organizer, event["_id"], 101)
    with pytest.raises(AccessDenied):
        svc.booking.issue_batch(attendee, event["_id"], 1)
    with pytest.raises(AccessDenied):
        svc.booking.issue_batch(other_organizer, event["_id"], 1)
    assert len(svc.booking.issue_batch(admin, event["_id"], 100).ticket_ids) == 100


def test_batch_issue_on_draft_event(svc, store, make_event, organizer):
    event = make_event(total=5, published=False)
    svc.booking.issue_batch(organizer, event["_id"], 2)
    assert store.find_by_id(EVENTS, event["_id"])["available_tickets"] == 3


def test_inventory_stays_in_bounds_through_mixed_operations(svc, store, make_event, attendee, organizer):
    event = make_event(total=4)
    booked = svc.booking.book_tickets(attendee, event["_id"], 3)
    issued = svc.booking.issue_batch(organizer, event["_id"], 1)
    svc.tickets.cancel_ticket(booked.ticket_ids[0], attendee)
    svc.tickets.delete_ticket(booked.ticket_ids[0], organizer)
    svc.tickets.delete_ticket(issued.ticket_ids[0], organizer)
    svc.tickets.check_in(booked.ticket_ids[1], organizer)
    svc.tickets.cancel_ticket(booked.ticket_ids[1], organizer)

    current = store.find_by_id(EVENTS, event["_id"])
    assert 0 <= current["available_tickets"] <= current["total_tickets"]
    assert current["available_tickets"] == 3
