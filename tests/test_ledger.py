# tests/test_ledger.py
import pytest
from bson import ObjectId

from ticketbox.errors import (
    EventNotPublished,
    InsufficientInventory,
    InvalidCapacity,
    NotFound,
    QuantityOutOfRange,
)
from ticketbox.services.ledger import issued_count
from ticketbox.stores.interfaces import EVENTS

from conftest import available


def test_reserve_returns_count_before_decrement(svc, store, make_event):
    event = make_event(total=5)
    assert svc.ledger.reserve_capacity(event["_id"], 2) == 5
    assert available(store, event) == 3


def test_reserve_more_than_available_changes_nothing(svc, store, make_event):
    event = make_event(total=3)
    with pytest.raises(InsufficientInventory) as exc:
        svc.ledger.reserve_capacity(event["_id"], 4)
    assert exc.value.details == {"requested": 4, "available": 3}
    assert available(store, event) == 3


def test_reserve_on_unpublished_event(svc, store, make_event):
    event = make_event(total=3, published=False)
    with pytest.raises(EventNotPublished):
        svc.ledger.reserve_capacity(event["_id"], 1)
    # Issuance that does not need publication still goes through.
    svc.ledger.reserve(event["_id"], 1, require_published=False)
    assert available(store, event) == 2


def test_reserve_unknown_event(svc):
    with pytest.raises(NotFound):
        svc.ledger.reserve_capacity(ObjectId(), 1)


def test_reserve_rejects_non_positive_quantity(svc, make_event):
    event = make_event()
    with pytest.raises(QuantityOutOfRange):
        svc.ledger.reserve_capacity(event["_id"], 0)


def test_release_is_clamped_to_total(svc, store, make_event):
    event = make_event(total=5)
    svc.ledger.reserve_capacity(event["_id"], 2)
    assert svc.ledger.release_capacity(event["_id"], 1) == 4
    assert svc.ledger.release_capacity(event["_id"], 10) == 5
    assert available(store, event) == 5


def test_resize_preserves_issued_count(svc, store, make_event):
    event = make_event(total=10)
    svc.ledger.reserve_capacity(event["_id"], 4)
    resized = svc.ledger.resize_capacity(event["_id"], 6)
    assert resized["total_tickets"] == 6
    assert resized["available_tickets"] == 2
    assert issued_count(resized) == 4


def test_resize_below_issued_is_rejected(svc, store, make_event):
    event = make_event(total=10)
    svc.ledger.reserve_capacity(event["_id"], 4)
    with pytest.raises(InvalidCapacity) as exc:
        svc.ledger.resize_capacity(event["_id"], 3)
    assert exc.value.details["issued"] == 4
    current = store.find_by_id(EVENTS, event["_id"])
    assert (current["total_tickets"], current["available_tickets"]) == (10, 6)


def test_resize_negative_total(svc, make_event):
    event = make_event()
    with pytest.raises(InvalidCapacity):
        svc.ledger.resize_capacity(event["_id"], -1)


def test_resize_then_book_to_exhaustion(svc, store, make_event, attendee):
    event = make_event(total=5)
    svc.booking.book_tickets(attendee, event["_id"], 2)
    svc.ledger.resize_capacity(event["_id"], 8)

    svc.booking.book_tickets(attendee, event["_id"], 6)
    assert available(store, event) == 0
    with pytest.raises(InsufficientInventory):
        svc.booking.book_tickets(attendee, event["_id"], 1)
