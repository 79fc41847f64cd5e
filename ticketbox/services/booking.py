# ticketbox/services/booking.py
"""Booking flows: consumer purchases and organizer batch issuance.

Both reserve capacity with one conditional update before any ticket exists, and
undo the whole issuance if a later step fails.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ticketbox.constants import (
    DEFAULT_PAYMENT_METHOD,
    DEFAULT_TICKET_TYPE,
    MAX_BATCH_QUANTITY,
    MAX_BOOKING_QUANTITY,
    PAYMENT_COMPLETED,
    PAYMENT_METHODS,
    PAYMENT_MODE_ASSUME_COMPLETED,
    PAYMENT_MODES,
    PAYMENT_PENDING,
    TICKET_CONFIRMED,
    TICKET_RESERVED,
    TICKET_TYPES,
)
from ticketbox.errors import NotFound, QuantityOutOfRange
from ticketbox.policy import Action, Actor, Resource, require
from ticketbox.services.orders import OrderAggregator
from ticketbox.services.tickets import TicketLifecycle
from ticketbox.stores.interfaces import EVENTS, DocumentStore
from ticketbox.utils import choice, safe_float, safe_int, to_oid

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    ticket_ids: List[str]
    order_id: Optional[str]
    message: str
    tickets: List[Dict[str, Any]] = field(default_factory=list, repr=False)
    order: Optional[Dict[str, Any]] = field(default=None, repr=False)


def check_quantity(value: Any, cap: int) -> int:
    quantity = safe_int(value, "quantity")
    if quantity < 1:
        raise QuantityOutOfRange("Quantity must be at least 1.", details={"quantity": quantity})
    if quantity > cap:
        raise QuantityOutOfRange(f"Maximum quantity per request is {cap}.", details={"quantity": quantity})
    return quantity


class BookingService:
    def __init__(
        self,
        store: DocumentStore,
        tickets: TicketLifecycle,
        orders: OrderAggregator,
        payment_mode: str = PAYMENT_MODE_ASSUME_COMPLETED,
    ):
        if payment_mode not in PAYMENT_MODES:
            raise ValueError(f"Unknown payment mode {payment_mode!r}")
        self.store = store
        self.tickets = tickets
        self.orders = orders
        self.payment_mode = payment_mode

    def book_tickets(
        self,
        actor: Actor,
        event_id,
        quantity: Any = 1,
        ticket_type: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> BookingResult:
        quantity = check_quantity(quantity, MAX_BOOKING_QUANTITY)
        ticket_type = choice(ticket_type, "ticket_type", TICKET_TYPES, DEFAULT_TICKET_TYPE)
        payment_method = choice(payment_method, "payment_method", PAYMENT_METHODS, DEFAULT_PAYMENT_METHOD)
        event_oid = to_oid(event_id, "event_id")

        issued = self.tickets.issue_tickets(
            event_oid, actor.user_id, ticket_type, None, TICKET_CONFIRMED, quantity
        )
        ids = [t["_id"] for t in issued]
        total = sum(t["price"] for t in issued)
        status = PAYMENT_COMPLETED if self.payment_mode == PAYMENT_MODE_ASSUME_COMPLETED else PAYMENT_PENDING
        try:
            order = self.orders.create_order(actor.user_id, event_oid, ids, total, payment_method, status)
        except Exception:
            logger.exception("Failed to record order for event %s; rolling back tickets", event_oid)
            self.tickets.rollback_issue(event_oid, ids, quantity)
            raise

        logger.info("User %s booked %d ticket(s) for event %s", actor.user_id, quantity, event_oid)
        return BookingResult(
            ticket_ids=[str(i) for i in ids],
            order_id=str(order["_id"]),
            message=f"{quantity} ticket(s) booked successfully",
            tickets=issued,
            order=order,
        )

    def issue_batch(
        self,
        actor: Actor,
        event_id,
        quantity: Any = 1,
        ticket_type: Optional[str] = None,
        price: Any = None,
    ) -> BookingResult:
        """Organizer/admin issuance: tickets start reserved and belong to the issuer."""
        event_oid = to_oid(event_id, "event_id")
        event = self.store.find_by_id(EVENTS, event_oid)
        if not event:
            raise NotFound("Event not found.")
        require(
            actor,
            Action.ISSUE_TICKETS,
            Resource(organizer_id=str(event.get("organizer_id"))),
            "Access denied. You must be the event organizer or an admin.",
        )
        quantity = check_quantity(quantity, MAX_BATCH_QUANTITY)
        ticket_type = choice(ticket_type, "ticket_type", TICKET_TYPES, DEFAULT_TICKET_TYPE)
        unit_price = None if price in (None, "") else safe_float(price, "price", min_value=0.0)

        issued = self.tickets.issue_tickets(
            event_oid, actor.user_id, ticket_type, unit_price, TICKET_RESERVED, quantity,
            require_published=False,
        )
        logger.info("User %s issued %d ticket(s) for event %s", actor.user_id, quantity, event_oid)
        return BookingResult(
            ticket_ids=[str(t["_id"]) for t in issued],
            order_id=None,
            message=f"{quantity} ticket(s) created successfully",
            tickets=issued,
        )
