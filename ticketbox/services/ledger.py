# ticketbox/services/ledger.py
"""Inventory ledger: the only writer of an event's capacity counters."""
from __future__ import annotations

import logging
from typing import Any, Dict

from ticketbox.errors import (
    EventNotPublished,
    InsufficientInventory,
    InvalidCapacity,
    NotFound,
    QuantityOutOfRange,
)
from ticketbox.stores.interfaces import EVENTS, DocumentStore
from ticketbox.utils import to_oid

logger = logging.getLogger(__name__)


def issued_count(event: Dict[str, Any]) -> int:
    return int(event.get("total_tickets", 0)) - int(event.get("available_tickets", 0))


class InventoryLedger:
    def __init__(self, store: DocumentStore):
        self.store = store

    def reserve_capacity(self, event_id, quantity: int) -> int:
        """Take ``quantity`` units; returns the available count before the decrement."""
        return int(self.reserve(event_id, quantity)["available_tickets"])

    def reserve(self, event_id, quantity: int, require_published: bool = True) -> Dict[str, Any]:
        """Like ``reserve_capacity`` but returns the whole event as it was before the
        decrement, so callers price tickets from the same snapshot."""
        if quantity < 1:
            raise QuantityOutOfRange("Quantity must be at least 1.", details={"quantity": quantity})
        oid = to_oid(event_id, "event_id")
        before = self.store.reserve_capacity(oid, quantity, require_published)
        if before is not None:
            logger.info(
                "Reserved %d of %d ticket(s) for event %s", quantity, before["available_tickets"], oid
            )
            return before

        # The guarded update did not match; work out why.
        event = self.store.find_by_id(EVENTS, oid)
        if event is None:
            raise NotFound("Event not found.", details={"event_id": str(oid)})
        if require_published and event.get("is_published") is not True:
            raise EventNotPublished("Cannot book tickets for an unpublished event.")
        raise InsufficientInventory(
            "Not enough tickets available.",
            details={"requested": quantity, "available": int(event.get("available_tickets", 0))},
        )

    def release_capacity(self, event_id, quantity: int) -> int:
        """Give back ``quantity`` units, never exceeding the event's total."""
        if quantity < 1:
            raise QuantityOutOfRange("Quantity must be at least 1.", details={"quantity": quantity})
        oid = to_oid(event_id, "event_id")
        event = self.store.release_capacity(oid, quantity)
        if event is None:
            raise NotFound("Event not found.", details={"event_id": str(oid)})
        logger.info("Released %d ticket(s) for event %s; now %d available", quantity, oid, event["available_tickets"])
        return int(event["available_tickets"])

    def resize_capacity(self, event_id, new_total: int) -> Dict[str, Any]:
        oid = to_oid(event_id, "event_id")
        if new_total < 0:
            raise InvalidCapacity("Total tickets cannot be negative.", details={"total_tickets": new_total})
        event = self.store.resize_capacity(oid, new_total)
        if event is not None:
            logger.info("Resized event %s to %d ticket(s)", oid, new_total)
            return event

        current = self.store.find_by_id(EVENTS, oid)
        if current is None:
            raise NotFound("Event not found.", details={"event_id": str(oid)})
        raise InvalidCapacity(
            "Total tickets cannot be less than tickets already issued.",
            details={"total_tickets": new_total, "issued": issued_count(current)},
        )
