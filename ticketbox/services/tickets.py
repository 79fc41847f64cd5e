# ticketbox/services/tickets.py
"""Ticket lifecycle.

Inventory rule: every issued ticket takes one unit of its event's capacity when it
is created, whatever its initial status. Cancelling or deleting a ticket that is not
already cancelled gives exactly one unit back. Status changes are compare-and-set
updates, so two racing cancellations release at most one unit.
"""
from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING

from ticketbox.constants import (
    ROLE_ADMIN,
    TICKET_CANCELLED,
    TICKET_CONFIRMED,
    TICKET_RESERVED,
    TICKET_STATUSES,
    TICKET_TYPES,
    TICKET_USED,
)
from ticketbox.errors import AlreadyInTerminalState, ApiError, NotFound, ValidationFailed
from ticketbox.policy import Action, Actor, Resource, has_role, require, roster_scope
from ticketbox.services.ledger import InventoryLedger
from ticketbox.stores.interfaces import EVENTS, TICKETS, DocumentStore
from ticketbox.utils import choice, clean_str, iso_now, to_oid

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("ticket_type", "seat_number")


def generate_code() -> str:
    """Scannable ticket code: 128 random bits, never derived from ids or time."""
    return f"TKT-{secrets.token_hex(16).upper()}"


class TicketLifecycle:
    def __init__(self, store: DocumentStore, ledger: InventoryLedger):
        self.store = store
        self.ledger = ledger

    # -------------------------
    # Issuance
    # -------------------------
    def issue_tickets(
        self,
        event_id,
        user_id,
        ticket_type: str,
        price: Optional[float],
        initial_status: str,
        quantity: int,
        require_published: bool = True,
    ) -> List[Dict[str, Any]]:
        """Reserve ``quantity`` units and create that many tickets, or nothing.

        ``price`` of None snapshots the event's price as read by the reservation.
        """
        if initial_status not in (TICKET_RESERVED, TICKET_CONFIRMED):
            raise ValueError(f"Tickets cannot be issued as {initial_status!r}")
        event_oid = to_oid(event_id, "event_id")
        user_oid = to_oid(user_id, "user_id")
        event = self.ledger.reserve(event_oid, quantity, require_published)
        unit_price = float(event.get("price", 0.0)) if price is None else float(price)

        now = iso_now()
        docs = [
            {
                "_id": ObjectId(),
                "event_id": event_oid,
                "user_id": user_oid,
                "ticket_type": ticket_type,
                "price": unit_price,
                "status": initial_status,
                "booking_date": now,
                "code": generate_code(),
                "created_at": now,
                "updated_at": now,
            }
            for _ in range(quantity)
        ]
        try:
            self.store.insert_many(TICKETS, docs)
        except Exception:
            logger.exception("Failed to record %d ticket(s) for event %s; rolling back", quantity, event_oid)
            self.rollback_issue(event_oid, [d["_id"] for d in docs], quantity)
            raise
        return docs

    def rollback_issue(self, event_id: ObjectId, ticket_ids: List[ObjectId], quantity: int) -> None:
        """Undo an issuance: drop its tickets, then return its reserved units."""
        try:
            self.store.delete_many_by_ids(TICKETS, ticket_ids)
            self.ledger.release_capacity(event_id, quantity)
        except ApiError:
            logger.exception(
                "Rollback failed for event %s (%d ticket(s)); inventory needs reconciling",
                event_id,
                quantity,
            )

    # -------------------------
    # Lookups
    # -------------------------
    def _load(self, ticket_id) -> Dict[str, Any]:
        ticket = self.store.find_by_id(TICKETS, to_oid(ticket_id, "ticket_id"))
        if not ticket:
            raise NotFound("Ticket not found.")
        return ticket

    def _resource(self, ticket: Dict[str, Any]) -> Resource:
        event = self.store.find_by_id(EVENTS, ticket["event_id"])
        organizer = str(event["organizer_id"]) if event and event.get("organizer_id") else None
        return Resource(owner_id=str(ticket["user_id"]), organizer_id=organizer)

    def get_ticket(self, ticket_id, actor: Actor) -> Dict[str, Any]:
        ticket = self._load(ticket_id)
        require(
            actor,
            Action.VIEW_TICKET,
            self._resource(ticket),
            "Access denied. You can only view your own tickets or tickets for your events.",
        )
        return ticket

    def get_ticket_by_code(self, code: str, actor: Actor) -> Dict[str, Any]:
        code = clean_str(code, "code", required=True)
        ticket = self.store.find_one(TICKETS, {"code": code})
        if not ticket:
            raise NotFound("Ticket not found.")
        require(
            actor,
            Action.SCAN_TICKET,
            self._resource(ticket),
            "Access denied. Only event organizers and admins can scan tickets.",
        )
        return ticket

    def list_user_tickets(self, user_id, actor: Actor) -> List[Dict[str, Any]]:
        uid = to_oid(user_id, "user_id")
        require(
            actor,
            Action.VIEW_USER_RECORDS,
            Resource(owner_id=str(uid)),
            "Access denied. You can only view your own tickets.",
        )
        return self.store.find(TICKETS, {"user_id": uid}, sort=[("created_at", DESCENDING)])

    def list_event_tickets(self, event_id, actor: Actor) -> List[Dict[str, Any]]:
        eid = to_oid(event_id, "event_id")
        event = self.store.find_by_id(EVENTS, eid)
        if not event:
            raise NotFound("Event not found.")
        actor_oid = to_oid(actor.user_id, "user_id")
        resource = Resource(
            organizer_id=str(event.get("organizer_id")),
            is_attendee=self.store.count(TICKETS, {"event_id": eid, "user_id": actor_oid}) > 0,
        )
        require(
            actor,
            Action.VIEW_EVENT_ROSTER,
            resource,
            "Access denied. You must be the organizer, admin, or an attendee of this event.",
        )
        query: Dict[str, Any] = {"event_id": eid}
        if roster_scope(actor, resource) == "own":
            query["user_id"] = actor_oid
        return self.store.find(TICKETS, query, sort=[("created_at", DESCENDING)])

    def list_all_tickets(
        self, actor: Actor, event_id=None, status: Optional[str] = None, limit: int = 500
    ) -> List[Dict[str, Any]]:
        require(actor, Action.LIST_ALL_TICKETS, message="Access denied. Only admins and organizers can view all tickets.")
        query: Dict[str, Any] = {}
        if status:
            query["status"] = choice(status, "status", TICKET_STATUSES)
        if event_id:
            eid = to_oid(event_id, "event_id")
            event = self.store.find_by_id(EVENTS, eid)
            if not event:
                raise NotFound("Event not found.")
            require(
                actor,
                Action.ISSUE_TICKETS,
                Resource(organizer_id=str(event.get("organizer_id"))),
                "Access denied. You must be the event organizer or an admin.",
            )
            query["event_id"] = eid
        elif not has_role(actor.roles, ROLE_ADMIN):
            # Organizers only see tickets for events they run.
            own = self.store.find(EVENTS, {"organizer_id": to_oid(actor.user_id, "user_id")})
            query["event_id"] = {"$in": [e["_id"] for e in own]}
        return self.store.find(TICKETS, query, sort=[("created_at", DESCENDING)], limit=limit)

    # -------------------------
    # Transitions
    # -------------------------
    def cancel_ticket(self, ticket_id, actor: Actor) -> Dict[str, Any]:
        ticket = self._load(ticket_id)
        require(
            actor,
            Action.CANCEL_TICKET,
            self._resource(ticket),
            "Access denied. You can only cancel your own tickets.",
        )
        if ticket.get("status") == TICKET_CANCELLED:
            raise AlreadyInTerminalState("Ticket already cancelled.")

        before = self.store.transition_status(
            TICKETS, ticket["_id"], (TICKET_RESERVED, TICKET_CONFIRMED, TICKET_USED), TICKET_CANCELLED
        )
        if before is None:
            # Lost a race with another cancellation or a delete.
            self._load(ticket["_id"])
            raise AlreadyInTerminalState("Ticket already cancelled.")

        try:
            self.ledger.release_capacity(ticket["event_id"], 1)
        except ApiError:
            logger.exception("Could not release capacity for ticket %s; restoring status", ticket["_id"])
            self.store.transition_status(TICKETS, ticket["_id"], (TICKET_CANCELLED,), before["status"])
            raise
        logger.info("Ticket %s cancelled (was %s)", ticket["_id"], before["status"])
        return self._load(ticket["_id"])

    def check_in(self, ticket_id, actor: Actor) -> Dict[str, Any]:
        ticket = self._load(ticket_id)
        require(
            actor,
            Action.CHECK_IN_TICKET,
            self._resource(ticket),
            "Access denied. Only event organizers and admins can check in tickets.",
        )
        self._ensure_checkable(ticket.get("status"))
        before = self.store.transition_status(
            TICKETS, ticket["_id"], (TICKET_RESERVED, TICKET_CONFIRMED), TICKET_USED
        )
        if before is None:
            self._ensure_checkable(self._load(ticket["_id"]).get("status"))
        logger.info("Ticket %s checked in", ticket["_id"])
        return self._load(ticket["_id"])

    @staticmethod
    def _ensure_checkable(status: Optional[str]) -> None:
        if status == TICKET_USED:
            raise AlreadyInTerminalState("Ticket already checked in.")
        if status == TICKET_CANCELLED:
            raise AlreadyInTerminalState("Cannot check in a cancelled ticket.")

    def update_ticket(self, ticket_id, actor: Actor, changes: Dict[str, Any]) -> Dict[str, Any]:
        ticket = self._load(ticket_id)
        require(
            actor,
            Action.UPDATE_TICKET,
            self._resource(ticket),
            "Access denied. Only event organizers and admins can update tickets.",
        )
        rejected = sorted(k for k in changes if k not in UPDATABLE_FIELDS)
        if rejected:
            raise ValidationFailed(
                f"These fields cannot be changed: {', '.join(rejected)}.", details={"fields": rejected}
            )
        updates: Dict[str, Any] = {}
        if "ticket_type" in changes:
            updates["ticket_type"] = choice(changes["ticket_type"], "ticket_type", TICKET_TYPES)
        if "seat_number" in changes:
            updates["seat_number"] = clean_str(changes["seat_number"], "seat_number", max_length=20)
        if not updates:
            return ticket
        updates["updated_at"] = iso_now()
        updated = self.store.update_by_id(TICKETS, ticket["_id"], updates)
        if updated is None:
            raise NotFound("Ticket not found.")
        return updated

    def delete_ticket(self, ticket_id, actor: Actor) -> Dict[str, Any]:
        ticket = self._load(ticket_id)
        require(
            actor,
            Action.DELETE_TICKET,
            self._resource(ticket),
            "Access denied. Only event organizers and admins can delete tickets.",
        )
        # Removing first means the status we act on is the final one; a cancel
        # racing with this delete cannot release the same unit twice.
        removed = self.store.delete_by_id(TICKETS, ticket["_id"])
        if removed is None:
            raise NotFound("Ticket not found.")
        if removed.get("status") != TICKET_CANCELLED:
            try:
                self.ledger.release_capacity(removed["event_id"], 1)
            except ApiError:
                logger.exception("Could not release capacity for ticket %s; restoring it", removed["_id"])
                self.store.insert_one(TICKETS, removed)
                raise
        logger.info("Ticket %s deleted (status %s)", removed["_id"], removed.get("status"))
        return removed
