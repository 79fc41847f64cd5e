# ticketbox/services/orders.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from pymongo import DESCENDING

from ticketbox.constants import PAYMENT_METHODS, PAYMENT_STATUSES
from ticketbox.errors import NotFound, ValidationFailed
from ticketbox.policy import Action, Actor, Resource, require
from ticketbox.stores.interfaces import ORDERS, DocumentStore
from ticketbox.utils import iso_now, to_oid

logger = logging.getLogger(__name__)


class OrderAggregator:
    def __init__(self, store: DocumentStore):
        self.store = store

    def create_order(
        self,
        user_id,
        event_id,
        ticket_ids: Sequence[ObjectId],
        total_amount: float,
        payment_method: str,
        payment_status: str,
    ) -> Dict[str, Any]:
        """Record the order for tickets issued by one booking.

        ``total_amount`` is fixed here and never recomputed.
        """
        if not ticket_ids:
            raise ValidationFailed("An order needs at least one ticket.", details={"field": "tickets"})
        if payment_method not in PAYMENT_METHODS:
            raise ValidationFailed("Unknown payment method.", details={"field": "payment_method"})
        if payment_status not in PAYMENT_STATUSES:
            raise ValueError(f"Unknown payment status {payment_status!r}")
        now = iso_now()
        doc = {
            "user_id": to_oid(user_id, "user_id"),
            "event_id": to_oid(event_id, "event_id"),
            "tickets": list(ticket_ids),
            "total_amount": round(float(total_amount), 2),
            "payment_status": payment_status,
            "payment_method": payment_method,
            "transaction_id": None,
            "created_at": now,
            "updated_at": now,
        }
        self.store.insert_one(ORDERS, doc)
        logger.info("Order %s created: %d ticket(s), total %.2f", doc["_id"], len(ticket_ids), doc["total_amount"])
        return doc

    def find(self, order_id) -> Dict[str, Any]:
        order = self.store.find_by_id(ORDERS, to_oid(order_id, "order_id"))
        if not order:
            raise NotFound("Order not found.")
        return order

    def get_order(self, order_id, actor: Actor) -> Dict[str, Any]:
        order = self.find(order_id)
        require(
            actor,
            Action.VIEW_ORDER,
            Resource(owner_id=str(order["user_id"])),
            "Access denied. You can only view your own orders.",
        )
        return order

    def list_user_orders(self, user_id, actor: Actor) -> List[Dict[str, Any]]:
        uid = to_oid(user_id, "user_id")
        require(
            actor,
            Action.VIEW_USER_RECORDS,
            Resource(owner_id=str(uid)),
            "Access denied. You can only view your own orders.",
        )
        return self.store.find(ORDERS, {"user_id": uid}, sort=[("created_at", DESCENDING)])

    def set_payment(
        self, order_id: ObjectId, payment_status: Optional[str], transaction_id: Optional[str] = None
    ) -> Dict[str, Any]:
        updates: Dict[str, Any] = {"updated_at": iso_now()}
        if payment_status:
            updates["payment_status"] = payment_status
        if transaction_id:
            updates["transaction_id"] = transaction_id
        order = self.store.update_by_id(ORDERS, order_id, updates)
        if order is None:
            raise NotFound("Order not found.")
        return order
