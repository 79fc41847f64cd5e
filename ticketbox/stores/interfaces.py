# ticketbox/stores/interfaces.py
"""Document store interface.

Stores are swappable: services only talk to this interface. Documents are plain
dicts keyed by ``_id`` (an ``ObjectId``); returned documents are copies the caller
may mutate freely.

Queries support equality, ``$in``, ``$gte``/``$lte`` and ``$regex`` (with
``$options: "i"``) on top-level fields, which is all the services need.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bson import ObjectId

Doc = Dict[str, Any]
Query = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]

USERS = "users"
EVENTS = "events"
TICKETS = "tickets"
ORDERS = "orders"
VENDORS = "vendors"
COLLECTIONS = (USERS, EVENTS, TICKETS, ORDERS, VENDORS)

# Unique constraints, enforced by every backend.
UNIQUE_KEYS: Dict[str, List[Tuple[str, ...]]] = {
    USERS: [("email",)],
    TICKETS: [("code",)],
    VENDORS: [("user_id", "name")],
}


class DocumentStore(ABC):
    """Persistence collaborator for users, events, tickets, orders and vendors."""

    @abstractmethod
    def ping(self) -> None:
        """Raise UpstreamFailure if the backend is unreachable."""
        ...

    # -------------------------
    # Generic CRUD
    # -------------------------
    @abstractmethod
    def find_by_id(self, collection: str, oid: ObjectId) -> Optional[Doc]:
        ...

    @abstractmethod
    def find_one(self, collection: str, query: Query) -> Optional[Doc]:
        ...

    @abstractmethod
    def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Doc]:
        ...

    @abstractmethod
    def count(self, collection: str, query: Optional[Query] = None) -> int:
        ...

    @abstractmethod
    def insert_one(self, collection: str, doc: Doc) -> ObjectId:
        """Insert and return the id. Raises Conflict on a unique-key clash."""
        ...

    @abstractmethod
    def insert_many(self, collection: str, docs: Sequence[Doc]) -> List[ObjectId]:
        """Insert in order. On failure, documents before the failing one may remain."""
        ...

    @abstractmethod
    def update_by_id(self, collection: str, oid: ObjectId, fields: Doc) -> Optional[Doc]:
        """``$set`` the given fields and return the updated document."""
        ...

    @abstractmethod
    def delete_by_id(self, collection: str, oid: ObjectId) -> Optional[Doc]:
        """Atomically remove a document and return it as it was when removed."""
        ...

    @abstractmethod
    def delete_many_by_ids(self, collection: str, oids: Iterable[ObjectId]) -> int:
        ...

    # -------------------------
    # Atomic conditional updates
    # -------------------------
    @abstractmethod
    def reserve_capacity(
        self, event_id: ObjectId, quantity: int, require_published: bool = True
    ) -> Optional[Doc]:
        """Decrement ``available_tickets`` by ``quantity`` only if the event has at
        least that many left and, unless ``require_published`` is False, is published.

        Returns the event as it was before the decrement, or None when the guard
        did not match (missing, unpublished or insufficient).
        """
        ...

    @abstractmethod
    def release_capacity(self, event_id: ObjectId, quantity: int) -> Optional[Doc]:
        """Increment ``available_tickets``, clamped to ``total_tickets``.
        Returns the updated event, or None if it does not exist."""
        ...

    @abstractmethod
    def resize_capacity(self, event_id: ObjectId, new_total: int) -> Optional[Doc]:
        """Set ``total_tickets`` keeping the issued count, only if the issued count
        still fits. Returns the updated event, or None when the guard did not match."""
        ...

    @abstractmethod
    def delete_unissued_event(self, event_id: ObjectId) -> Optional[Doc]:
        """Remove the event only while ``available_tickets`` equals ``total_tickets``.
        Returns the removed event, or None if it is missing or has units issued."""
        ...

    @abstractmethod
    def transition_status(
        self, collection: str, oid: ObjectId, from_statuses: Iterable[str], to_status: str
    ) -> Optional[Doc]:
        """Compare-and-set ``status``. Returns the document as it was before the
        change, or None if it is missing or not in one of ``from_statuses``."""
        ...
