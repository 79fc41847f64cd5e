# ticketbox/stores/memory.py
"""In-process store for development and tests.

All operations run under one lock, so each call is atomic with respect to every
other call, the same guarantee a single MongoDB document update gives.
"""
from __future__ import annotations

import copy
import re
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence

from bson import ObjectId

from ticketbox.errors import Conflict
from ticketbox.stores.interfaces import (
    COLLECTIONS,
    EVENTS,
    UNIQUE_KEYS,
    Doc,
    DocumentStore,
    Query,
    Sort,
)
from ticketbox.utils import iso_now


def _matches_value(actual: Any, cond: Any) -> bool:
    if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
        for op, arg in cond.items():
            if op == "$in":
                if isinstance(actual, list):
                    if not any(a in arg for a in actual):
                        return False
                elif actual not in arg:
                    return False
            elif op == "$gte":
                if actual is None or actual < arg:
                    return False
            elif op == "$lte":
                if actual is None or actual > arg:
                    return False
            elif op == "$regex":
                flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
                if not isinstance(actual, str) or not re.search(arg, actual, flags):
                    return False
            elif op == "$options":
                continue
            else:
                raise ValueError(f"Unsupported query operator: {op}")
        return True
    if isinstance(actual, list) and not isinstance(cond, list):
        return cond in actual
    return actual == cond


def matches(doc: Doc, query: Optional[Query]) -> bool:
    for field, cond in (query or {}).items():
        if field == "$or":
            if not any(matches(doc, sub) for sub in cond):
                return False
        elif not _matches_value(doc.get(field), cond):
            return False
    return True


class MemoryStore(DocumentStore):
    def __init__(self):
        self._lock = threading.RLock()
        self._data: Dict[str, Dict[ObjectId, Doc]] = {name: {} for name in COLLECTIONS}

    def ping(self) -> None:
        return None

    def _col(self, collection: str) -> Dict[ObjectId, Doc]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return self._data[collection]

    def _check_unique(self, collection: str, doc: Doc) -> None:
        for fields in UNIQUE_KEYS.get(collection, []):
            key = tuple(doc.get(f) for f in fields)
            for other in self._col(collection).values():
                if other["_id"] != doc["_id"] and tuple(other.get(f) for f in fields) == key:
                    raise Conflict(
                        f"Duplicate value for {', '.join(fields)}.",
                        details={"fields": list(fields)},
                    )

    def find_by_id(self, collection: str, oid: ObjectId) -> Optional[Doc]:
        with self._lock:
            doc = self._col(collection).get(oid)
            return copy.deepcopy(doc) if doc else None

    def find_one(self, collection: str, query: Query) -> Optional[Doc]:
        with self._lock:
            for doc in self._col(collection).values():
                if matches(doc, query):
                    return copy.deepcopy(doc)
            return None

    def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Doc]:
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._col(collection).values() if matches(d, query)]
        # Stable sorts applied last key first give a multi-key sort.
        for field, direction in reversed(list(sort or [])):
            docs.sort(
                key=lambda d: (d.get(field) is not None, d.get(field) if d.get(field) is not None else 0),
                reverse=direction < 0,
            )
        if skip:
            docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return docs

    def count(self, collection: str, query: Optional[Query] = None) -> int:
        with self._lock:
            return sum(1 for d in self._col(collection).values() if matches(d, query))

    def insert_one(self, collection: str, doc: Doc) -> ObjectId:
        with self._lock:
            stored = copy.deepcopy(doc)
            stored.setdefault("_id", ObjectId())
            if stored["_id"] in self._col(collection):
                raise Conflict("Duplicate value for _id.", details={"fields": ["_id"]})
            self._check_unique(collection, stored)
            self._col(collection)[stored["_id"]] = stored
            doc["_id"] = stored["_id"]
            return stored["_id"]

    def insert_many(self, collection: str, docs: Sequence[Doc]) -> List[ObjectId]:
        with self._lock:
            return [self.insert_one(collection, d) for d in docs]

    def update_by_id(self, collection: str, oid: ObjectId, fields: Doc) -> Optional[Doc]:
        with self._lock:
            current = self._col(collection).get(oid)
            if current is None:
                return None
            updated = copy.deepcopy(current)
            updated.update(copy.deepcopy(fields))
            self._check_unique(collection, updated)
            self._col(collection)[oid] = updated
            return copy.deepcopy(updated)

    def delete_by_id(self, collection: str, oid: ObjectId) -> Optional[Doc]:
        with self._lock:
            return self._col(collection).pop(oid, None)

    def delete_many_by_ids(self, collection: str, oids: Iterable[ObjectId]) -> int:
        with self._lock:
            col = self._col(collection)
            return sum(1 for oid in list(oids) if col.pop(oid, None) is not None)

    # -------------------------
    # Atomic conditional updates
    # -------------------------
    def reserve_capacity(
        self, event_id: ObjectId, quantity: int, require_published: bool = True
    ) -> Optional[Doc]:
        with self._lock:
            event = self._col(EVENTS).get(event_id)
            if event is None:
                return None
            if require_published and event.get("is_published") is not True:
                return None
            if int(event.get("available_tickets", 0)) < quantity:
                return None
            before = copy.deepcopy(event)
            event["available_tickets"] = int(event["available_tickets"]) - quantity
            event["updated_at"] = iso_now()
            return before

    def release_capacity(self, event_id: ObjectId, quantity: int) -> Optional[Doc]:
        with self._lock:
            event = self._col(EVENTS).get(event_id)
            if event is None:
                return None
            event["available_tickets"] = min(
                int(event.get("available_tickets", 0)) + quantity, int(event.get("total_tickets", 0))
            )
            event["updated_at"] = iso_now()
            return copy.deepcopy(event)

    def resize_capacity(self, event_id: ObjectId, new_total: int) -> Optional[Doc]:
        with self._lock:
            event = self._col(EVENTS).get(event_id)
            if event is None:
                return None
            issued = int(event.get("total_tickets", 0)) - int(event.get("available_tickets", 0))
            if issued > new_total:
                return None
            event["total_tickets"] = new_total
            event["available_tickets"] = new_total - issued
            event["updated_at"] = iso_now()
            return copy.deepcopy(event)

    def delete_unissued_event(self, event_id: ObjectId) -> Optional[Doc]:
        with self._lock:
            events = self._col(EVENTS)
            event = events.get(event_id)
            if event is None or int(event.get("available_tickets", 0)) != int(event.get("total_tickets", 0)):
                return None
            return events.pop(event_id)

    def transition_status(
        self, collection: str, oid: ObjectId, from_statuses: Iterable[str], to_status: str
    ) -> Optional[Doc]:
        with self._lock:
            doc = self._col(collection).get(oid)
            if doc is None or doc.get("status") not in set(from_statuses):
                return None
            before = copy.deepcopy(doc)
            doc["status"] = to_status
            doc["updated_at"] = iso_now()
            return before
