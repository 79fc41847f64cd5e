# ticketbox/stores/mongo.py
"""MongoDB-backed store using PyMongo."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Sequence

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from ticketbox.errors import Conflict, UpstreamFailure
from ticketbox.stores.interfaces import (
    COLLECTIONS,
    EVENTS,
    ORDERS,
    TICKETS,
    UNIQUE_KEYS,
    USERS,
    VENDORS,
    Doc,
    DocumentStore,
    Query,
    Sort,
)
from ticketbox.utils import iso_now

logger = logging.getLogger(__name__)


@contextmanager
def db_errors(action: str) -> Iterator[None]:
    """Translate driver errors so they never pass for business-rule failures."""
    try:
        yield
    except DuplicateKeyError as e:
        raise Conflict(f"Duplicate value while {action}.", details={"detail": str(e)})
    except PyMongoError as e:
        logger.error("Database error while %s: %s", action, e)
        raise UpstreamFailure(f"Database error while {action}.", details={"detail": str(e)})


def connect(config) -> Database:
    client = MongoClient(
        config["MONGO_URI"],
        serverSelectionTimeoutMS=config["MONGO_SERVER_SELECTION_TIMEOUT_MS"],
        connectTimeoutMS=config["MONGO_CONNECT_TIMEOUT_MS"],
        socketTimeoutMS=config["MONGO_SOCKET_TIMEOUT_MS"],
        retryWrites=True,
    )
    try:
        # Verify connectivity early (will raise if unreachable)
        client.admin.command("ping")
    except PyMongoError as e:
        logger.exception("MongoDB connection failed")
        raise RuntimeError(f"MongoDB connection failed: {e}") from e
    return client[config["MONGO_DB"]]


class MongoStore(DocumentStore):
    def __init__(self, db: Database):
        self.db = db

    def ensure_indexes(self) -> None:
        with db_errors("creating indexes"):
            for name, keys in UNIQUE_KEYS.items():
                for fields in keys:
                    self.db[name].create_index([(f, ASCENDING) for f in fields], unique=True)
            self.db[EVENTS].create_index([("organizer_id", ASCENDING), ("date", ASCENDING)])
            self.db[EVENTS].create_index([("is_published", ASCENDING), ("date", ASCENDING)])
            self.db[TICKETS].create_index([("event_id", ASCENDING), ("user_id", ASCENDING)])
            self.db[TICKETS].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
            self.db[ORDERS].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
            self.db[VENDORS].create_index([("name", ASCENDING)])
            self.db[USERS].create_index([("roles", ASCENDING)])

    def ping(self) -> None:
        with db_errors("pinging the database"):
            self.db.client.admin.command("ping")

    def _col(self, collection: str):
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return self.db[collection]

    def find_by_id(self, collection: str, oid: ObjectId) -> Optional[Doc]:
        with db_errors(f"reading {collection}"):
            return self._col(collection).find_one({"_id": oid})

    def find_one(self, collection: str, query: Query) -> Optional[Doc]:
        with db_errors(f"reading {collection}"):
            return self._col(collection).find_one(query)

    def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Doc]:
        with db_errors(f"listing {collection}"):
            cursor = self._col(collection).find(query or {})
            if sort:
                cursor = cursor.sort(list(sort))
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)

    def count(self, collection: str, query: Optional[Query] = None) -> int:
        with db_errors(f"counting {collection}"):
            return self._col(collection).count_documents(query or {})

    def insert_one(self, collection: str, doc: Doc) -> ObjectId:
        with db_errors(f"writing {collection}"):
            return self._col(collection).insert_one(doc).inserted_id

    def insert_many(self, collection: str, docs: Sequence[Doc]) -> List[ObjectId]:
        with db_errors(f"writing {collection}"):
            return list(self._col(collection).insert_many(list(docs), ordered=True).inserted_ids)

    def update_by_id(self, collection: str, oid: ObjectId, fields: Doc) -> Optional[Doc]:
        with db_errors(f"updating {collection}"):
            return self._col(collection).find_one_and_update(
                {"_id": oid},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )

    def delete_by_id(self, collection: str, oid: ObjectId) -> Optional[Doc]:
        with db_errors(f"deleting from {collection}"):
            return self._col(collection).find_one_and_delete({"_id": oid})

    def delete_many_by_ids(self, collection: str, oids: Iterable[ObjectId]) -> int:
        with db_errors(f"deleting from {collection}"):
            return self._col(collection).delete_many({"_id": {"$in": list(oids)}}).deleted_count

    # -------------------------
    # Atomic conditional updates
    # -------------------------
    def reserve_capacity(
        self, event_id: ObjectId, quantity: int, require_published: bool = True
    ) -> Optional[Doc]:
        guard = {"_id": event_id, "available_tickets": {"$gte": quantity}}
        if require_published:
            guard["is_published"] = True
        with db_errors("reserving capacity"):
            return self.db[EVENTS].find_one_and_update(
                guard,
                {"$inc": {"available_tickets": -quantity}, "$set": {"updated_at": iso_now()}},
                return_document=ReturnDocument.BEFORE,
            )

    def release_capacity(self, event_id: ObjectId, quantity: int) -> Optional[Doc]:
        with db_errors("releasing capacity"):
            return self.db[EVENTS].find_one_and_update(
                {"_id": event_id},
                [
                    {
                        "$set": {
                            "available_tickets": {
                                "$min": [{"$add": ["$available_tickets", quantity]}, "$total_tickets"]
                            },
                            "updated_at": iso_now(),
                        }
                    }
                ],
                return_document=ReturnDocument.AFTER,
            )

    def resize_capacity(self, event_id: ObjectId, new_total: int) -> Optional[Doc]:
        issued = {"$subtract": ["$total_tickets", "$available_tickets"]}
        with db_errors("resizing capacity"):
            # Expressions in one $set stage all read the pre-update document.
            return self.db[EVENTS].find_one_and_update(
                {"_id": event_id, "$expr": {"$lte": [issued, new_total]}},
                [
                    {
                        "$set": {
                            "total_tickets": new_total,
                            "available_tickets": {"$subtract": [new_total, issued]},
                            "updated_at": iso_now(),
                        }
                    }
                ],
                return_document=ReturnDocument.AFTER,
            )

    def delete_unissued_event(self, event_id: ObjectId) -> Optional[Doc]:
        with db_errors("deleting event"):
            return self.db[EVENTS].find_one_and_delete(
                {"_id": event_id, "$expr": {"$eq": ["$available_tickets", "$total_tickets"]}}
            )

    def transition_status(
        self, collection: str, oid: ObjectId, from_statuses: Iterable[str], to_status: str
    ) -> Optional[Doc]:
        with db_errors(f"updating {collection} status"):
            return self._col(collection).find_one_and_update(
                {"_id": oid, "status": {"$in": list(from_statuses)}},
                {"$set": {"status": to_status, "updated_at": iso_now()}},
                return_document=ReturnDocument.BEFORE,
            )
