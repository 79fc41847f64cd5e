# ticketbox/services/events.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING

from ticketbox.constants import EVENT_CATEGORIES, EVENT_DRAFT, EVENT_PUBLISHED, EVENT_STATUSES, EVENT_TYPES
from ticketbox.errors import Conflict, NotFound, ValidationFailed
from ticketbox.policy import Action, Actor, Resource, require
from ticketbox.services.ledger import InventoryLedger
from ticketbox.stores.interfaces import EVENTS, TICKETS, VENDORS, DocumentStore
from ticketbox.utils import (
    TIME_RE,
    choice,
    clean_str,
    is_iso_datetime,
    iso_now,
    safe_float,
    safe_int,
    to_oid,
    validate_url,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class EventService:
    def __init__(self, store: DocumentStore, ledger: InventoryLedger):
        self.store = store
        self.ledger = ledger

    def _load(self, event_id) -> Dict[str, Any]:
        event = self.store.find_by_id(EVENTS, to_oid(event_id, "event_id"))
        if not event:
            raise NotFound("Event not found.")
        return event

    @staticmethod
    def _resource(event: Dict[str, Any]) -> Resource:
        return Resource(organizer_id=str(event.get("organizer_id")))

    def _descriptive_fields(self, data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        def wanted(key: str) -> bool:
            return not partial or key in data

        if wanted("title"):
            fields["title"] = clean_str(data.get("title"), "title", required=True, max_length=200)
        if wanted("description"):
            fields["description"] = clean_str(data.get("description"), "description", max_length=2000)
        if wanted("location"):
            fields["location"] = clean_str(data.get("location"), "location", required=True)
        if wanted("category"):
            fields["category"] = choice(data.get("category"), "category", EVENT_CATEGORIES)
        if wanted("type"):
            fields["type"] = choice(data.get("type"), "type", EVENT_TYPES, "in_person")
        if wanted("date"):
            date = clean_str(data.get("date"), "date")
            if not is_iso_datetime(date):
                raise ValidationFailed(
                    "date must be ISO format (e.g., 2026-01-01 or 2026-01-01T10:00:00+00:00).",
                    details={"field": "date"},
                )
            fields["date"] = date
        if wanted("time"):
            time = clean_str(data.get("time"), "time")
            if time and not TIME_RE.match(time):
                raise ValidationFailed("time must be HH:MM.", details={"field": "time"})
            fields["time"] = time
        if wanted("price"):
            fields["price"] = safe_float(data.get("price"), "price", min_value=0.0)
        if wanted("image_url"):
            fields["image_url"] = validate_url(data.get("image_url"), "image_url")
        return fields

    def create_event(self, actor: Actor, data: Dict[str, Any]) -> Dict[str, Any]:
        require(actor, Action.CREATE_EVENT, message="Only organizers and administrators can create events.")
        doc = self._descriptive_fields(data, partial=False)
        total = safe_int(data.get("total_tickets"), "total_tickets", min_value=0)

        vendor_id = None
        if data.get("vendor_id"):
            vendor_id = to_oid(data["vendor_id"], "vendor_id")
            if not self.store.find_by_id(VENDORS, vendor_id):
                raise NotFound("Vendor not found.")

        now = iso_now()
        doc.update(
            {
                "organizer_id": to_oid(actor.user_id, "user_id"),
                "vendor_id": vendor_id,
                "total_tickets": total,
                "available_tickets": total,
                "is_published": False,
                "status": EVENT_DRAFT,
                "created_at": now,
                "updated_at": now,
            }
        )
        self.store.insert_one(EVENTS, doc)
        logger.info("Event %s created by %s with %d ticket(s)", doc["_id"], actor.user_id, total)
        return doc

    def get_event(self, event_id) -> Dict[str, Any]:
        return self._load(event_id)

    def list_events(
        self, filters: Dict[str, Any], page: int = 1, limit: int = 10, published_only: bool = True
    ) -> Tuple[List[Dict[str, Any]], int]:
        query: Dict[str, Any] = {}
        if published_only:
            query["is_published"] = True
        category = (filters.get("category") or "").strip()
        if category:
            query["category"] = category.lower()
        location = (filters.get("location") or "").strip()
        if location:
            query["location"] = {"$regex": re.escape(location), "$options": "i"}
        date_from = (filters.get("date") or "").strip()
        if date_from:
            if not is_iso_datetime(date_from):
                raise ValidationFailed("date must be ISO format.", details={"field": "date"})
            query["date"] = {"$gte": date_from}
        organizer_id = filters.get("organizer_id")
        if organizer_id:
            query["organizer_id"] = to_oid(organizer_id, "organizer_id")

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)
        total = self.store.count(EVENTS, query)
        events = self.store.find(EVENTS, query, sort=[("date", ASCENDING)], skip=limit * (page - 1), limit=limit)
        return events, total

    def update_event(self, actor: Actor, event_id, data: Dict[str, Any]) -> Dict[str, Any]:
        event = self._load(event_id)
        require(actor, Action.UPDATE_EVENT, self._resource(event), "Access denied. You are not the organizer of this event.")
        for locked in ("organizer_id", "available_tickets"):
            if locked in data:
                raise ValidationFailed(f"{locked} cannot be changed.", details={"field": locked})

        updates = self._descriptive_fields(data, partial=True)
        if "status" in data:
            # Only a published event takes bookings; cancelled and completed ones close them.
            status = choice(data["status"], "status", EVENT_STATUSES)
            updates["status"] = status
            updates["is_published"] = status == EVENT_PUBLISHED
        elif "is_published" in data:
            published = data["is_published"]
            if not isinstance(published, bool):
                raise ValidationFailed("is_published must be a boolean.", details={"field": "is_published"})
            updates["is_published"] = published
            updates["status"] = EVENT_PUBLISHED if published else EVENT_DRAFT

        # Capacity goes through the ledger so the issued count is preserved atomically.
        if "total_tickets" in data:
            new_total = safe_int(data.get("total_tickets"), "total_tickets", min_value=0)
            if new_total != int(event.get("total_tickets", 0)):
                self.ledger.resize_capacity(event["_id"], new_total)

        if updates:
            updates["updated_at"] = iso_now()
            updated = self.store.update_by_id(EVENTS, event["_id"], updates)
        else:
            updated = self.store.find_by_id(EVENTS, event["_id"])
        if updated is None:
            raise NotFound("Event not found.")
        return updated

    def publish_event(self, actor: Actor, event_id) -> Dict[str, Any]:
        event = self._load(event_id)
        require(actor, Action.PUBLISH_EVENT, self._resource(event), "Access denied. You are not the organizer of this event.")
        updated = self.store.update_by_id(
            EVENTS, event["_id"], {"is_published": True, "status": EVENT_PUBLISHED, "updated_at": iso_now()}
        )
        if updated is None:
            raise NotFound("Event not found.")
        logger.info("Event %s published", event["_id"])
        return updated

    def delete_event(self, actor: Actor, event_id) -> Optional[Dict[str, Any]]:
        event = self._load(event_id)
        require(actor, Action.DELETE_EVENT, self._resource(event), "Access denied. You are not the organizer of this event.")
        # Cancelled tickets have already returned their unit, so they only show up in the count.
        issued = self.store.count(TICKETS, {"event_id": event["_id"]})
        if issued:
            raise Conflict("Cannot delete an event that has tickets.", details={"tickets": issued})
        # Every issuance reserves before it inserts, so untouched counters mean no ticket is in flight.
        removed = self.store.delete_unissued_event(event["_id"])
        if removed is None:
            if self.store.find_by_id(EVENTS, event["_id"]) is None:
                raise NotFound("Event not found.")
            raise Conflict("Cannot delete an event while tickets are being issued for it.")
        logger.info("Event %s deleted by %s", event["_id"], actor.user_id)
        return removed
