# ticketbox/services/vendors.py
from __future__ import annotations

import re
from typing import Any, Dict, List, Tuple

from pymongo import ASCENDING

from ticketbox.errors import Conflict, NotFound, ValidationFailed
from ticketbox.policy import Action, Actor, Resource, require
from ticketbox.stores.interfaces import USERS, VENDORS, DocumentStore
from ticketbox.utils import clean_str, iso_now, to_oid, validate_email, validate_url

TEXT_FIELDS = {
    "description": 500,
    "contact_phone": 40,
    "address": 300,
    "business_type": 60,
}


def _string_list(value: Any, field: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationFailed(f"{field} must be a list of strings.", details={"field": field})
    return [v.strip().lower() for v in value if v.strip()]


class VendorService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def _load(self, vendor_id) -> Dict[str, Any]:
        vendor = self.store.find_by_id(VENDORS, to_oid(vendor_id, "vendor_id"))
        if not vendor:
            raise NotFound("Vendor not found.")
        return vendor

    def _fields(self, data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        def wanted(key: str) -> bool:
            return not partial or key in data

        if wanted("name"):
            fields["name"] = clean_str(data.get("name"), "name", required=True, max_length=100)
        if wanted("contact_email"):
            fields["contact_email"] = validate_email(data.get("contact_email"))
        for key, max_length in TEXT_FIELDS.items():
            if wanted(key):
                fields[key] = clean_str(data.get(key), key, max_length=max_length)
        if wanted("website"):
            fields["website"] = validate_url(data.get("website"), "website")
        for key in ("categories", "payment_methods"):
            if wanted(key):
                fields[key] = _string_list(data.get(key), key)
        if partial and "is_active" in data:
            if not isinstance(data["is_active"], bool):
                raise ValidationFailed("is_active must be a boolean.", details={"field": "is_active"})
            fields["is_active"] = data["is_active"]
        return fields

    def _ensure_unique_name(self, user_id, name: str, exclude=None) -> None:
        existing = self.store.find_one(VENDORS, {"user_id": user_id, "name": name})
        if existing and existing["_id"] != exclude:
            raise Conflict("You already have a vendor with this name.", details={"field": "name"})

    def create_vendor(self, actor: Actor, data: Dict[str, Any]) -> Dict[str, Any]:
        require(actor, Action.CREATE_VENDOR, message="Only organizers and administrators can create vendors.")
        owner = to_oid(actor.user_id, "user_id")
        if not self.store.find_by_id(USERS, owner):
            raise NotFound("User not found.")
        doc = self._fields(data, partial=False)
        self._ensure_unique_name(owner, doc["name"])
        now = iso_now()
        doc.update({"user_id": owner, "is_active": True, "created_at": now, "updated_at": now})
        # The unique (user_id, name) index still catches a concurrent duplicate.
        self.store.insert_one(VENDORS, doc)
        return doc

    def list_vendors(self, name: str = "", page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        query: Dict[str, Any] = {"is_active": True}
        name = (name or "").strip()
        if name:
            query["name"] = {"$regex": re.escape(name), "$options": "i"}
        limit = max(1, min(limit, 100))
        page = max(1, page)
        total = self.store.count(VENDORS, query)
        vendors = self.store.find(VENDORS, query, sort=[("name", ASCENDING)], skip=limit * (page - 1), limit=limit)
        return vendors, total

    def get_vendor(self, actor: Actor, vendor_id) -> Dict[str, Any]:
        vendor = self._load(vendor_id)
        require(
            actor,
            Action.VIEW_VENDOR,
            Resource(owner_id=str(vendor["user_id"])),
            "Access denied. You can only view your own vendors.",
        )
        return vendor

    def update_vendor(self, actor: Actor, vendor_id, data: Dict[str, Any]) -> Dict[str, Any]:
        vendor = self._load(vendor_id)
        require(
            actor,
            Action.UPDATE_VENDOR,
            Resource(owner_id=str(vendor["user_id"])),
            "Access denied. You are not the owner of this vendor.",
        )
        if "user_id" in data:
            raise ValidationFailed("user_id cannot be changed.", details={"field": "user_id"})
        updates = self._fields(data, partial=True)
        if "name" in updates:
            self._ensure_unique_name(vendor["user_id"], updates["name"], exclude=vendor["_id"])
        if not updates:
            return vendor
        updates["updated_at"] = iso_now()
        updated = self.store.update_by_id(VENDORS, vendor["_id"], updates)
        if updated is None:
            raise NotFound("Vendor not found.")
        return updated

    def delete_vendor(self, actor: Actor, vendor_id) -> None:
        vendor = self._load(vendor_id)
        require(
            actor,
            Action.DELETE_VENDOR,
            Resource(owner_id=str(vendor["user_id"])),
            "Access denied. You are not the owner of this vendor.",
        )
        self.store.delete_by_id(VENDORS, vendor["_id"])

    def list_user_vendors(self, actor: Actor, user_id) -> List[Dict[str, Any]]:
        uid = to_oid(user_id, "user_id")
        require(
            actor,
            Action.VIEW_USER_RECORDS,
            Resource(owner_id=str(uid)),
            "Access denied. You can only view your own vendors.",
        )
        return self.store.find(VENDORS, {"user_id": uid}, sort=[("name", ASCENDING)])
