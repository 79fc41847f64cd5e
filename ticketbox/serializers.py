# ticketbox/serializers.py
# -------------------------
# Serialization helpers
# -------------------------
from __future__ import annotations

from typing import Any, Dict, Optional

from ticketbox.utils import oid_str


def public_user(u: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(u["_id"]),
        "email": u.get("email", ""),
        "first_name": u.get("first_name", ""),
        "last_name": u.get("last_name", ""),
        "roles": list(u.get("roles", [])),
        "is_verified": bool(u.get("is_verified", False)),
        "phone": u.get("phone", ""),
        "address": u.get("address", ""),
        "created_at": u.get("created_at", ""),
    }


def public_event(e: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(e["_id"]),
        "organizer_id": oid_str(e.get("organizer_id")),
        "vendor_id": oid_str(e.get("vendor_id")),
        "title": e.get("title", ""),
        "description": e.get("description", ""),
        "category": e.get("category", ""),
        "type": e.get("type", ""),
        "date": e.get("date", ""),
        "time": e.get("time", ""),
        "location": e.get("location", ""),
        "image_url": e.get("image_url", ""),
        "price": float(e.get("price", 0.0)),
        "total_tickets": int(e.get("total_tickets", 0)),
        "available_tickets": int(e.get("available_tickets", 0)),
        "is_published": bool(e.get("is_published", False)),
        "status": e.get("status", ""),
        "created_at": e.get("created_at", ""),
        "updated_at": e.get("updated_at", ""),
    }


def public_ticket(t: Dict[str, Any], event_doc: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    out = {
        "id": str(t["_id"]),
        "event_id": oid_str(t.get("event_id")),
        "user_id": oid_str(t.get("user_id")),
        "ticket_type": t.get("ticket_type", ""),
        "price": float(t.get("price", 0.0)),
        "status": t.get("status", ""),
        "code": t.get("code", ""),
        "seat_number": t.get("seat_number", ""),
        "booking_date": t.get("booking_date", ""),
        "created_at": t.get("created_at", ""),
        "updated_at": t.get("updated_at", ""),
    }
    if event_doc:
        out["event"] = {
            "id": str(event_doc["_id"]),
            "title": event_doc.get("title", ""),
            "date": event_doc.get("date", ""),
            "location": event_doc.get("location", ""),
        }
    return out


def public_order(o: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(o["_id"]),
        "user_id": oid_str(o.get("user_id")),
        "event_id": oid_str(o.get("event_id")),
        "tickets": [str(t) for t in o.get("tickets", [])],
        "total_amount": round(float(o.get("total_amount", 0.0)), 2),
        "payment_status": o.get("payment_status", ""),
        "payment_method": o.get("payment_method", ""),
        "transaction_id": o.get("transaction_id"),
        "created_at": o.get("created_at", ""),
        "updated_at": o.get("updated_at", ""),
    }


def public_vendor(v: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(v["_id"]),
        "user_id": oid_str(v.get("user_id")),
        "name": v.get("name", ""),
        "description": v.get("description", ""),
        "contact_email": v.get("contact_email", ""),
        "contact_phone": v.get("contact_phone", ""),
        "website": v.get("website", ""),
        "address": v.get("address", ""),
        "categories": list(v.get("categories", [])),
        "payment_methods": list(v.get("payment_methods", [])),
        "business_type": v.get("business_type", ""),
        "is_active": bool(v.get("is_active", True)),
        "created_at": v.get("created_at", ""),
        "updated_at": v.get("updated_at", ""),
    }
