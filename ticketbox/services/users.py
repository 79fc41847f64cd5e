# ticketbox/services/users.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from pymongo import ASCENDING
from werkzeug.security import check_password_hash, generate_password_hash

from ticketbox.constants import ROLE_ADMIN, ROLE_ATTENDEE, ROLE_ORGANIZER, USER_ROLES
from ticketbox.errors import AuthError, Conflict, NotFound, ValidationFailed
from ticketbox.policy import Action, Actor, Resource, require
from ticketbox.stores.interfaces import USERS, DocumentStore
from ticketbox.utils import clean_str, iso_now, to_oid, validate_email, validate_password

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {"first_name": 50, "last_name": 50, "phone": 40, "address": 300}


class UserService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def register(self, data: Dict[str, Any]) -> Dict[str, Any]:
        email = validate_email(data.get("email", ""))
        password = validate_password(data.get("password", ""))
        profile = {k: clean_str(data.get(k), k, max_length=n) for k, n in PROFILE_FIELDS.items()}

        # Self-registration can ask for organizer; admin is only ever granted by an admin.
        roles = [ROLE_ATTENDEE]
        requested = data.get("role") or ""
        if isinstance(requested, str) and requested.strip().lower() == ROLE_ORGANIZER:
            roles.append(ROLE_ORGANIZER)

        if self.store.find_one(USERS, {"email": email}):
            raise Conflict("Email already registered.", details={"field": "email"})
        now = iso_now()
        doc = {
            "email": email,
            "password_hash": generate_password_hash(password),
            "roles": roles,
            "is_verified": False,
            "created_at": now,
            "updated_at": now,
            **profile,
        }
        self.store.insert_one(USERS, doc)
        logger.info("User %s registered with roles %s", doc["_id"], roles)
        return doc

    def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        email = validate_email(email)
        user = self.store.find_one(USERS, {"email": email})
        if not user or not check_password_hash(user.get("password_hash", ""), password or ""):
            raise AuthError("Invalid credentials.")
        return user

    def find(self, user_id) -> Dict[str, Any]:
        user = self.store.find_by_id(USERS, to_oid(user_id, "user_id"))
        if not user:
            raise NotFound("User not found.")
        return user

    def get_profile(self, actor: Actor, user_id) -> Dict[str, Any]:
        user = self.find(user_id)
        require(actor, Action.VIEW_USER_RECORDS, Resource(owner_id=str(user["_id"])), "Access denied.")
        return user

    def update_profile(self, actor: Actor, user_id, data: Dict[str, Any]) -> Dict[str, Any]:
        user = self.find(user_id)
        require(
            actor,
            Action.VIEW_USER_RECORDS,
            Resource(owner_id=str(user["_id"])),
            "Access denied. You can only update your own profile.",
        )
        rejected = sorted(k for k in data if k not in PROFILE_FIELDS)
        if rejected:
            raise ValidationFailed(
                f"These fields cannot be changed: {', '.join(rejected)}.", details={"fields": rejected}
            )
        updates = {k: clean_str(data[k], k, max_length=PROFILE_FIELDS[k]) for k in data}
        if not updates:
            return user
        updates["updated_at"] = iso_now()
        return self.store.update_by_id(USERS, user["_id"], updates) or user

    def list_users(self, actor: Actor, page: int = 1, limit: int = 50) -> Tuple[List[Dict[str, Any]], int]:
        require(actor, Action.MANAGE_USERS, message="Access denied. Admin privileges required.")
        limit = max(1, min(limit, 200))
        page = max(1, page)
        total = self.store.count(USERS)
        users = self.store.find(USERS, sort=[("email", ASCENDING)], skip=limit * (page - 1), limit=limit)
        return users, total

    def update_roles(self, actor: Actor, user_id, roles: Any) -> Dict[str, Any]:
        require(actor, Action.MANAGE_USERS, message="Access denied. Admin privileges required.")
        if not isinstance(roles, list) or not roles:
            raise ValidationFailed("roles must be a non-empty list.", details={"field": "roles"})
        cleaned = []
        for role in roles:
            r = str(role).strip().lower()
            if r not in USER_ROLES:
                raise ValidationFailed(
                    f"roles must be drawn from: {', '.join(USER_ROLES)}.", details={"field": "roles"}
                )
            if r not in cleaned:
                cleaned.append(r)
        user = self.find(user_id)
        updated = self.store.update_by_id(USERS, user["_id"], {"roles": cleaned, "updated_at": iso_now()})
        if updated is None:
            raise NotFound("User not found.")
        logger.info("Roles of user %s set to %s by %s", user["_id"], cleaned, actor.user_id)
        return updated

    def ensure_default_admin(self, email: str, password: str) -> None:
        email = validate_email(email)
        if self.store.find_one(USERS, {"email": email}):
            return
        now = iso_now()
        try:
            self.store.insert_one(
                USERS,
                {
                    "email": email,
                    "password_hash": generate_password_hash(password),
                    "roles": [ROLE_ATTENDEE, ROLE_ORGANIZER, ROLE_ADMIN],
                    "is_verified": True,
                    "first_name": "Admin",
                    "last_name": "",
                    "created_at": now,
                    "updated_at": now,
                },
            )
        except Conflict:
            # Another worker seeded it first.
            return
        logger.info("Default admin created: %s", email)
