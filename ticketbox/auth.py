# ticketbox/auth.py
"""Identity: Flask-Login sessions plus signed bearer tokens.

Either way the request ends up with a ``User`` whose ``actor`` is what the core
services are called with.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from flask import current_app, jsonify
from flask_login import LoginManager, UserMixin, current_user
from jose import JWTError, jwt

from ticketbox.errors import AuthError, ValidationFailed
from ticketbox.policy import Actor
from ticketbox.stores.interfaces import USERS, DocumentStore
from ticketbox.utils import to_oid

login_manager = LoginManager()
login_manager.session_protection = "strong"


class User(UserMixin):
    def __init__(self, doc: Dict[str, Any]):
        self.doc = doc
        self.id = str(doc["_id"])
        self.email = doc.get("email", "")
        self.roles = list(doc.get("roles", []))

    @property
    def actor(self) -> Actor:
        return Actor.of(self.id, self.roles)


class TokenIssuer:
    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def create_access_token(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=self.expire_minutes))
        return jwt.encode({"sub": str(user_id), "exp": expire}, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Optional[str]:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None
        return payload.get("sub")


def _user_for_token(token: str, tokens: TokenIssuer, store: DocumentStore) -> Dict[str, Any]:
    user_id = tokens.decode_token(token or "")
    if not user_id:
        raise AuthError("Invalid or expired token.")
    try:
        doc = store.find_by_id(USERS, to_oid(user_id, "user_id"))
    except ValidationFailed:
        raise AuthError("Invalid or expired token.")
    if not doc:
        raise AuthError("Invalid or expired token.")
    return doc


def resolve_actor(token: str, tokens: TokenIssuer, store: DocumentStore) -> Actor:
    """Actor for a bearer token; roles are read fresh from the store."""
    doc = _user_for_token(token, tokens, store)
    return Actor.of(doc["_id"], doc.get("roles", []))


def token_issuer() -> TokenIssuer:
    return current_app.extensions["ticketbox_tokens"]


@login_manager.user_loader
def load_user(user_id: str) -> Optional[User]:
    store = current_app.extensions["ticketbox"].store
    try:
        doc = store.find_by_id(USERS, to_oid(user_id, "user_id"))
    except ValidationFailed:
        return None
    return User(doc) if doc else None


@login_manager.request_loader
def load_user_from_request(req) -> Optional[User]:
    header = req.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    try:
        doc = _user_for_token(token.strip(), token_issuer(), current_app.extensions["ticketbox"].store)
    except AuthError:
        return None
    return User(doc)


@login_manager.unauthorized_handler
def unauthorized():
    # JSON only
    return jsonify({"ok": False, "error": "Authentication required.", "code": "unauthorized"}), 401


def current_actor() -> Actor:
    if not current_user.is_authenticated:
        raise AuthError("Authentication required.")
    return current_user.actor
