# tests/conftest.py
from __future__ import annotations

import pytest
from werkzeug.security import generate_password_hash

from ticketbox.app import create_app
from ticketbox.config import TestingConfig
from ticketbox.constants import PAYMENT_MODE_ASSUME_COMPLETED, ROLE_ADMIN, ROLE_ATTENDEE, ROLE_ORGANIZER
from ticketbox.policy import Actor
from ticketbox.services import build_services
from ticketbox.stores.interfaces import EVENTS, USERS
from ticketbox.stores.memory import MemoryStore

PASSWORD = "secret123"


def add_user(store, email, roles):
    doc = {
        "email": email,
        "password_hash": generate_password_hash(PASSWORD),
        "roles": list(roles),
        "first_name": email.split("@")[0],
        "last_name": "",
        "is_verified": True,
    }
    store.insert_one(USERS, doc)
    return Actor.of(doc["_id"], roles)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def svc(store):
    return build_services(store, {"PAYMENT_MODE": PAYMENT_MODE_ASSUME_COMPLETED})


@pytest.fixture
def admin(store):
    return add_user(store, "admin@example.com", [ROLE_ATTENDEE, ROLE_ADMIN])


@pytest.fixture
def organizer(store):
    return add_user(store, "org@example.com", [ROLE_ATTENDEE, ROLE_ORGANIZER])


@pytest.fixture
def other_organizer(store):
    return add_user(store, "org2@example.com", [ROLE_ATTENDEE, ROLE_ORGANIZER])


@pytest.fixture
def attendee(store):
    return add_user(store, "alice@example.com", [ROLE_ATTENDEE])


@pytest.fixture
def other_attendee(store):
    return add_user(store, "bob@example.com", [ROLE_ATTENDEE])


@pytest.fixture
def make_event(svc, store, organizer):
    def _make(total=5, price=20.0, published=True, owner=None):
        owner = owner or organizer
        event = svc.events.create_event(
            owner,
            {
                "title": "Spring Concert",
                "description": "An evening of music",
                "location": "Main Hall",
                "category": "music",
                "date": "2026-11-01T19:00:00+00:00",
                "time": "19:00",
                "price": price,
                "total_tickets": total,
            },
        )
        if published:
            svc.events.publish_event(owner, event["_id"])
        return store.find_by_id(EVENTS, event["_id"])

    return _make


def available(store, event):
    return store.find_by_id(EVENTS, event["_id"])["available_tickets"]


@pytest.fixture
def app(store):
    return create_app(TestingConfig, store=store)


@pytest.fixture
def client(app):
    return app.test_client()
