# ticketbox/policy.py
"""Access policy.

``is_allowed`` is a pure decision over an actor, an action and the ownership facts
of the resource involved. Callers resolve those facts (who owns the ticket, who
organizes the event) before asking, and ask before writing anything.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from ticketbox.constants import ROLE_ADMIN, ROLE_ORGANIZER
from ticketbox.errors import AccessDenied


@dataclass(frozen=True)
class Actor:
    user_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, user_id, roles: Iterable[str]) -> "Actor":
        return cls(user_id=str(user_id), roles=frozenset(roles or ()))


@dataclass(frozen=True)
class Resource:
    """Ownership facts about the target of an action.

    ``owner_id`` is the owning user (ticket holder, vendor owner, order owner or the
    user whose records are being read); ``organizer_id`` is the organizer of the
    event involved; ``is_attendee`` says whether the actor holds a ticket for it.
    """

    owner_id: Optional[str] = None
    organizer_id: Optional[str] = None
    is_attendee: bool = False


class Action(str, Enum):
    CREATE_EVENT = "create_event"
    UPDATE_EVENT = "update_event"
    DELETE_EVENT = "delete_event"
    PUBLISH_EVENT = "publish_event"
    CREATE_VENDOR = "create_vendor"
    VIEW_VENDOR = "view_vendor"
    UPDATE_VENDOR = "update_vendor"
    DELETE_VENDOR = "delete_vendor"
    VIEW_TICKET = "view_ticket"
    CANCEL_TICKET = "cancel_ticket"
    CHECK_IN_TICKET = "check_in_ticket"
    UPDATE_TICKET = "update_ticket"
    DELETE_TICKET = "delete_ticket"
    SCAN_TICKET = "scan_ticket"
    VIEW_USER_RECORDS = "view_user_records"
    VIEW_EVENT_ROSTER = "view_event_roster"
    ISSUE_TICKETS = "issue_tickets"
    LIST_ALL_TICKETS = "list_all_tickets"
    VIEW_ORDER = "view_order"
    MANAGE_USERS = "manage_users"


def has_role(roles: Iterable[str], *wanted: str) -> bool:
    """True if ``roles`` contains any of ``wanted``."""
    held = set(roles or ())
    return any(r in held for r in wanted)


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def is_allowed(actor: Actor, action: Action, resource: Optional[Resource] = None) -> bool:
    resource = resource or Resource()
    admin = has_role(actor.roles, ROLE_ADMIN)
    staff = has_role(actor.roles, ROLE_ORGANIZER, ROLE_ADMIN)
    owner = _same(actor.user_id, resource.owner_id)
    organizer = _same(actor.user_id, resource.organizer_id)

    if action in (Action.CREATE_EVENT, Action.CREATE_VENDOR, Action.LIST_ALL_TICKETS):
        return staff
    if action in (Action.UPDATE_EVENT, Action.DELETE_EVENT, Action.PUBLISH_EVENT):
        return admin or organizer
    if action in (Action.VIEW_VENDOR, Action.UPDATE_VENDOR, Action.DELETE_VENDOR):
        return admin or owner
    if action == Action.CANCEL_TICKET:
        return admin or owner or organizer
    if action == Action.VIEW_TICKET:
        return admin or owner or organizer
    if action in (
        Action.CHECK_IN_TICKET,
        Action.UPDATE_TICKET,
        Action.DELETE_TICKET,
        Action.SCAN_TICKET,
    ):
        return admin or organizer
    if action in (Action.VIEW_USER_RECORDS, Action.VIEW_ORDER):
        return admin or owner
    if action == Action.VIEW_EVENT_ROSTER:
        return admin or organizer or resource.is_attendee
    if action == Action.ISSUE_TICKETS:
        return staff and (admin or organizer)
    if action == Action.MANAGE_USERS:
        return admin
    return False


def require(actor: Actor, action: Action, resource: Optional[Resource] = None, message: str = "") -> None:
    if not is_allowed(actor, action, resource):
        raise AccessDenied(message or "Access denied.", details={"action": action.value})


def roster_scope(actor: Actor, resource: Resource) -> Optional[str]:
    """Return "all" for the organizer or an admin, "own" for an attendee, else None."""
    if has_role(actor.roles, ROLE_ADMIN) or _same(actor.user_id, resource.organizer_id):
        return "all"
    if resource.is_attendee:
        return "own"
    return None
