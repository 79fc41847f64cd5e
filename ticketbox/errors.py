# ticketbox/errors.py
"""Error taxonomy.

Every failure the core can report is an ``ApiError`` subclass carrying a stable
``code`` and the HTTP status the API layer answers with.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ApiError(Exception):
    message: str
    status: int = 400
    code: str = "bad_request"
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass
class NotFound(ApiError):
    status: int = 404
    code: str = "not_found"


@dataclass
class AccessDenied(ApiError):
    status: int = 403
    code: str = "forbidden"


@dataclass
class AuthError(ApiError):
    status: int = 401
    code: str = "unauthorized"


@dataclass
class ValidationFailed(ApiError):
    status: int = 400
    code: str = "validation_error"


@dataclass
class QuantityOutOfRange(ApiError):
    status: int = 400
    code: str = "quantity_out_of_range"


@dataclass
class InvalidCapacity(ApiError):
    status: int = 400
    code: str = "invalid_capacity"


@dataclass
class InsufficientInventory(ApiError):
    status: int = 409
    code: str = "insufficient_inventory"


@dataclass
class EventNotPublished(ApiError):
    status: int = 409
    code: str = "event_not_published"


@dataclass
class AlreadyInTerminalState(ApiError):
    status: int = 409
    code: str = "already_terminal"


@dataclass
class Conflict(ApiError):
    status: int = 409
    code: str = "conflict"


@dataclass
class UpstreamFailure(ApiError):
    """A collaborator (database, payment gateway) failed; not a business rule."""

    status: int = 502
    code: str = "upstream_failure"
