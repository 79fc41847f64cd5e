# ticketbox/utils.py
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from bson import ObjectId
from bson.errors import InvalidId

from ticketbox.errors import ValidationFailed

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_RE = re.compile(r"^https?://.+", re.IGNORECASE)
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    return now_utc().isoformat()


def to_oid(value: Any, field: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationFailed(f"Invalid {field}.", details={"field": field})


def oid_str(value: Any) -> Optional[str]:
    return str(value) if value else None


def is_iso_datetime(s: str) -> bool:
    """Accept ISO 8601 date or datetime strings.
    Stored as ISO strings so lexical comparisons work.
    """
    if not isinstance(s, str) or not s.strip():
        return False
    try:
        datetime.fromisoformat(s.strip().replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


def safe_int(value: Any, field: str, min_value: Optional[int] = None) -> int:
    # bool is an int subclass; "true" is not a quantity
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} must be an integer.", details={"field": field})
    if isinstance(value, float) and not value.is_integer():
        raise ValidationFailed(f"{field} must be an integer.", details={"field": field})
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be an integer.", details={"field": field})
    if min_value is not None and n < min_value:
        raise ValidationFailed(f"{field} must be >= {min_value}.", details={"field": field})
    return n


def safe_float(value: Any, field: str, min_value: Optional[float] = None) -> float:
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} must be a number.", details={"field": field})
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a number.", details={"field": field})
    if min_value is not None and n < min_value:
        raise ValidationFailed(f"{field} must be >= {min_value}.", details={"field": field})
    return n


def clean_str(value: Any, field: str, required: bool = False, max_length: Optional[int] = None) -> str:
    if value is not None and not isinstance(value, str):
        raise ValidationFailed(f"{field} must be a string.", details={"field": field})
    s = (value or "").strip()
    if required and not s:
        raise ValidationFailed(f"{field} is required.", details={"field": field})
    if max_length is not None and len(s) > max_length:
        raise ValidationFailed(
            f"{field} must be at most {max_length} characters.", details={"field": field}
        )
    return s


def choice(value: Any, field: str, allowed: Iterable[str], default: Optional[str] = None) -> str:
    allowed = tuple(allowed)
    if value is None or value == "":
        if default is None:
            raise ValidationFailed(f"{field} is required.", details={"field": field})
        return default
    v = str(value).strip().lower()
    if v not in allowed:
        raise ValidationFailed(
            f"{field} must be one of: {', '.join(allowed)}.", details={"field": field}
        )
    return v


def validate_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationFailed("A valid email is required.", details={"field": "email"})
    return email


def validate_password(pw: str) -> str:
    pw = pw or ""
    if len(pw) < 6:
        raise ValidationFailed("Password must be at least 6 characters.", details={"field": "password"})
    return pw


def validate_url(value: Any, field: str) -> str:
    s = clean_str(value, field)
    if s and not URL_RE.match(s):
        raise ValidationFailed(f"{field} must be a valid HTTP/HTTPS URL.", details={"field": field})
    return s
