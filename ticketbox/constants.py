# ticketbox/constants.py
"""Enumerated values shared by the documents and the API."""
from __future__ import annotations

ROLE_ATTENDEE = "attendee"
ROLE_ORGANIZER = "organizer"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_ATTENDEE, ROLE_ORGANIZER, ROLE_ADMIN)

EVENT_CATEGORIES = (
    "music",
    "sports",
    "conference",
    "workshop",
    "festival",
    "theater",
    "comedy",
    "exhibition",
    "education",
    "networking",
)

EVENT_DRAFT = "draft"
EVENT_PUBLISHED = "published"
EVENT_CANCELLED = "cancelled"
EVENT_COMPLETED = "completed"
EVENT_STATUSES = (EVENT_DRAFT, EVENT_PUBLISHED, EVENT_CANCELLED, EVENT_COMPLETED)

EVENT_TYPES = ("in_person", "online", "hybrid")

TICKET_RESERVED = "reserved"
TICKET_CONFIRMED = "confirmed"
TICKET_CANCELLED = "cancelled"
TICKET_USED = "used"
TICKET_STATUSES = (TICKET_RESERVED, TICKET_CONFIRMED, TICKET_CANCELLED, TICKET_USED)

TICKET_TYPES = ("general", "vip", "premium", "student", "early_bird")
DEFAULT_TICKET_TYPE = "general"

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_REFUNDED)

PAYMENT_METHODS = ("credit_card", "debit_card", "paypal", "bank_transfer", "cash")
DEFAULT_PAYMENT_METHOD = "credit_card"

# Payment policy applied to orders at booking time.
PAYMENT_MODE_ASSUME_COMPLETED = "assume_completed"
PAYMENT_MODE_GATEWAY = "gateway"
PAYMENT_MODES = (PAYMENT_MODE_ASSUME_COMPLETED, PAYMENT_MODE_GATEWAY)

MAX_BOOKING_QUANTITY = 10
MAX_BATCH_QUANTITY = 100
