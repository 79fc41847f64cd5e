# ticketbox/__init__.py
"""ticketbox: event ticketing backend (Flask + MongoDB)."""
from ticketbox.app import create_app

__all__ = ["create_app"]
