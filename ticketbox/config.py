# ticketbox/config.py
"""Environment-driven settings, applied with ``app.config.from_object``."""
from __future__ import annotations

import os

from ticketbox.constants import PAYMENT_MODE_ASSUME_COMPLETED


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    SESSION_COOKIE_SECURE = os.environ.get("SESSION_COOKIE_SECURE", "0") == "1"  # set to 1 behind HTTPS
    SESSION_COOKIE_SAMESITE = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_COOKIE_HTTPONLY = True

    # "mongo" or "memory"
    STORE_BACKEND = os.environ.get("STORE_BACKEND", "mongo")
    MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB = os.environ.get("MONGO_DB", "ticketbox")
    MONGO_SERVER_SELECTION_TIMEOUT_MS = _env_int("MONGO_SERVER_SELECTION_TIMEOUT_MS", 3000)
    MONGO_CONNECT_TIMEOUT_MS = _env_int("MONGO_CONNECT_TIMEOUT_MS", 3000)
    MONGO_SOCKET_TIMEOUT_MS = _env_int("MONGO_SOCKET_TIMEOUT_MS", 5000)

    TOKEN_ALGORITHM = os.environ.get("TOKEN_ALGORITHM", "HS256")
    TOKEN_EXPIRE_MINUTES = _env_int("TOKEN_EXPIRE_MINUTES", 60 * 24)

    # "assume_completed" marks orders paid at booking time; "gateway" leaves them
    # pending until a payment notification is reconciled.
    PAYMENT_MODE = os.environ.get("PAYMENT_MODE", PAYMENT_MODE_ASSUME_COMPLETED)
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd")
    STRIPE_MAX_NETWORK_RETRIES = _env_int("STRIPE_MAX_NETWORK_RETRIES", 2)

    DEFAULT_ADMIN_EMAIL = os.environ.get("DEFAULT_ADMIN_EMAIL", "admin@example.com")
    DEFAULT_ADMIN_PASSWORD = os.environ.get("DEFAULT_ADMIN_PASSWORD", "Admin123!")
    SEED_DEFAULT_ADMIN = os.environ.get("SEED_DEFAULT_ADMIN", "1") == "1"


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    STORE_BACKEND = "memory"
    PAYMENT_MODE = PAYMENT_MODE_ASSUME_COMPLETED
    STRIPE_SECRET_KEY = ""
    SEED_DEFAULT_ADMIN = False
    LOG_LEVEL = "WARNING"
