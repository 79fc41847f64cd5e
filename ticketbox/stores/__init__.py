# ticketbox/stores/__init__.py
from __future__ import annotations

from ticketbox.stores.interfaces import DocumentStore
from ticketbox.stores.memory import MemoryStore


def build_store(config) -> DocumentStore:
    """Create the store selected by ``config["STORE_BACKEND"]``."""
    backend = (config.get("STORE_BACKEND") or "mongo").lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "mongo":
        from ticketbox.stores.mongo import MongoStore, connect

        store = MongoStore(connect(config))
        store.ensure_indexes()
        return store
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


__all__ = ["DocumentStore", "MemoryStore", "build_store"]
