from __future__ import annotations

from ..config import IdentitySettings
from .base import ContactSession, ContactStore
from .memory import InMemoryContactStore
from .postgres import PostgresContactStore


def create_store(settings: IdentitySettings) -> ContactStore:
    """Build the store selected by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        return InMemoryContactStore()
    store = PostgresContactStore(
        settings.database_url,
        lock_timeout_ms=settings.lock_timeout_ms,
        statement_timeout_ms=settings.statement_timeout_ms,
    )
    if settings.auto_create_schema:
        store.ensure_schema()
    return store


__all__ = [
    "ContactSession",
    "ContactStore",
    "InMemoryContactStore",
    "PostgresContactStore",
    "create_store",
]
