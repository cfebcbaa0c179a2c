from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Iterator, Sequence

from ..errors import StorageFailure
from ..models import Contact
from .base import ContactSession, ContactStore, has_criteria


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryContactStore(ContactStore):
    """Process-local store used by tests and ``CONTACT_STORE=memory`` runs.

    Sessions are serialized with one re-entrant lock, which is a coarser form of
    the per-key advisory locks the Postgres store takes. Writes are staged per
    session and published only when the session exits without raising.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._rows: Dict[int, Contact] = {}
        self._next_id = 1
        self._last_timestamp: datetime | None = None
        self._lock = threading.RLock()

    def _now(self) -> datetime:
        # Insert order must stay strictly increasing even when the clock does not tick.
        now = self._clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    @contextmanager
    def session(self, lock_keys: Sequence[str] = ()) -> Iterator[ContactSession]:
        with self._lock:
            session = _InMemorySession(self)
            yield session
            self._rows.update(session.staged)

    def all(self) -> list[Contact]:
        with self._lock:
            return sorted((row.model_copy() for row in self._rows.values()), key=Contact.sort_key)


class _InMemorySession(ContactSession):
    def __init__(self, store: InMemoryContactStore) -> None:
        self._store = store
        self.staged: Dict[int, Contact] = {}

    def _visible(self) -> Dict[int, Contact]:
        rows = dict(self._store._rows)
        rows.update(self.staged)
        return rows

    def find(
        self,
        *,
        email: str | None = None,
        phone_number: str | None = None,
        id: int | None = None,
        linked_id: int | None = None,
    ) -> list[Contact]:
        if not has_criteria(email=email, phone_number=phone_number, id=id, linked_id=linked_id):
            return []
        found = [
            row.model_copy()
            for row in self._visible().values()
            if (email is not None and row.email == email)
            or (phone_number is not None and row.phone_number == phone_number)
            or (id is not None and row.id == id)
            or (linked_id is not None and row.linked_id == linked_id)
        ]
        return sorted(found, key=Contact.sort_key)

    def lock(self, keys: Iterable[str]) -> None:
        # The store lock already serializes every session.
        return None

    def find_one(self, contact_id: int) -> Contact | None:
        row = self._visible().get(contact_id)
        return row.model_copy() if row is not None else None

    def save(self, contact: Contact) -> Contact:
        now = self._store._now()
        if contact.id is None:
            stored = contact.model_copy(
                update={"id": self._store._next_id, "created_at": now, "updated_at": now}
            )
            self._store._next_id += 1
        else:
            existing = self._visible().get(contact.id)
            if existing is None:
                raise StorageFailure(f"Contact {contact.id} does not exist")
            stored = contact.model_copy(update={"created_at": existing.created_at, "updated_at": now})
        self.staged[stored.id] = stored
        return stored.model_copy()


__all__ = ["InMemoryContactStore"]
