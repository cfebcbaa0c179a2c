from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Iterable, Sequence

from ..models import Contact


class ContactSession(ABC):
    """Unit of work over the contact store.

    Reads and writes issued through one session observe each other, and the
    session's writes become durable together when it exits cleanly.
    """

    @abstractmethod
    def find(
        self,
        *,
        email: str | None = None,
        phone_number: str | None = None,
        id: int | None = None,
        linked_id: int | None = None,
    ) -> list[Contact]:
        """Return contacts matching ANY supplied field, ordered by created_at then id.

        Criteria left as ``None`` are ignored; with no criteria the result is empty.
        """

    @abstractmethod
    def find_one(self, contact_id: int) -> Contact | None:
        """Return the contact with the given id, if it exists."""

    @abstractmethod
    def save(self, contact: Contact) -> Contact:
        """Insert when ``contact.id`` is None, otherwise update in place keeping created_at."""

    @abstractmethod
    def lock(self, keys: Iterable[str]) -> None:
        """Take further exclusive locks, held until the session exits.

        Keys are acquired in sorted order. Reads issued after this call observe
        everything committed by sessions that held any of these keys.
        """

    def save_all(self, contacts: Iterable[Contact]) -> list[Contact]:
        return [self.save(contact) for contact in contacts]


class ContactStore(ABC):
    """Factory for sessions; owned by the composition root."""

    @abstractmethod
    def session(self, lock_keys: Sequence[str] = ()) -> AbstractContextManager[ContactSession]:
        """Open a session holding exclusive locks on ``lock_keys`` until it exits."""

    def close(self) -> None:
        """Release resources held by the store."""


def has_criteria(**criteria: object) -> bool:
    return any(value is not None for value in criteria.values())


__all__ = ["ContactSession", "ContactStore", "has_criteria"]
