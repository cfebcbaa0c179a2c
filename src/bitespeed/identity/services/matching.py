from __future__ import annotations

from ..models import Contact
from ..repository import ContactSession


def find_candidates(
    session: ContactSession,
    email: str | None,
    phone_number: str | None,
) -> list[Contact]:
    """Return every stored contact sharing the email OR the phone number, oldest first.

    Callers break ties by position in this list, so the order is re-asserted here
    rather than trusted to the store.
    """
    if not email and not phone_number:
        return []
    matches = session.find(email=email or None, phone_number=phone_number or None)
    return sorted(matches, key=Contact.sort_key)


__all__ = ["find_candidates"]
