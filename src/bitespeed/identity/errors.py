from __future__ import annotations

from dataclasses import dataclass


class IdentityError(Exception):
    """Base class for failures raised by the identity core."""


class InvalidRequest(IdentityError):
    """The caller supplied too few identifiers; never retried."""


class StorageFailure(IdentityError):
    """The contact store failed; retry policy belongs to the caller."""


class InvariantViolation(IdentityError):
    """Stored clusters are malformed (for example a secondary linked to a secondary)."""

    def __init__(self, message: str, *, contact_ids: tuple[int | None, ...] = ()) -> None:
        super().__init__(message)
        self.contact_ids = contact_ids


@dataclass(slots=True, frozen=True)
class NotFound:
    """Result returned by ``identify`` when no stored contact matches."""

    email: str | None = None
    phone_number: str | None = None


__all__ = ["IdentityError", "InvalidRequest", "InvariantViolation", "NotFound", "StorageFailure"]
