from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re
from typing import Iterable

import idna
import phonenumbers


class IdentifierKind(str, Enum):
    PHONE = "phone"
    EMAIL = "email"


@dataclass(slots=True, frozen=True)
class NormalizedIdentifier:
    kind: IdentifierKind
    value_raw: str
    value_canonical: str

    @property
    def lock_key(self) -> str:
        return f"{self.kind.value}:{self.value_canonical}"


def normalize_phone(value: str, default_region: str | None = None) -> str:
    """Return the E.164 form when the number parses, otherwise its bare digits.

    Sightings carry arbitrary phone strings (``"123456"`` is a legitimate
    input), so unparseable values still need a stable canonical form.
    """
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Invalid phone number: empty value")
    try:
        parsed = phonenumbers.parse(cleaned, default_region or None)
    except phonenumbers.NumberParseException:
        parsed = None
    if parsed is not None and phonenumbers.is_valid_number(parsed):
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    digits = re.sub(r"\D", "", cleaned)
    return digits or cleaned.lower()


def normalize_email(value: str) -> str:
    cleaned = value.strip()
    if "@" not in cleaned:
        return cleaned.lower()
    local, domain = cleaned.rsplit("@", 1)
    try:
        ascii_domain = idna.encode(domain.strip()).decode("ascii")
    except idna.IDNAError:
        ascii_domain = domain.strip()
    return f"{local.strip().lower()}@{ascii_domain.lower()}"


def normalize_identifier(
    kind: IdentifierKind,
    value: str,
    *,
    default_region: str | None = None,
) -> NormalizedIdentifier:
    if kind == IdentifierKind.PHONE:
        canonical = normalize_phone(value, default_region=default_region)
    else:
        canonical = normalize_email(value)
    return NormalizedIdentifier(kind=kind, value_raw=value, value_canonical=canonical)


def lock_keys_for(
    email: str | None,
    phone_number: str | None,
    *,
    default_region: str | None = None,
) -> list[str]:
    """Sorted advisory-lock keys for a sighting; sorted so lockers never deadlock."""
    identifiers: list[NormalizedIdentifier] = []
    if email:
        identifiers.append(normalize_identifier(IdentifierKind.EMAIL, email))
    if phone_number:
        identifiers.append(
            normalize_identifier(IdentifierKind.PHONE, phone_number, default_region=default_region)
        )
    return sorted({ident.lock_key for ident in identifiers})


def cluster_lock_key(contact_id: int) -> str:
    """Advisory-lock key guarding a cluster primary and its secondaries."""
    return f"contact:{contact_id}"


def dedupe_preserving_order(values: Iterable[str | None]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value is None or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


__all__ = [
    "IdentifierKind",
    "NormalizedIdentifier",
    "cluster_lock_key",
    "dedupe_preserving_order",
    "lock_keys_for",
    "normalize_email",
    "normalize_identifier",
    "normalize_phone",
]
