from __future__ import annotations

from typing import Iterable

from shared.contact_normalization import dedupe_preserving_order

from ..errors import InvariantViolation
from ..models import Contact, ConsolidatedContact


def project_cluster(primary: Contact, members: Iterable[Contact]) -> ConsolidatedContact:
    """Build the consolidated view of a cluster.

    ``members`` may or may not include the primary itself. The primary's own
    email and phone always lead their lists; the remaining values follow in
    creation order with duplicates dropped.
    """
    if primary.id is None or not primary.is_primary:
        raise InvariantViolation("Cluster head is not a stored primary contact", contact_ids=(primary.id,))

    ordered = sorted(members, key=Contact.sort_key)
    secondaries: list[Contact] = []
    for member in ordered:
        if member.id == primary.id:
            continue
        if member.is_primary or member.linked_id != primary.id:
            raise InvariantViolation(
                f"Contact {member.id} is not a secondary of primary {primary.id}",
                contact_ids=(member.id, primary.id),
            )
        secondaries.append(member)

    return ConsolidatedContact(
        primary_contact_id=primary.id,
        emails=dedupe_preserving_order([primary.email, *(member.email for member in ordered)]),
        phone_numbers=dedupe_preserving_order(
            [primary.phone_number, *(member.phone_number for member in ordered)]
        ),
        secondary_contact_ids=[member.id for member in secondaries],
    )


__all__ = ["project_cluster"]
