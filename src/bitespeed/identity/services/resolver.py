from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence

from ..errors import InvariantViolation
from ..models import Contact, LinkPrecedence
from ..repository import ContactSession


class ReconcileAction(str, Enum):
    UNCHANGED = "unchanged"
    CREATE_PRIMARY = "create_primary"
    CREATE_SECONDARY = "create_secondary"
    MERGE = "merge"


@dataclass(slots=True)
class Resolution:
    """Structural decision for one sighting plus the records it needs persisted.

    ``existing`` is the record returned without a write (unchanged and merge
    outcomes); create outcomes return the single persisted record instead.
    """

    action: ReconcileAction
    writes: List[Contact] = field(default_factory=list)
    existing: Contact | None = None
    demoted_ids: List[int] = field(default_factory=list)
    relinked_ids: List[int] = field(default_factory=list)


class ClusterResolver:
    """Decides how a sighting changes the primary/secondary cluster structure."""

    def __init__(self, session: ContactSession) -> None:
        self._session = session
        self._primaries: Dict[int, Contact] = {}

    def primary_of(self, contact: Contact) -> Contact:
        """Follow at most one ``linked_id`` hop to the cluster primary."""
        if contact.is_primary:
            if contact.linked_id is not None:
                raise InvariantViolation(
                    f"Primary contact {contact.id} carries linked_id {contact.linked_id}",
                    contact_ids=(contact.id, contact.linked_id),
                )
            return contact
        if contact.linked_id is None:
            raise InvariantViolation(
                f"Secondary contact {contact.id} has no linked_id", contact_ids=(contact.id,)
            )

        parent = self._primaries.get(contact.linked_id)
        if parent is None:
            parent = self._session.find_one(contact.linked_id)
            if parent is None:
                raise InvariantViolation(
                    f"Secondary contact {contact.id} links to missing contact {contact.linked_id}",
                    contact_ids=(contact.id, contact.linked_id),
                )
            if not parent.is_primary:
                raise InvariantViolation(
                    f"Secondary contact {contact.id} links to secondary contact {parent.id}",
                    contact_ids=(contact.id, parent.id, parent.linked_id),
                )
            self._primaries[contact.linked_id] = parent
        return parent

    def resolve(self, email: str, phone_number: str, matches: Sequence[Contact]) -> Resolution:
        if not matches:
            return Resolution(
                action=ReconcileAction.CREATE_PRIMARY,
                writes=[
                    Contact(
                        email=email,
                        phone_number=phone_number,
                        linked_id=None,
                        link_precedence=LinkPrecedence.PRIMARY,
                    )
                ],
            )

        # Merge before the exact-pair check: a known pair that also hits a second
        # cluster means two clusters share an identifier, and they still fold.
        primaries = self._distinct_primaries(matches)
        if len(primaries) > 1:
            return self._merge(primaries)

        primary = primaries[0]
        exact = next((contact for contact in matches if contact.matches_pair(email, phone_number)), None)
        if exact is not None:
            return Resolution(action=ReconcileAction.UNCHANGED, existing=exact)

        return Resolution(
            action=ReconcileAction.CREATE_SECONDARY,
            writes=[
                Contact(
                    email=email,
                    phone_number=phone_number,
                    linked_id=primary.id,
                    link_precedence=LinkPrecedence.SECONDARY,
                )
            ],
        )

    def _distinct_primaries(self, matches: Sequence[Contact]) -> list[Contact]:
        by_id: Dict[int, Contact] = {}
        for contact in matches:
            primary = self.primary_of(contact)
            by_id.setdefault(primary.id, primary)
        return sorted(by_id.values(), key=Contact.sort_key)

    def _merge(self, primaries: Sequence[Contact]) -> Resolution:
        # The oldest primary survives; every other cluster folds into it, and the
        # folded clusters' secondaries move with it so no chain is left behind.
        survivor, *absorbed = primaries
        resolution = Resolution(action=ReconcileAction.MERGE, existing=survivor)
        for old_primary in absorbed:
            resolution.writes.append(
                old_primary.model_copy(
                    update={"link_precedence": LinkPrecedence.SECONDARY, "linked_id": survivor.id}
                )
            )
            resolution.demoted_ids.append(old_primary.id)
            for member in self._session.find(linked_id=old_primary.id):
                if member.is_primary:
                    raise InvariantViolation(
                        f"Primary contact {member.id} carries linked_id {member.linked_id}",
                        contact_ids=(member.id, old_primary.id),
                    )
                resolution.writes.append(member.model_copy(update={"linked_id": survivor.id}))
                resolution.relinked_ids.append(member.id)
        return resolution


__all__ = ["ClusterResolver", "ReconcileAction", "Resolution"]
