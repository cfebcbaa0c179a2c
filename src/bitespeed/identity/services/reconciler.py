from __future__ import annotations

from typing import Union

from shared.contact_normalization import cluster_lock_key, lock_keys_for
from shared.logging import get_logger

from ..errors import InvalidRequest, InvariantViolation, NotFound, StorageFailure
from ..models import Contact, ConsolidatedContact
from ..repository import ContactSession, ContactStore
from .matching import find_candidates
from .projection import project_cluster
from .resolver import ClusterResolver, ReconcileAction

logger = get_logger("identity.reconciler")

IdentifyResult = Union[ConsolidatedContact, NotFound]


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class IdentityReconciler:
    """Entry point for reconciling sightings and reading consolidated identities.

    Holds no mutable state between calls; the store handle is injected by the
    composition root and every call runs inside its own store session.
    """

    def __init__(self, store: ContactStore, *, default_region: str | None = None) -> None:
        self._store = store
        self._default_region = default_region

    def reconcile(self, email: str | None, phone_number: str | None) -> Contact:
        """Attach an (email, phone) sighting to the identity graph.

        Returns the new primary, the new secondary, the surviving primary of a
        merge, or the already stored record when the pair is known.

        Raises:
            InvalidRequest: either identifier is missing or blank.
            StorageFailure: the store failed; nothing from this call was persisted.
            InvariantViolation: stored clusters are malformed.
        """
        email = _clean(email)
        phone_number = _clean(phone_number)
        if email is None or phone_number is None:
            raise InvalidRequest("Email and phone number are required")

        lock_keys = lock_keys_for(email, phone_number, default_region=self._default_region)
        action = "match"
        try:
            with self._store.session(lock_keys=lock_keys) as session:
                matches, resolver = self._lock_clusters(session, email, phone_number)
                resolution = resolver.resolve(email, phone_number, matches)
                action = resolution.action.value
                saved = session.save_all(resolution.writes)
        except StorageFailure:
            logger.exception(
                "reconcile_storage_failed",
                email=email,
                phone_number=phone_number,
                action=action,
            )
            raise
        except InvariantViolation as exc:
            logger.error(
                "contact_invariant_violated",
                email=email,
                phone_number=phone_number,
                contact_ids=list(exc.contact_ids),
                error=str(exc),
            )
            raise

        if resolution.action == ReconcileAction.CREATE_PRIMARY:
            logger.info("contact_created", contact_id=saved[0].id)
            return saved[0]
        if resolution.action == ReconcileAction.CREATE_SECONDARY:
            logger.info("secondary_created", contact_id=saved[0].id, primary_id=saved[0].linked_id)
            return saved[0]
        if resolution.action == ReconcileAction.MERGE:
            logger.info(
                "contact_merged",
                primary_id=resolution.existing.id,
                demoted_ids=resolution.demoted_ids,
                relinked_ids=resolution.relinked_ids,
            )
        else:
            logger.debug("contact_unchanged", contact_id=resolution.existing.id)
        return resolution.existing

    def _lock_clusters(
        self,
        session: ContactSession,
        email: str,
        phone_number: str,
    ) -> tuple[list[Contact], ClusterResolver]:
        """Lock every cluster the sighting touches, then return a stable read of it.

        Identifier locks do not cover records a concurrent merge rewrites, so each
        matched primary is locked too. A merge may demote a primary before its lock
        is granted; the candidates are then read again until every primary they
        resolve to is already held.
        """
        locked: set[int] = set()
        while True:
            matches = find_candidates(session, email, phone_number)
            resolver = ClusterResolver(session)
            primary_ids = {resolver.primary_of(contact).id for contact in matches}
            pending = primary_ids - locked
            if not pending:
                return matches, resolver
            if locked:
                logger.debug("cluster_changed_while_locking", primary_ids=sorted(pending))
            session.lock(cluster_lock_key(contact_id) for contact_id in pending)
            locked |= pending

    def identify(self, email: str | None = None, phone_number: str | None = None) -> IdentifyResult:
        """Return the consolidated identity for whichever cluster the identifiers hit."""
        email = _clean(email)
        phone_number = _clean(phone_number)
        if email is None and phone_number is None:
            raise InvalidRequest("Either email or phone number is required")

        try:
            with self._store.session() as session:
                matches = find_candidates(session, email, phone_number)
                if not matches:
                    return NotFound(email=email, phone_number=phone_number)
                resolver = ClusterResolver(session)
                primary = next((contact for contact in matches if contact.is_primary), matches[0])
                primary = resolver.primary_of(primary)
                members = session.find(id=primary.id, linked_id=primary.id)
                view = project_cluster(primary, members)
        except StorageFailure:
            logger.exception("identify_storage_failed", email=email, phone_number=phone_number)
            raise
        except InvariantViolation as exc:
            logger.error(
                "contact_invariant_violated",
                email=email,
                phone_number=phone_number,
                contact_ids=list(exc.contact_ids),
                error=str(exc),
            )
            raise

        return view


__all__ = ["IdentifyResult", "IdentityReconciler"]
