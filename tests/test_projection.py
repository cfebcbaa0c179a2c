from datetime import datetime, timedelta, timezone

import pytest

from bitespeed.identity.errors import InvariantViolation
from bitespeed.identity.models import Contact, LinkPrecedence
from bitespeed.identity.services.projection import project_cluster

BASE = datetime(2023, 4, 1, tzinfo=timezone.utc)


def _contact(contact_id, email, phone, *, linked_id=None, minutes=0):
    return Contact(
        id=contact_id,
        email=email,
        phone_number=phone,
        linked_id=linked_id,
        link_precedence=LinkPrecedence.PRIMARY if linked_id is None else LinkPrecedence.SECONDARY,
        created_at=BASE + timedelta(minutes=minutes),
    )


def test_primary_values_lead_and_duplicates_drop():
    head = _contact(7, "head@x.com", "100", minutes=5)
    members = [
        _contact(3, "old@x.com", "100", linked_id=7, minutes=1),
        _contact(9, "head@x.com", "200", linked_id=7, minutes=9),
        _contact(4, None, "300", linked_id=7, minutes=2),
    ]

    view = project_cluster(head, members)

    assert view.primary_contact_id == 7
    assert view.emails == ["head@x.com", "old@x.com"]
    assert view.phone_numbers == ["100", "300", "200"]
    assert view.secondary_contact_ids == [3, 4, 9]


def test_members_may_include_the_primary():
    head = _contact(1, "a@x.com", "1")
    view = project_cluster(head, [head, _contact(2, "b@x.com", "1", linked_id=1, minutes=1)])

    assert view.secondary_contact_ids == [2]
    assert view.emails == ["a@x.com", "b@x.com"]


def test_ties_on_created_at_break_by_id():
    head = _contact(1, "a@x.com", "1")
    view = project_cluster(
        head,
        [
            _contact(5, "e@x.com", None, linked_id=1, minutes=3),
            _contact(4, "d@x.com", None, linked_id=1, minutes=3),
        ],
    )

    assert view.secondary_contact_ids == [4, 5]
    assert view.emails == ["a@x.com", "d@x.com", "e@x.com"]


def test_primary_without_email_is_skipped_in_emails():
    head = _contact(1, None, "1")
    view = project_cluster(head, [_contact(2, "b@x.com", "1", linked_id=1, minutes=1)])

    assert view.emails == ["b@x.com"]
    assert view.phone_numbers == ["1"]


def test_secondary_head_is_rejected():
    with pytest.raises(InvariantViolation):
        project_cluster(_contact(2, "b@x.com", "1", linked_id=1), [])


def test_foreign_member_is_rejected():
    head = _contact(1, "a@x.com", "1")
    with pytest.raises(InvariantViolation) as excinfo:
        project_cluster(head, [_contact(3, "c@x.com", "3", linked_id=2)])

    assert excinfo.value.contact_ids == (3, 1)


def test_second_primary_in_members_is_rejected():
    head = _contact(1, "a@x.com", "1")
    with pytest.raises(InvariantViolation):
        project_cluster(head, [_contact(2, "b@x.com", "2", minutes=1)])
